"""
Async access to the Navidrome SQLite database.

This module is the only place that knows Navidrome's schema. It exposes
the handful of queries the synchronizer needs and the annotation upsert.

Schema (relevant parts):
    user:               id, user_name
    media_file:         id, path, title, album_id, artist_id
    album:              id, name
    artist:             id, name
    media_file_artists: media_file_id, artist_id, role     (Navidrome >= 0.55)
    annotation:         [ann_id,] user_id, item_id, item_type,
                        play_count, play_date, rating, starred, starred_at

Schema variants:
    Two historical shapes are supported and detected once when the
    database is opened (see StoreCapabilities):
        - annotation with a surrogate ann_id primary key (older Navidrome)
          or keyed by (item_type, user_id, item_id) only
        - artists linked through media_file.artist_id (older Navidrome)
          or through the media_file_artists junction table

Concurrency:
    aiosqlite runs one SQLite connection on a worker thread and serializes
    statements, so concurrent coroutines never interleave inside a
    statement. The connection is in autocommit mode: every upsert is its
    own transaction.

Usage:
    async with NavidromeDatabase(db_path) as database:
        user = await database.get_user("admin")
        tracks = await database.find_tracks(user["id"], "Song", "song.mp3")
"""

import sqlite3
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Sequence

import aiosqlite

from mbnd_sync.core.exceptions import DatabaseError
from mbnd_sync.core.logger import get_logger
from mbnd_sync.navidrome.models import (
    ANNOTATION_FIELDS,
    AggregateStats,
    Annotation,
    AnnotationUpdate,
    ItemType,
    StoredTrack,
)
from mbnd_sync.utils import format_stored_datetime


logger = get_logger(__name__)


class AnnotationSchema(Enum):
    """Primary key shape of the annotation table."""
    SURROGATE_KEY = "surrogate_key"    # ann_id column
    COMPOSITE_KEY = "composite_key"    # (item_type, user_id, item_id)


class ArtistLinkage(Enum):
    """How tracks are linked to artists."""
    DIRECT_COLUMN = "direct_column"    # media_file.artist_id
    JUNCTION_TABLE = "junction_table"  # media_file_artists with role = 'artist'


@dataclass(frozen=True)
class StoreCapabilities:
    """Schema shape detected when the database is opened."""
    annotation_schema: AnnotationSchema
    artist_linkage: ArtistLinkage


_PRAGMAS = (
    # Avoid WAL: its side files aren't necessarily removed on close
    "PRAGMA journal_mode=DELETE",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA temp_store=MEMORY",
    "PRAGMA cache_size=-100000",
)

_FIND_TRACKS_SQL = """
    SELECT
        mf.id,
        mf.path,
        mf.title,
        mf.album_id,
        mf.artist_id,
        a.play_count AS annotation_play_count,
        a.play_date AS annotation_play_date,
        a.rating AS annotation_rating,
        a.starred AS annotation_starred,
        a.starred_at AS annotation_starred_at
    FROM media_file mf
    LEFT JOIN annotation a ON (
        a.item_id = mf.id
        AND a.item_type = 'media_file'
        AND a.user_id = ?
    )
    WHERE mf.title = ?
    AND mf.path LIKE ?
"""

# Shared by the album and artist statistics queries
_TRACK_STATS_COLUMNS = """
        SUM(COALESCE(ta.play_count, 0)) AS total_tracks_play_count,
        SUM(CASE WHEN ta.rating IS NULL OR ta.rating = 0 THEN 0 ELSE 1 END) AS tracks_rated_count,
        SUM(COALESCE(ta.rating, 0)) AS tracks_rating_sum,
        MAX(ta.play_date) AS tracks_last_played
"""

_HAVING_ACTIVITY = """
    HAVING total_tracks_play_count > 0
        OR tracks_rated_count > 0
        OR tracks_last_played IS NOT NULL
"""


class NavidromeDatabase:
    """
    Navidrome database handle.

    Open with open() (or async with) before use; capabilities are probed
    once at open time and reused by every query.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._conn: aiosqlite.Connection | None = None
        self.capabilities: StoreCapabilities | None = None

    async def __aenter__(self) -> "NavidromeDatabase":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Connection
    # =========================================================================

    async def open(self) -> None:
        """
        Connect, check the connection, apply pragmas and probe the schema.

        Raises:
            DatabaseError: If the file does not exist or cannot be used.
        """
        if not self.db_path.exists():
            raise DatabaseError(
                f"Database file not found: {self.db_path}",
                details={"path": str(self.db_path)}
            )

        try:
            self._conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
            self._conn.row_factory = aiosqlite.Row

            async with self._conn.execute("SELECT 1 AS test") as cursor:
                row = await cursor.fetchone()
            if row is None or row["test"] != 1:
                raise DatabaseError(
                    "Database connection test failed",
                    details={"path": str(self.db_path)}
                )

            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)

            self.capabilities = await self.probe_capabilities()
        except sqlite3.Error as e:
            await self.close()
            raise DatabaseError(
                f"Unable to connect to the database: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e
        except DatabaseError:
            await self.close()
            raise

        logger.info("Connection has been established successfully.")
        logger.debug(
            f"Schema: annotation={self.capabilities.annotation_schema.value}, "
            f"artists={self.capabilities.artist_linkage.value}"
        )

    async def close(self) -> None:
        """Close the connection. Safe to call multiple times."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise DatabaseError(
                "Database is not open",
                details={"path": str(self.db_path)}
            )
        return self._conn

    # =========================================================================
    # Schema probing
    # =========================================================================

    async def table_exists(self, table_name: str) -> bool:
        async with self.connection.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,)
        ) as cursor:
            return await cursor.fetchone() is not None

    async def get_table_columns(self, table_name: str) -> dict[str, dict[str, Any]]:
        """
        Describe a table's columns.

        Returns:
            Mapping of column name to {'type', 'not_null', 'default', 'primary_key'}.
            Empty when the table does not exist.
        """
        # PRAGMA arguments can't be bound; only called with internal names
        async with self.connection.execute(f"PRAGMA table_info({table_name})") as cursor:
            rows = await cursor.fetchall()
        return {
            row["name"]: {
                "type": row["type"],
                "not_null": bool(row["notnull"]),
                "default": row["dflt_value"],
                "primary_key": bool(row["pk"]),
            }
            for row in rows
        }

    async def probe_capabilities(self) -> StoreCapabilities:
        """Detect which schema variants this database uses."""
        annotation_columns = await self.get_table_columns("annotation")
        annotation_schema = (
            AnnotationSchema.SURROGATE_KEY
            if "ann_id" in annotation_columns
            else AnnotationSchema.COMPOSITE_KEY
        )

        artist_linkage = (
            ArtistLinkage.JUNCTION_TABLE
            if await self.table_exists("media_file_artists")
            else ArtistLinkage.DIRECT_COLUMN
        )

        return StoreCapabilities(
            annotation_schema=annotation_schema,
            artist_linkage=artist_linkage,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a SELECT and return every row as a dict."""
        async with self.connection.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def get_user(self, user_name: str | None = None) -> dict[str, Any] | None:
        """
        Get a Navidrome user.

        Args:
            user_name: Exact user name. None returns the first user.

        Returns:
            The user row as a dict, or None if not found.
        """
        if user_name:
            rows = await self.query("SELECT * FROM user WHERE user_name = ?", (user_name,))
        else:
            rows = await self.query("SELECT * FROM user LIMIT 1")
        return rows[0] if rows else None

    async def find_tracks(self, user_id: str, title: str, filename: str) -> list[StoredTrack]:
        """
        Get candidate tracks for a MusicBee record.

        Candidates have exactly the same title and a path ending with the
        filename. Choosing among them is the matcher's job.
        """
        rows = await self.query(_FIND_TRACKS_SQL, (user_id, title, f"%{filename}"))
        return [StoredTrack.from_row(row) for row in rows]

    async def get_annotation(self, item_type: ItemType, user_id: str, item_id: str) -> Annotation:
        """Current annotation of one item. Not-yet-created rows come back with exists=False."""
        rows = await self.query(
            """
            SELECT play_count, play_date, rating, starred, starred_at
            FROM annotation
            WHERE item_type = ?
            AND user_id = ?
            AND item_id = ?
            """,
            (item_type.value, user_id, item_id)
        )
        if not rows:
            return Annotation()
        return replace(Annotation.from_row(rows[0], ""), exists=True)

    async def get_album_stats(
        self,
        user_id: str,
        album_ids: Iterable[str] | None = None
    ) -> list[AggregateStats]:
        """
        Get per-album track statistics together with the album annotation.

        Albums without any play count, rating or play date on their tracks
        are left out.

        Args:
            user_id: Navidrome user.
            album_ids: Restrict to these albums. None means all albums.
        """
        ids = list(album_ids) if album_ids is not None else []
        where_clause = f"AND a.id IN ({', '.join('?' for _ in ids)})" if ids else ""

        sql = f"""
            SELECT
                a.id AS album_id,
                a.name,
                COUNT(mf.id) AS total_tracks,
                {_TRACK_STATS_COLUMNS},
                MAX(aa.rating) AS album_rating,
                MAX(aa.play_count) AS album_play_count,
                MAX(aa.play_date) AS album_last_played
            FROM album a
            INNER JOIN media_file mf ON mf.album_id = a.id
            LEFT JOIN annotation ta ON (
                ta.item_id = mf.id
                AND ta.item_type = 'media_file'
                AND ta.user_id = ?
            )
            LEFT JOIN annotation aa ON (
                aa.item_id = a.id
                AND aa.item_type = 'album'
                AND aa.user_id = ?
            )
            WHERE 1 = 1 {where_clause}
            GROUP BY a.id, a.name
            {_HAVING_ACTIVITY}
        """
        rows = await self.query(sql, [user_id, user_id, *ids])
        return [AggregateStats.from_row(ItemType.ALBUM, row) for row in rows]

    async def get_artist_stats(
        self,
        user_id: str,
        artist_ids: Iterable[str] | None = None
    ) -> list[AggregateStats]:
        """
        Get per-artist track statistics together with the artist annotation.

        Tracks are linked through media_file_artists (role 'artist') when
        that table exists, through media_file.artist_id otherwise.

        Args:
            user_id: Navidrome user.
            artist_ids: Restrict to these artists. None means all artists.
        """
        ids = list(artist_ids) if artist_ids is not None else []
        where_clause = f"AND ar.id IN ({', '.join('?' for _ in ids)})" if ids else ""

        if self.capabilities and self.capabilities.artist_linkage is ArtistLinkage.JUNCTION_TABLE:
            track_join = "INNER JOIN media_file_artists mfa ON (mfa.artist_id = ar.id AND mfa.role = 'artist')"
            track_id_column = "mfa.media_file_id"
        else:
            track_join = "INNER JOIN media_file mf ON mf.artist_id = ar.id"
            track_id_column = "mf.id"

        sql = f"""
            SELECT
                ar.id AS artist_id,
                ar.name,
                COUNT({track_id_column}) AS total_tracks,
                {_TRACK_STATS_COLUMNS},
                MAX(aa.rating) AS artist_rating,
                MAX(aa.play_count) AS artist_play_count,
                MAX(aa.play_date) AS artist_last_played
            FROM artist ar
            {track_join}
            LEFT JOIN annotation ta ON (
                ta.item_id = {track_id_column}
                AND ta.item_type = 'media_file'
                AND ta.user_id = ?
            )
            LEFT JOIN annotation aa ON (
                aa.item_id = ar.id
                AND aa.item_type = 'artist'
                AND aa.user_id = ?
            )
            WHERE 1 = 1 {where_clause}
            GROUP BY ar.id, ar.name
            {_HAVING_ACTIVITY}
        """
        rows = await self.query(sql, [user_id, user_id, *ids])
        return [AggregateStats.from_row(ItemType.ARTIST, row) for row in rows]

    # =========================================================================
    # Writes
    # =========================================================================

    async def upsert_annotation(
        self,
        item_type: ItemType,
        user_id: str,
        item_id: str,
        update: AnnotationUpdate,
        needs_create: bool
    ) -> None:
        """
        Create or update one annotation row.

        Args:
            item_type: media_file, album or artist.
            user_id: Navidrome user.
            item_id: Annotated item.
            update: Fields to write. Dates may be datetimes or strings and
                    are stored as UTC 'YYYY-MM-DD HH:MM:SS'.
            needs_create: INSERT a new row (with defaults for the fields not
                          in update) instead of UPDATE-ing the existing one.

        Raises:
            ValueError: If update contains an unknown field.
            DatabaseError: On any SQLite error, including constraint violations.
        """
        unknown = set(update) - ANNOTATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown annotation fields: {sorted(unknown)}")

        values = self._serialize_update(update)

        try:
            if needs_create:
                await self._insert_annotation(item_type, user_id, item_id, values)
            else:
                await self._update_annotation(item_type, user_id, item_id, values)
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to {'create' if needs_create else 'update'} annotation: {e}",
                details={
                    "item_type": item_type.value,
                    "item_id": item_id,
                    "user_id": user_id,
                    "original_error": str(e),
                }
            ) from e

    async def _insert_annotation(
        self,
        item_type: ItemType,
        user_id: str,
        item_id: str,
        values: dict[str, Any]
    ) -> None:
        record: dict[str, Any] = {
            "item_type": item_type.value,
            "user_id": user_id,
            "item_id": item_id,
            "play_count": 0,
            "starred": 0,
            "rating": 0,
            "play_date": None,
            "starred_at": None,
            **values,
        }

        if self.capabilities and self.capabilities.annotation_schema is AnnotationSchema.SURROGATE_KEY:
            record["ann_id"] = str(uuid.uuid4())

        columns = ", ".join(record)
        placeholders = ", ".join("?" for _ in record)
        await self.connection.execute(
            f"INSERT INTO annotation ({columns}) VALUES ({placeholders})",
            tuple(record.values())
        )

    async def _update_annotation(
        self,
        item_type: ItemType,
        user_id: str,
        item_id: str,
        values: dict[str, Any]
    ) -> None:
        set_clauses = ", ".join(f"{column} = ?" for column in values)
        await self.connection.execute(
            f"""
            UPDATE annotation
            SET {set_clauses}
            WHERE item_type = ?
            AND user_id = ?
            AND item_id = ?
            """,
            (*values.values(), item_type.value, user_id, item_id)
        )

    @staticmethod
    def _serialize_update(update: AnnotationUpdate) -> dict[str, Any]:
        """Convert Python values to what Navidrome stores."""
        values = dict(update)
        for column in ("play_date", "starred_at"):
            if values.get(column) is not None:
                values[column] = format_stored_datetime(values[column])
        if "starred" in values:
            values["starred"] = 1 if values["starred"] else 0
        return values
