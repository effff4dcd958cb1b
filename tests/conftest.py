"""Test configuration and fixtures"""

import csv
import sqlite3
import tempfile
from pathlib import Path

import pytest

from mbnd_sync.core.config import Config, OutputConfig, PathsConfig, SyncOptions


CSV_HEADERS = [
    "<File path>",
    "<Filename>",
    "<Folder>",
    "Title",
    "Last Played",
    "Play Count",
    "Rating",
    "Love",
    "Skip Count",
]

_COMMON_SCHEMA = """
    CREATE TABLE user (
        id VARCHAR(255) NOT NULL PRIMARY KEY,
        user_name VARCHAR(255) NOT NULL UNIQUE,
        name VARCHAR(255) DEFAULT ''
    );
    CREATE TABLE album (
        id VARCHAR(255) NOT NULL PRIMARY KEY,
        name VARCHAR(255) DEFAULT ''
    );
    CREATE TABLE artist (
        id VARCHAR(255) NOT NULL PRIMARY KEY,
        name VARCHAR(255) DEFAULT ''
    );
    CREATE TABLE media_file (
        id VARCHAR(255) NOT NULL PRIMARY KEY,
        path VARCHAR(255) DEFAULT '',
        title VARCHAR(255) DEFAULT '',
        album_id VARCHAR(255) DEFAULT '',
        artist_id VARCHAR(255) DEFAULT ''
    );
"""

# Older Navidrome: surrogate ann_id key, artists linked through media_file.artist_id
_LEGACY_SCHEMA = """
    CREATE TABLE annotation (
        ann_id VARCHAR(255) NOT NULL PRIMARY KEY,
        user_id VARCHAR(255) DEFAULT '',
        item_id VARCHAR(255) DEFAULT '',
        item_type VARCHAR(255) DEFAULT '',
        play_count INTEGER DEFAULT 0,
        play_date DATETIME,
        rating INTEGER DEFAULT 0,
        starred BOOL DEFAULT FALSE NOT NULL,
        starred_at DATETIME,
        UNIQUE (user_id, item_id, item_type)
    );
"""

# Newer Navidrome: composite key, artists linked through media_file_artists
_CURRENT_SCHEMA = """
    CREATE TABLE annotation (
        user_id VARCHAR(255) NOT NULL,
        item_id VARCHAR(255) NOT NULL,
        item_type VARCHAR(255) NOT NULL,
        play_count INTEGER DEFAULT 0,
        play_date DATETIME,
        rating INTEGER DEFAULT 0,
        starred BOOL DEFAULT FALSE NOT NULL,
        starred_at DATETIME,
        PRIMARY KEY (item_type, user_id, item_id)
    );
    CREATE TABLE media_file_artists (
        media_file_id VARCHAR(255) NOT NULL,
        artist_id VARCHAR(255) NOT NULL,
        role VARCHAR(255) DEFAULT '',
        sub_role VARCHAR(255) DEFAULT '',
        UNIQUE (artist_id, media_file_id, role, sub_role)
    );
"""


class NavidromeFixture:
    """Builds and inspects a Navidrome-shaped SQLite file for tests."""

    def __init__(self, path: Path, legacy: bool) -> None:
        self.path = path
        self.legacy = legacy
        with sqlite3.connect(path) as conn:
            conn.executescript(_COMMON_SCHEMA + (_LEGACY_SCHEMA if legacy else _CURRENT_SCHEMA))

    def execute(self, sql: str, params: tuple = ()) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute(sql, params)
        conn.close()

    def add_user(self, user_id: str, user_name: str) -> None:
        self.execute("INSERT INTO user (id, user_name) VALUES (?, ?)", (user_id, user_name))

    def add_album(self, album_id: str, name: str = "") -> None:
        self.execute("INSERT INTO album (id, name) VALUES (?, ?)", (album_id, name or album_id))

    def add_artist(self, artist_id: str, name: str = "") -> None:
        self.execute("INSERT INTO artist (id, name) VALUES (?, ?)", (artist_id, name or artist_id))

    def add_track(
        self,
        track_id: str,
        title: str,
        path: str,
        album_id: str = "",
        artist_id: str = ""
    ) -> None:
        self.execute(
            "INSERT INTO media_file (id, path, title, album_id, artist_id) VALUES (?, ?, ?, ?, ?)",
            (track_id, path, title, album_id, artist_id)
        )
        if not self.legacy and artist_id:
            self.execute(
                "INSERT INTO media_file_artists (media_file_id, artist_id, role) VALUES (?, ?, 'artist')",
                (track_id, artist_id)
            )

    def add_annotation(
        self,
        item_type: str,
        user_id: str,
        item_id: str,
        play_count: int = 0,
        rating: int = 0,
        starred: int = 0,
        play_date: str | None = None,
        starred_at: str | None = None
    ) -> None:
        columns = ["item_type", "user_id", "item_id", "play_count", "rating", "starred", "play_date", "starred_at"]
        values = [item_type, user_id, item_id, play_count, rating, starred, play_date, starred_at]
        if self.legacy:
            columns.append("ann_id")
            values.append(f"ann-{item_type}-{item_id}")
        placeholders = ", ".join("?" for _ in values)
        self.execute(
            f"INSERT INTO annotation ({', '.join(columns)}) VALUES ({placeholders})",
            tuple(values)
        )

    def get_annotation(self, item_type: str, user_id: str, item_id: str) -> dict | None:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        try:
            row = conn.execute(
                "SELECT * FROM annotation WHERE item_type = ? AND user_id = ? AND item_id = ?",
                (item_type, user_id, item_id)
            ).fetchone()
        finally:
            conn.close()
        return dict(row) if row is not None else None

    def count_annotations(self) -> int:
        conn = sqlite3.connect(self.path)
        try:
            return conn.execute("SELECT COUNT(*) FROM annotation").fetchone()[0]
        finally:
            conn.close()


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture(params=[False, True], ids=["current-schema", "legacy-schema"])
def navidrome(temp_dir, request):
    """Navidrome database with one admin user, in both schema variants"""
    fixture = NavidromeFixture(temp_dir / "navidrome.db", legacy=request.param)
    fixture.add_user("user-1", "admin")
    fixture.add_user("user-2", "guest")
    return fixture


@pytest.fixture
def write_csv(temp_dir):
    """Write a MusicBee export; rows are dicts keyed by CSV_HEADERS names"""

    def _write(rows: list[dict], delimiter: str = ",", headers: list[str] | None = None) -> Path:
        path = temp_dir / "MusicBee_Export.csv"
        headers = headers or CSV_HEADERS
        with open(path, "w", encoding="utf-8-sig", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=headers, delimiter=delimiter, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                writer.writerow({header: row.get(header, "") for header in headers})
        return path

    return _write


@pytest.fixture
def make_config(temp_dir):
    """Build a Config pointing at the temporary directory"""

    def _make(**sync_options) -> Config:
        return Config(
            paths=PathsConfig(
                csv_file=temp_dir / "MusicBee_Export.csv",
                db_file=temp_dir / "navidrome.db",
                backup_directory=temp_dir / "backups",
                logs_directory=temp_dir / "logs",
            ),
            sync=SyncOptions(**sync_options),
            output=OutputConfig(verbose=True),
        )

    return _make
