"""
Data models for records read from the Navidrome database.

This module defines dataclasses for tracks, annotations and the
aggregate statistics used to derive album and artist annotations.

Design:
    Rows come back from SQL with prefixed column names (annotation_*,
    album_*, artist_*). The from_row() factories are the only place that
    knows those names; the rest of the code works with typed fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from mbnd_sync.utils import to_utc


# Partial field map applied to one annotation row.
# Keys: play_count, rating, starred, starred_at, play_date.
AnnotationUpdate = dict[str, Any]

ANNOTATION_FIELDS = frozenset({"play_count", "rating", "starred", "starred_at", "play_date"})


class ItemType(str, Enum):
    """Value of annotation.item_type."""
    MEDIA_FILE = "media_file"
    ALBUM = "album"
    ARTIST = "artist"


@dataclass(frozen=True)
class Annotation:
    """
    Per-user annotation of a track, album or artist.

    Missing values from a LEFT JOIN are normalized: counts to 0, starred
    to False, dates to None.

    Attributes:
        play_count: Number of plays.
        rating: 0-5 stars.
        starred: Loved/favourite flag.
        play_date: Last played, aware UTC.
        starred_at: When it was starred, aware UTC.
        exists: False when no annotation row exists yet; the first update
                then has to INSERT instead of UPDATE.
    """
    play_count: int = 0
    rating: int = 0
    starred: bool = False
    play_date: datetime | None = None
    starred_at: datetime | None = None
    exists: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str) -> "Annotation":
        """
        Build an annotation from joined columns named {prefix}play_count, ...

        A row counts as existing when play_count or rating is not NULL,
        which is what a LEFT JOIN yields when the annotation row exists.
        """
        play_count = _get(row, f"{prefix}play_count")
        rating = _get(row, f"{prefix}rating")
        return cls(
            play_count=int(play_count or 0),
            rating=int(rating or 0),
            starred=bool(_get(row, f"{prefix}starred") or 0),
            play_date=to_utc(_get(row, f"{prefix}play_date")),
            starred_at=to_utc(_get(row, f"{prefix}starred_at")),
            exists=play_count is not None or rating is not None,
        )


@dataclass(frozen=True)
class StoredTrack:
    """
    A media_file row together with the user's annotation for it.

    Attributes:
        id: media_file.id
        title: Track title.
        path: Path of the file as seen by Navidrome.
        album_id: media_file.album_id
        artist_id: media_file.artist_id
        annotation: The user's current annotation (possibly not created yet).
    """
    id: str
    title: str
    path: str
    album_id: str | None = None
    artist_id: str | None = None
    annotation: Annotation = field(default_factory=Annotation)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StoredTrack":
        return cls(
            id=row["id"],
            title=row["title"] or "",
            path=row["path"] or "",
            album_id=_get(row, "album_id"),
            artist_id=_get(row, "artist_id"),
            annotation=Annotation.from_row(row, "annotation_"),
        )


@dataclass(frozen=True)
class AggregateStats:
    """
    Roll-up of an album's or artist's track annotations.

    Attributes:
        kind: ItemType.ALBUM or ItemType.ARTIST.
        id: album.id or artist.id
        name: Display name, used in verbose logs.
        total_tracks: Number of tracks linked to the entity.
        total_tracks_play_count: Sum of track play counts.
        tracks_rated_count: Number of tracks with a non-zero rating.
        tracks_rating_sum: Sum of non-zero track ratings.
        tracks_last_played: Most recent track play date, aware UTC.
        annotation: The entity's own current annotation.
    """
    kind: ItemType
    id: str
    name: str
    total_tracks: int
    total_tracks_play_count: int
    tracks_rated_count: int
    tracks_rating_sum: int
    tracks_last_played: datetime | None
    annotation: Annotation

    @classmethod
    def from_row(cls, kind: ItemType, row: Mapping[str, Any]) -> "AggregateStats":
        """
        Build stats from an aggregate query row.

        The query names the entity columns after the kind:
        album_id / album_rating / album_play_count / album_last_played,
        or the artist_* equivalents.
        """
        prefix = f"{kind.value}_"
        annotation = Annotation.from_row(
            {
                "play_count": _get(row, f"{prefix}play_count"),
                "rating": _get(row, f"{prefix}rating"),
                "play_date": _get(row, f"{prefix}last_played"),
            },
            "",
        )
        return cls(
            kind=kind,
            id=row[f"{prefix}id"],
            name=_get(row, "name") or "",
            total_tracks=int(_get(row, "total_tracks") or 0),
            total_tracks_play_count=int(_get(row, "total_tracks_play_count") or 0),
            tracks_rated_count=int(_get(row, "tracks_rated_count") or 0),
            tracks_rating_sum=int(_get(row, "tracks_rating_sum") or 0),
            tracks_last_played=to_utc(_get(row, "tracks_last_played")),
            annotation=annotation,
        )


def _get(row: Mapping[str, Any], key: str) -> Any:
    """Read a column that may be absent from the row."""
    try:
        return row[key]
    except (KeyError, IndexError):
        return None
