"""
Navidrome module for mbnd-sync.

Async access to the Navidrome SQLite database and the models of the rows
read from it.
"""

from mbnd_sync.navidrome.database import (
    AnnotationSchema,
    ArtistLinkage,
    NavidromeDatabase,
    StoreCapabilities,
)
from mbnd_sync.navidrome.models import (
    ANNOTATION_FIELDS,
    AggregateStats,
    Annotation,
    AnnotationUpdate,
    ItemType,
    StoredTrack,
)


__all__ = [
    "NavidromeDatabase",
    "AnnotationSchema",
    "ArtistLinkage",
    "StoreCapabilities",
    "ANNOTATION_FIELDS",
    "AggregateStats",
    "Annotation",
    "AnnotationUpdate",
    "ItemType",
    "StoredTrack",
]
