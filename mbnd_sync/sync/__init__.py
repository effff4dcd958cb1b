"""
Sync module for mbnd-sync.

This module contains the matching-and-merge engine:
    - matcher: pick the Navidrome track for a MusicBee record
    - resolver: decide which track annotation fields change
    - aggregates: derive album and artist annotations from their tracks
    - synchronizer: run the phases with backup and restore
"""

from mbnd_sync.sync.aggregates import compute_rating, resolve_aggregate
from mbnd_sync.sync.matcher import find_best_match
from mbnd_sync.sync.resolver import ResolveOptions, is_date_after, resolve_track
from mbnd_sync.sync.synchronizer import (
    SyncAction,
    SyncReport,
    SyncState,
    Synchronizer,
)


__all__ = [
    "find_best_match",
    "ResolveOptions",
    "is_date_after",
    "resolve_track",
    "compute_rating",
    "resolve_aggregate",
    "SyncAction",
    "SyncReport",
    "SyncState",
    "Synchronizer",
]
