"""
Album and artist annotations derived from their tracks.

After the tracks phase, every album and artist gets:
    play_count  the sum of its tracks' play counts, when higher
    rating      the rounded mean of its rated tracks, when more than half
                of its tracks are rated and the mean is higher
    play_date   its most recent track play, when later

An artist with a single track never gets a derived rating: one rated
song says little about the artist.
"""

from mbnd_sync.navidrome.models import AggregateStats, AnnotationUpdate, ItemType
from mbnd_sync.sync.resolver import is_date_after
from mbnd_sync.utils import clamp_rating, round_half_up


# Rated tracks must be strictly more than this share of all tracks
RATED_MAJORITY_THRESHOLD = 0.5


def compute_rating(stats: AggregateStats) -> int | None:
    """
    Mean rating of the rated tracks, or None when it should not be derived.

    Examples:
        8 rated of 10, sum 32  -> 4
        5 rated of 10          -> None (not a strict majority)
        artist with 1 track    -> None
    """
    if stats.tracks_rated_count <= 0:
        return None
    if stats.tracks_rated_count <= stats.total_tracks * RATED_MAJORITY_THRESHOLD:
        return None
    if stats.kind is ItemType.ARTIST and stats.total_tracks <= 1:
        return None
    return clamp_rating(round_half_up(stats.tracks_rating_sum / stats.tracks_rated_count))


def resolve_aggregate(stats: AggregateStats) -> AnnotationUpdate:
    """
    Compute the minimal annotation update for an album or artist.

    Args:
        stats: Track roll-up plus the entity's own current annotation.

    Returns:
        Fields to write. Empty when nothing changes.
    """
    existing = stats.annotation
    update: AnnotationUpdate = {}

    if stats.total_tracks_play_count > existing.play_count:
        update["play_count"] = stats.total_tracks_play_count

    rating = compute_rating(stats)
    if rating is not None and rating > existing.rating:
        update["rating"] = rating

    if is_date_after(stats.tracks_last_played, existing.play_date):
        update["play_date"] = stats.tracks_last_played

    return update
