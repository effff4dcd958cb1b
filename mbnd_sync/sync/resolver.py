"""
Field-level conflict resolution between MusicBee and Navidrome.

resolve_track() compares one MusicBee record with the annotation
Navidrome already holds for the matched track and returns only the
fields that should change. An empty result means the track is already
up to date and no write is needed.

Rules:
    rating      MusicBee wins only when higher (ratings never go down),
                unless rating downgrades are explicitly allowed.
    starred     Set when loved in MusicBee and not starred in Navidrome.
                starred_at takes the last played date, MusicBee has no
                "loved since" date.
    play_count  MusicBee wins when higher. On a first run the MusicBee
                count is added to the Navidrome one instead.
    play_date   MusicBee wins when strictly later. A track played but
                never counted gets play_count = 1.

All dates are compared as aware UTC datetimes.
"""

from dataclasses import dataclass
from datetime import datetime

from mbnd_sync.musicbee.models import ImportRecord
from mbnd_sync.navidrome.models import Annotation, AnnotationUpdate
from mbnd_sync.utils import to_utc


@dataclass(frozen=True)
class ResolveOptions:
    """
    Attributes:
        first_run: Add MusicBee play counts to the Navidrome ones.
        allow_rating_downgrade: A non-zero MusicBee rating replaces a
                                different Navidrome rating, even a higher one.
    """
    first_run: bool = False
    allow_rating_downgrade: bool = False


def is_date_after(left: datetime | str | None, right: datetime | str | None) -> bool:
    """
    Return True if left is strictly after right.

    A missing left date is never after anything; a present left date is
    always after a missing right date. Naive datetimes and strings without
    an offset are read as UTC. Unparseable strings count as missing.

    Examples:
        is_date_after(None, some_date)        # False
        is_date_after(some_date, None)        # True
        is_date_after(some_date, some_date)   # False
    """
    left_utc = to_utc(left)
    if left_utc is None:
        return False
    right_utc = to_utc(right)
    if right_utc is None:
        return True
    return left_utc > right_utc


def resolve_track(
    record: ImportRecord,
    existing: Annotation,
    options: ResolveOptions | None = None
) -> AnnotationUpdate:
    """
    Compute the minimal annotation update for a matched track.

    Args:
        record: MusicBee record.
        existing: Navidrome annotation of the matched track (all zero/None
                  when the annotation row doesn't exist yet).
        options: First-run and rating-downgrade switches.

    Returns:
        Fields to write. Empty when nothing changes.
    """
    options = options or ResolveOptions()
    update: AnnotationUpdate = {}

    if options.allow_rating_downgrade:
        if record.rating and record.rating != existing.rating:
            update["rating"] = record.rating
    elif record.rating > existing.rating:
        update["rating"] = record.rating

    if record.loved > int(existing.starred):
        update["starred"] = True
        update["starred_at"] = record.last_played

    if record.play_count != existing.play_count:
        if record.play_count > existing.play_count:
            update["play_count"] = record.play_count
        # First run: MusicBee history is added on top, overriding the above
        if options.first_run and record.play_count > 0:
            update["play_count"] = existing.play_count + record.play_count

    if is_date_after(record.last_played, existing.play_date):
        update["play_date"] = record.last_played
        if (
            not existing.play_count
            and not update.get("play_count")
            and not record.skip_count
            and not record.play_count
        ):
            update["play_count"] = 1

    return update
