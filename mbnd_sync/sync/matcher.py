"""
Matching of MusicBee records to Navidrome tracks.

The database lookup returns every track with the same title whose path
ends with the record's file name. Several can come back (the same song
on an album and on a compilation, or in two library folders), and the
two systems don't agree on the library root: MusicBee sees
"V:\\data\\music\\Artist\\Album", Navidrome sees "/music/Artist/Album".

Paths are therefore compared from the file name upwards:

    MusicBee:  01 - Song.mp3 | Album | Artist | music | data | V:
    Navidrome: 01 - Song.mp3 | Album | Artist | music

The file name (segment 0) must be identical. Each following segment that
matches scores one point, and scoring stops at the first mismatch. The
candidate with the highest score wins; the first one seen wins a tie.
A candidate that only shares the file name scores 0 and never wins.
"""

from typing import Iterable

from mbnd_sync.musicbee.models import ImportRecord
from mbnd_sync.navidrome.models import StoredTrack


def normalize_path(path: str) -> str:
    """Use forward slashes only."""
    return path.replace("\\", "/")


def get_segments(path: str) -> list[str]:
    """Split a path on either separator, deepest segment first."""
    return list(reversed(normalize_path(path).split("/")))


def get_record_segments(record: ImportRecord) -> list[str]:
    """Reversed segments of a record's folder, with the file name prepended."""
    return [record.filename, *get_segments(record.file_path)]


def score_segments(record_segments: list[str], track_segments: list[str]) -> int | None:
    """
    Score two reversed segment lists.

    Returns:
        None when the file names (segment 0) differ, otherwise the number
        of consecutive matching segments after the file name.
    """
    if not record_segments or not track_segments or record_segments[0] != track_segments[0]:
        return None

    score = 0
    for record_segment, track_segment in zip(record_segments[1:], track_segments[1:]):
        if record_segment != track_segment:
            break
        score += 1
    return score


def find_best_match(
    record: ImportRecord,
    candidates: Iterable[StoredTrack | None]
) -> StoredTrack | None:
    """
    Pick the Navidrome track that best matches a MusicBee record.

    Args:
        record: The MusicBee record.
        candidates: Tracks returned by the title/file name lookup. None
                    entries are skipped.

    Returns:
        The best scoring track, or None if there is no candidate scoring
        above zero.
    """
    record_segments = get_record_segments(record)
    best_match: StoredTrack | None = None
    best_score = 0

    for candidate in candidates:
        if candidate is None:
            continue
        score = score_segments(record_segments, get_segments(candidate.path))
        if score is not None and score > best_score:
            best_score = score
            best_match = candidate

    return best_match
