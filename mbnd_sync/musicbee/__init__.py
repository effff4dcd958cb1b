"""
MusicBee module for mbnd-sync.

Reads the MusicBee CSV export into ImportRecord objects.
"""

from mbnd_sync.musicbee.models import (
    ImportRecord,
    ParseResult,
    parse_date,
    parse_flag,
    parse_int,
    parse_rating,
)
from mbnd_sync.musicbee.reader import REQUIRED_HEADERS, MusicBeeReader, normalize_header


__all__ = [
    "ImportRecord",
    "ParseResult",
    "parse_date",
    "parse_flag",
    "parse_int",
    "parse_rating",
    "MusicBeeReader",
    "REQUIRED_HEADERS",
    "normalize_header",
]
