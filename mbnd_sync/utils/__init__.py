"""
Utility functions for mbnd-sync.

This module provides common helpers used across the application:
    - Rounding and rating clamping shared by the resolvers
    - Date parsing/formatting between MusicBee, Navidrome and UTC
    - Datetime format self-check
    - Elapsed time formatting for the final summary

Dates:
    MusicBee exports local wall-clock times in a configurable format.
    Navidrome stores UTC strings, with or without an offset and with
    anything from zero to nine fractional digits. Everything is converted
    to timezone-aware UTC datetimes before being compared.

Usage:
    from mbnd_sync.utils import parse_local_datetime, to_utc, round_half_up

    last_played = parse_local_datetime("28/04/2009 07:38", "%d/%m/%Y %H:%M")
    stored = to_utc("2009-04-28 05:38:00")
"""

import math
import re
from datetime import datetime, timezone

from mbnd_sync.core.exceptions import ValidationError


MIN_RATING = 0
MAX_RATING = 5

# Format Navidrome uses for play_date / starred_at
STORED_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_FRACTION_PATTERN = re.compile(r"\.(\d{1,6})\d*")
_COMPACT_OFFSET_PATTERN = re.compile(r"\s*([+-]\d{2})(\d{2})$")


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero for positives.

    Python's round() rounds halves to even (round(2.5) == 2); ratings are
    expected to round 2.5 up to 3.

    Examples:
        round_half_up(2.5)  # 3
        round_half_up(2.49) # 2
        round_half_up(4.0)  # 4
    """
    return int(math.floor(value + 0.5))


def clamp_rating(value: int) -> int:
    """Clamp a rating to the 0-5 range Navidrome accepts."""
    return max(MIN_RATING, min(MAX_RATING, value))


def to_utc(value: datetime | str | None) -> datetime | None:
    """
    Normalize a datetime or a stored date string to an aware UTC datetime.

    Args:
        value: An aware datetime, a naive datetime (read as UTC), a date
               string as stored by Navidrome, or None.

    Returns:
        Aware UTC datetime, or None for None, blank or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return parse_stored_datetime(value)


def parse_stored_datetime(value: str) -> datetime | None:
    """
    Parse a date string read from the Navidrome database.

    Accepted shapes include:
        2023-01-01 12:00:00
        2023-01-01T12:00:00Z
        2023-01-01T12:00:00.000Z
        2024-05-01 10:00:00.123456789+00:00
        2024-05-01 10:00:00 +0000 UTC

    Strings without an offset are UTC.

    Returns:
        Aware UTC datetime, or None if the string is blank or unparseable.
    """
    text = value.strip()
    if not text:
        return None

    if text.endswith(" UTC"):
        text = text[:-4]
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET_PATTERN.sub(r"\1:\2", text)
    # fromisoformat wants exactly 3 or 6 fractional digits on older Pythons
    text = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1).ljust(6, "0"), text)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_utc(parsed)


def format_stored_datetime(value: datetime | str) -> str:
    """
    Format a date the way Navidrome stores it: UTC, 'YYYY-MM-DD HH:MM:SS'.

    Strings are parsed first; a string that cannot be parsed is returned
    unchanged so the database keeps whatever it was given.
    """
    parsed = to_utc(value)
    if parsed is None:
        return value if isinstance(value, str) else ""
    return parsed.strftime(STORED_DATETIME_FORMAT)


def parse_local_datetime(value: str | None, datetime_format: str) -> datetime | None:
    """
    Parse a MusicBee date cell (local wall-clock time) into UTC.

    Args:
        value: Raw CSV cell.
        datetime_format: strptime format, e.g. "%d/%m/%Y %H:%M".

    Returns:
        Aware UTC datetime, or None if the cell is empty or does not match
        the format. A bad date never fails the row.
    """
    if not value or not value.strip():
        return None
    try:
        naive = datetime.strptime(value.strip(), datetime_format)
    except ValueError:
        return None
    # astimezone() on a naive datetime assumes local time
    return naive.astimezone(timezone.utc)


def validate_datetime_format(datetime_format: str) -> None:
    """
    Check that a datetime format survives a format/parse round-trip.

    The current time is formatted with the format and parsed back with the
    same format. Formats that strptime cannot read back are rejected.

    Raises:
        ValidationError: If the format is empty or the round-trip fails.
    """
    if not datetime_format:
        raise ValidationError(
            "Invalid datetime format: empty format",
            details={"datetime_format": datetime_format}
        )
    try:
        formatted = datetime.now().strftime(datetime_format)
        datetime.strptime(formatted, datetime_format)
    except ValueError as e:
        raise ValidationError(
            f"Invalid datetime format: {datetime_format}. Please use strftime/strptime "
            f"directives (https://docs.python.org/3/library/datetime.html#format-codes)",
            details={"datetime_format": datetime_format, "original_error": str(e)}
        ) from e


def format_elapsed(seconds: float) -> str:
    """
    Format an elapsed duration for the end-of-run message.

    Examples:
        format_elapsed(0.4)    # "0s"
        format_elapsed(45.2)   # "45s"
        format_elapsed(225)    # "3m 45s"
        format_elapsed(3750)   # "1h 02m 30s"
    """
    total = int(max(seconds, 0))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        minutes, secs = divmod(total, 60)
        return f"{minutes}m {secs:02d}s"
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"
