"""
Data models for rows of the MusicBee CSV export.

This module defines the ImportRecord dataclass and the small set of
parse helpers that decode raw CSV cells into typed fields.

Design Decisions:
    - ImportRecord is frozen: one is built per CSV row and never modified
    - Every parse helper returns a ParseResult (ok or invalid) instead of
      raising, so one bad cell never fails a row
    - Invalid numbers fall back to 0, invalid dates to None

Usage:
    from mbnd_sync.musicbee.models import ImportRecord

    record = ImportRecord.from_row(row, "%d/%m/%Y %H:%M")
    if record.is_eligible:
        ...
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, Mapping, TypeVar

from mbnd_sync.utils import clamp_rating, parse_local_datetime, round_half_up


T = TypeVar("T")

# MusicBee can export ratings on a 0-100 scale
RATING_PERCENT_SCALE = 100
RATING_PERCENT_STEP = 20


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """
    Outcome of decoding one CSV cell.

    Attributes:
        value: Decoded value. Meaningless when ok is False.
        ok: False when the cell was blank or could not be decoded.
        raw: The original cell text, kept for debug logging.
    """
    value: T | None
    ok: bool
    raw: str | None = None

    @classmethod
    def valid(cls, value: T, raw: str | None = None) -> "ParseResult[T]":
        return cls(value=value, ok=True, raw=raw)

    @classmethod
    def invalid(cls, raw: str | None = None) -> "ParseResult[T]":
        return cls(value=None, ok=False, raw=raw)

    def value_or(self, default: T) -> T:
        """Return the decoded value, or default for an invalid cell."""
        return self.value if self.ok and self.value is not None else default


def _clean(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip()


def parse_int(cell: Any) -> ParseResult[int]:
    """
    Decode a non-negative integer cell ("Play Count", "Skip Count").

    Decimal text is truncated ("3.0" -> 3). Negative values are invalid.
    """
    text = _clean(cell)
    if not text:
        return ParseResult.invalid(text)
    try:
        value = int(text)
    except ValueError:
        try:
            value = int(float(text))
        except (ValueError, OverflowError):
            return ParseResult.invalid(text)
    if value < 0:
        return ParseResult.invalid(text)
    return ParseResult.valid(value, text)


def parse_rating(cell: Any) -> ParseResult[int]:
    """
    Decode a "Rating" cell to Navidrome's 0-5 stars.

    Values above 5 and up to 100 are read as a percentage and scaled
    (80 -> 4, 50 -> 3). Anything else is clamped to 0-5.

    Examples:
        parse_rating("4").value    # 4
        parse_rating("80").value   # 4
        parse_rating("").ok        # False
    """
    result = parse_int(cell)
    if not result.ok:
        return result

    rating = result.value or 0
    if 5 < rating <= RATING_PERCENT_SCALE:
        rating = round_half_up(rating / RATING_PERCENT_STEP)
    return ParseResult.valid(clamp_rating(rating), result.raw)


def parse_date(cell: Any, datetime_format: str) -> ParseResult[datetime]:
    """Decode a local date cell in the given format to an aware UTC datetime."""
    text = _clean(cell)
    parsed = parse_local_datetime(text, datetime_format)
    if parsed is None:
        return ParseResult.invalid(text)
    return ParseResult.valid(parsed, text)


def parse_flag(cell: Any) -> ParseResult[int]:
    """Decode a "Love" cell: any non-blank text means loved (1), blank means 0."""
    text = _clean(cell)
    return ParseResult.valid(1 if text else 0, text)


@dataclass(frozen=True)
class ImportRecord:
    """
    One row of the MusicBee CSV export.

    Attributes:
        title: Track title. Must match media_file.title exactly.
               Example: "Leather Teeth"

        filename: File name including extension.
                  Example: "01 - Leather Teeth.mp3"

        file_path: Directory holding the file, as MusicBee sees it
                   (the "<File path>" column, without the file name).
                   Example: "V:\\music\\Carpenter Brut\\Leather Teeth"

        folder: The "<Folder>" column, kept for reports.

        play_count: Play count, 0 when blank or invalid.

        rating: 0-5 stars, 0 when blank or invalid.

        loved: 1 if the track is loved in MusicBee, else 0.

        last_played: Last played time converted to UTC, None when blank
                     or not in the configured format.

        skip_count: Skip count, 0 when blank or invalid.
    """
    title: str
    filename: str
    file_path: str
    folder: str = ""
    play_count: int = 0
    rating: int = 0
    loved: int = 0
    last_played: datetime | None = None
    skip_count: int = 0

    @property
    def is_eligible(self) -> bool:
        """True when the row carries anything worth syncing."""
        return bool(self.play_count or self.rating or self.last_played or self.loved)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], datetime_format: str) -> "ImportRecord":
        """
        Build a record from a CSV row keyed by normalized header names.

        Args:
            row: Mapping with keys filepath, filename, folder, lastplayed,
                 playcount, rating, love, skipcount, title.
            datetime_format: strptime format of the "Last Played" column.
        """
        return cls(
            title=_clean(row.get("title")),
            filename=_clean(row.get("filename")),
            file_path=_clean(row.get("filepath")),
            folder=_clean(row.get("folder")),
            play_count=parse_int(row.get("playcount")).value_or(0),
            rating=parse_rating(row.get("rating")).value_or(0),
            loved=parse_flag(row.get("love")).value_or(0),
            last_played=parse_date(row.get("lastplayed"), datetime_format).value,
            skip_count=parse_int(row.get("skipcount")).value_or(0),
        )
