"""
MusicBee CSV export reader.

Reads the CSV produced by MusicBee's "Export library to CSV" feature and
yields ImportRecord objects for the rows that carry something to sync.

Expected columns (any order, extra columns ignored):
    <File path>, <Filename>, <Folder>, Last Played, Play Count,
    Rating, Love, Skip Count, Title

Header names are compared after normalization: angle brackets removed,
lowercased, non-alphanumeric characters dropped ("<File path>" and
"File Path" are the same column).

The file is read twice: once by count_eligible() to size the progress
bar, then by iter_batches() to feed the tracks phase. Neither pass holds
more than one batch in memory.

Usage:
    reader = MusicBeeReader(csv_path, "%d/%m/%Y %H:%M")
    total = reader.count_eligible()
    for batch in reader.iter_batches(500):
        ...
"""

import csv
import re
from pathlib import Path
from typing import Iterator, TextIO

from mbnd_sync.core.exceptions import ValidationError
from mbnd_sync.core.logger import get_logger
from mbnd_sync.musicbee.models import ImportRecord


logger = get_logger(__name__)

# Display name -> normalized key
REQUIRED_HEADERS = {
    "<File path>": "filepath",
    "<Filename>": "filename",
    "<Folder>": "folder",
    "Last Played": "lastplayed",
    "Play Count": "playcount",
    "Rating": "rating",
    "Love": "love",
    "Skip Count": "skipcount",
    "Title": "title",
}

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


def normalize_header(header: str) -> str:
    """
    Normalize a header cell for comparison.

    Examples:
        normalize_header("<File path>")   # "filepath"
        normalize_header("Play Count")    # "playcount"
    """
    return _NON_ALPHANUMERIC.sub("", header.replace("<", "").replace(">", "").lower())


def detect_delimiter(header_line: str) -> str:
    """Pick the candidate delimiter that occurs most often in the header line."""
    counts = {delimiter: header_line.count(delimiter) for delimiter in CANDIDATE_DELIMITERS}
    best = max(counts, key=lambda delimiter: counts[delimiter])
    return best if counts[best] > 0 else ","


class MusicBeeReader:
    """
    Streaming reader for a MusicBee CSV export.

    Attributes:
        csv_path: Path to the export file.
        datetime_format: strptime format of the "Last Played" column.
    """

    def __init__(self, csv_path: Path, datetime_format: str) -> None:
        self.csv_path = csv_path
        self.datetime_format = datetime_format

    def _open(self) -> TextIO:
        if not self.csv_path.exists():
            raise ValidationError(
                f"CSV file not found: {self.csv_path}",
                details={"path": str(self.csv_path)}
            )
        # utf-8-sig drops the BOM MusicBee writes on Windows
        return open(self.csv_path, "r", encoding="utf-8-sig", newline="")

    def _iter_rows(self) -> Iterator[dict[str, str]]:
        """
        Yield every data row keyed by normalized header.

        Raises:
            ValidationError: If the file is missing, empty, or lacks a
                             required column. Raised before any row is yielded.
        """
        with self._open() as f:
            header_line = f.readline()
            if not header_line.strip():
                raise ValidationError(
                    f"CSV file is empty: {self.csv_path}",
                    details={"path": str(self.csv_path)}
                )

            delimiter = detect_delimiter(header_line)
            headers = next(csv.reader([header_line], delimiter=delimiter))
            keys = [normalize_header(header) for header in headers]
            self._validate_headers(keys)

            for cells in csv.reader(f, delimiter=delimiter):
                if not any(cell.strip() for cell in cells):
                    continue
                yield dict(zip(keys, cells))

    def _validate_headers(self, keys: list[str]) -> None:
        present = set(keys)
        for display_name, key in REQUIRED_HEADERS.items():
            if key not in present:
                raise ValidationError(
                    f"{display_name} missing in your CSV headers",
                    details={"column": display_name, "path": str(self.csv_path)}
                )

    def iter_records(self) -> Iterator[ImportRecord]:
        """Yield the eligible records of the export, in file order."""
        for row in self._iter_rows():
            record = ImportRecord.from_row(row, self.datetime_format)
            if record.is_eligible:
                yield record

    def count_eligible(self) -> int:
        """Count eligible records (first pass, for progress display)."""
        total = sum(1 for _ in self.iter_records())
        logger.info(f"{self.csv_path} parsed successfully, {total} potential tracks to be updated")
        return total

    def iter_batches(self, batch_size: int) -> Iterator[list[ImportRecord]]:
        """
        Yield eligible records in lists of at most batch_size.

        Raises:
            ValueError: If batch_size is not positive.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")

        batch: list[ImportRecord] = []
        for record in self.iter_records():
            batch.append(record)
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch
