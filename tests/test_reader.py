"""Test the MusicBee CSV reader and cell parsers"""

from datetime import datetime, timezone

import pytest

from mbnd_sync.core.exceptions import ValidationError
from mbnd_sync.musicbee.models import ImportRecord, parse_date, parse_flag, parse_int, parse_rating
from mbnd_sync.musicbee.reader import REQUIRED_HEADERS, MusicBeeReader, detect_delimiter, normalize_header


DATETIME_FORMAT = "%d/%m/%Y %H:%M"


def _row(**fields) -> dict:
    row = {
        "<File path>": "V:\\Music\\Artist\\Album",
        "<Filename>": "01 - Song.mp3",
        "<Folder>": "Album",
        "Title": "Song",
    }
    row.update(fields)
    return row


class TestParsers:
    """Test cell parse helpers"""

    def test_parse_int(self):
        assert parse_int("12").value == 12
        assert parse_int(" 3 ").value == 3
        assert parse_int("3.0").value == 3
        assert not parse_int("").ok
        assert not parse_int("abc").ok
        assert not parse_int("-1").ok
        assert parse_int("abc").value_or(0) == 0

    @pytest.mark.parametrize("cell,expected", [
        ("0", 0),
        ("4", 4),
        ("5", 5),
        ("80", 4),
        ("50", 3),
        ("100", 5),
        ("250", 5),
    ])
    def test_parse_rating(self, cell, expected):
        assert parse_rating(cell).value == expected

    def test_parse_rating_invalid(self):
        assert parse_rating("").value_or(0) == 0
        assert parse_rating("five").value_or(0) == 0

    def test_parse_flag(self):
        assert parse_flag("L").value == 1
        assert parse_flag("  ").value == 0
        assert parse_flag(None).value == 0

    def test_parse_date_is_local_time_converted_to_utc(self):
        expected = datetime(2009, 4, 28, 7, 38).astimezone(timezone.utc)
        assert parse_date("28/04/2009 07:38", DATETIME_FORMAT).value == expected

    def test_parse_date_invalid(self):
        assert parse_date("2009-04-28", DATETIME_FORMAT).value is None
        assert not parse_date("", DATETIME_FORMAT).ok


class TestImportRecord:
    """Test record eligibility"""

    @pytest.mark.parametrize("fields,eligible", [
        ({}, False),
        ({"play_count": 1}, True),
        ({"rating": 3}, True),
        ({"loved": 1}, True),
        ({"last_played": datetime(2024, 1, 1, tzinfo=timezone.utc)}, True),
        ({"skip_count": 4}, False),
    ])
    def test_is_eligible(self, fields, eligible):
        record = ImportRecord(title="Song", filename="song.mp3", file_path="Music", **fields)
        assert record.is_eligible is eligible


class TestHeaders:
    """Test header handling"""

    def test_normalize_header(self):
        assert normalize_header("<File path>") == "filepath"
        assert normalize_header("Play Count") == "playcount"
        assert normalize_header("Skip Count") == "skipcount"

    @pytest.mark.parametrize("delimiter", [",", ";", "\t", "|"])
    def test_detect_delimiter(self, delimiter):
        assert detect_delimiter(delimiter.join(list(REQUIRED_HEADERS))) == delimiter

    def test_missing_column_fails_before_any_row(self, write_csv):
        headers = [header for header in list(REQUIRED_HEADERS) if header != "Skip Count"]
        path = write_csv([_row(**{"Play Count": "3"})], headers=headers)

        with pytest.raises(ValidationError) as exc_info:
            list(MusicBeeReader(path, DATETIME_FORMAT).iter_records())

        assert "Skip Count" in exc_info.value.message

    def test_missing_file(self, temp_dir):
        with pytest.raises(ValidationError):
            MusicBeeReader(temp_dir / "missing.csv", DATETIME_FORMAT).count_eligible()


class TestMusicBeeReader:
    """Test reading whole exports"""

    @pytest.mark.parametrize("delimiter", [",", ";", "\t", "|"])
    def test_reads_records(self, write_csv, delimiter):
        path = write_csv(
            [_row(**{
                "Play Count": "5",
                "Rating": "80",
                "Love": "L",
                "Skip Count": "1",
                "Last Played": "28/04/2009 07:38",
            })],
            delimiter=delimiter,
        )

        records = list(MusicBeeReader(path, DATETIME_FORMAT).iter_records())

        assert len(records) == 1
        record = records[0]
        assert record.title == "Song"
        assert record.filename == "01 - Song.mp3"
        assert record.file_path == "V:\\Music\\Artist\\Album"
        assert record.folder == "Album"
        assert record.play_count == 5
        assert record.rating == 4
        assert record.loved == 1
        assert record.skip_count == 1
        assert record.last_played == datetime(2009, 4, 28, 7, 38).astimezone(timezone.utc)

    def test_skips_ineligible_rows(self, write_csv):
        path = write_csv([
            _row(**{"Play Count": "0", "Skip Count": "3"}),
            _row(**{"Title": "Played", "Play Count": "2"}),
            _row(**{"Title": "Bad date only", "Last Played": "yesterday"}),
        ])

        reader = MusicBeeReader(path, DATETIME_FORMAT)

        assert reader.count_eligible() == 1
        assert [record.title for record in reader.iter_records()] == ["Played"]

    def test_iter_batches(self, write_csv):
        path = write_csv([_row(**{"Title": f"Song {i}", "Play Count": "1"}) for i in range(7)])

        batches = list(MusicBeeReader(path, DATETIME_FORMAT).iter_batches(3))

        assert [len(batch) for batch in batches] == [3, 3, 1]
        assert batches[2][0].title == "Song 6"

    def test_iter_batches_rejects_zero(self, write_csv):
        path = write_csv([])
        with pytest.raises(ValueError):
            list(MusicBeeReader(path, DATETIME_FORMAT).iter_batches(0))
