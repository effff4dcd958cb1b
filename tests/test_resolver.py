"""Test track conflict resolution"""

from datetime import datetime, timedelta, timezone

import pytest

from mbnd_sync.musicbee.models import ImportRecord
from mbnd_sync.navidrome.models import Annotation
from mbnd_sync.sync.resolver import ResolveOptions, is_date_after, resolve_track


JAN_1 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
FEB_1 = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)


def _record(**fields) -> ImportRecord:
    values = {"title": "Song A", "filename": "song_a.mp3", "file_path": "Music/Artist/Album"}
    values.update(fields)
    return ImportRecord(**values)


class TestIsDateAfter:
    """Test UTC date comparison"""

    def test_absent_left_never_wins(self):
        assert is_date_after(None, None) is False
        assert is_date_after(None, JAN_1) is False

    def test_present_left_beats_absent_right(self):
        assert is_date_after(JAN_1, None) is True

    def test_strictly_after(self):
        assert is_date_after(FEB_1, JAN_1) is True
        assert is_date_after(JAN_1, FEB_1) is False

    def test_equal_instants_never_win(self):
        same_instant = JAN_1.astimezone(timezone(timedelta(hours=2)))
        assert is_date_after(JAN_1, same_instant) is False

    def test_stored_strings_without_offset_are_utc(self):
        assert is_date_after(JAN_1, "2024-01-01 11:59:59") is True
        assert is_date_after(JAN_1, "2024-01-01 12:00:00") is False
        assert is_date_after("2024-01-01T12:00:01Z", JAN_1) is True

    def test_naive_datetime_is_utc(self):
        assert is_date_after(datetime(2024, 1, 1, 12, 0, 1), JAN_1) is True

    def test_unparseable_string_counts_as_absent(self):
        assert is_date_after(JAN_1, "not a date") is True
        assert is_date_after("not a date", JAN_1) is False


class TestResolveRating:
    """Ratings only ratchet up"""

    @pytest.mark.parametrize("incoming,existing", [(0, 0), (3, 3), (2, 4), (0, 5), (5, 0), (4, 2)])
    def test_rating_present_iff_higher(self, incoming, existing):
        update = resolve_track(_record(rating=incoming), Annotation(rating=existing))
        if incoming > existing:
            assert update["rating"] == incoming
        else:
            assert "rating" not in update

    def test_downgrade_allowed_for_nonzero_rating(self):
        options = ResolveOptions(allow_rating_downgrade=True)
        assert resolve_track(_record(rating=2), Annotation(rating=4), options) == {"rating": 2}

    def test_downgrade_never_clears_rating(self):
        options = ResolveOptions(allow_rating_downgrade=True)
        assert resolve_track(_record(rating=0, play_count=1), Annotation(rating=4, play_count=1), options) == {}


class TestResolveStarred:
    """Loved in MusicBee means starred in Navidrome"""

    def test_loved_sets_starred_with_last_played(self):
        update = resolve_track(_record(loved=1, last_played=JAN_1), Annotation(play_date=JAN_1))
        assert update == {"starred": True, "starred_at": JAN_1}

    def test_loved_without_date_sets_null_starred_at(self):
        update = resolve_track(_record(loved=1), Annotation())
        assert update == {"starred": True, "starred_at": None}

    def test_already_starred(self):
        assert resolve_track(_record(loved=1), Annotation(starred=True)) == {}


class TestResolvePlayCount:
    """Play counts only go up, except on a first run"""

    def test_higher_count_wins(self):
        assert resolve_track(_record(play_count=5), Annotation(play_count=2)) == {"play_count": 5}

    def test_lower_count_ignored(self):
        assert resolve_track(_record(play_count=2), Annotation(play_count=5)) == {}

    def test_first_run_adds_counts(self):
        options = ResolveOptions(first_run=True)
        assert resolve_track(_record(play_count=3), Annotation(play_count=5), options) == {"play_count": 8}
        assert resolve_track(_record(play_count=5), Annotation(play_count=2), options) == {"play_count": 7}

    def test_first_run_equal_counts_unchanged(self):
        options = ResolveOptions(first_run=True)
        assert resolve_track(_record(play_count=4), Annotation(play_count=4), options) == {}


class TestResolvePlayDate:
    """Last played date and inferred plays"""

    def test_later_date_wins(self):
        update = resolve_track(_record(play_count=1, last_played=FEB_1), Annotation(play_count=1, play_date=JAN_1))
        assert update == {"play_date": FEB_1}

    def test_earlier_date_ignored(self):
        assert resolve_track(_record(play_count=1, last_played=JAN_1), Annotation(play_count=1, play_date=FEB_1)) == {}

    def test_bare_last_played_infers_one_play(self):
        """Played but never counted nor skipped: one play is inferred"""
        update = resolve_track(_record(last_played=JAN_1), Annotation())
        assert update == {"play_date": JAN_1, "play_count": 1}

    def test_no_inferred_play_when_skipped(self):
        update = resolve_track(_record(last_played=JAN_1, skip_count=2), Annotation())
        assert update == {"play_date": JAN_1}

    def test_no_inferred_play_when_existing_count(self):
        update = resolve_track(_record(last_played=FEB_1), Annotation(play_count=3, play_date=JAN_1))
        assert update == {"play_date": FEB_1}


class TestScenarios:
    """End-to-end resolution examples"""

    def test_scenario_a(self):
        record = _record(play_count=5, rating=4)
        existing = Annotation(play_count=2, rating=0, exists=True)

        assert resolve_track(record, existing) == {"play_count": 5, "rating": 4}

    def test_up_to_date_track_yields_empty_update(self):
        record = _record(play_count=5, rating=4, loved=1, last_played=JAN_1)
        existing = Annotation(play_count=5, rating=4, starred=True, play_date=JAN_1, exists=True)

        assert resolve_track(record, existing) == {}
