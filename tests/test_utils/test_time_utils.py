"""
Tests for scanvault/utils/time_utils.py.

What we test
------------
1. parse_timestamp_sec: epoch millis / seconds, German local date-times
   (with rollover), ISO strings, rejection of garbage.
2. coerce_epoch_seconds: magnitude threshold.
3. Week / month ids and bounds in local time.
4. date_key_from_sec.

Local-time expectations are built with ``datetime(...).timestamp()`` so the
tests pass in any timezone.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from scanvault.utils.time_utils import (
    EPOCH_MILLIS_THRESHOLD,
    coerce_epoch_seconds,
    date_key_from_sec,
    month_bounds_from_sec,
    month_id_from_sec,
    parse_timestamp_sec,
    week_bounds_from_sec,
    week_id_from_sec,
)


def _local(*args: int) -> int:
    return int(datetime(*args).timestamp())


class TestParseTimestampSec:
    def test_epoch_seconds_as_is(self):
        assert parse_timestamp_sec("1700000000") == 1700000000

    def test_epoch_millis_divided(self):
        assert parse_timestamp_sec("1700000000000") == 1700000000

    def test_surrounding_whitespace_ignored(self):
        assert parse_timestamp_sec("  1700000000 ") == 1700000000

    def test_german_datetime_is_local(self):
        assert parse_timestamp_sec("21.02.2025 14:30") == _local(2025, 2, 21, 14, 30)

    def test_german_datetime_with_seconds(self):
        assert parse_timestamp_sec("01.03.2025 08:05:09") == _local(2025, 3, 1, 8, 5, 9)

    def test_german_day_rolls_over(self):
        assert parse_timestamp_sec("31.02.2025 00:00") == _local(2025, 3, 3)

    def test_iso_with_z(self):
        expected = int(datetime(2025, 2, 21, 14, 30, tzinfo=timezone.utc).timestamp())
        assert parse_timestamp_sec("2025-02-21T14:30:00Z") == expected

    def test_iso_date_only_is_utc(self):
        expected = int(datetime(2025, 2, 21, tzinfo=timezone.utc).timestamp())
        assert parse_timestamp_sec("2025-02-21") == expected

    @pytest.mark.parametrize("value", ["not-a-date", "", None, "   "])
    def test_rejects_garbage(self, value):
        assert parse_timestamp_sec(value) is None

    @pytest.mark.parametrize("value", ["01.01.1960 10:00", "1960-01-01", "1969-12-31T00:00:00Z"])
    def test_rejects_pre_epoch(self, value):
        assert parse_timestamp_sec(value) is None

    @pytest.mark.parametrize("value", ["31.12.9999 99:00", "99.99.9999 23:59", "0001-01-01T00:00:00"])
    def test_out_of_range_is_none(self, value):
        assert parse_timestamp_sec(value) is None


class TestCoerceEpochSeconds:
    def test_seconds_unchanged(self):
        assert coerce_epoch_seconds(1700000000) == 1700000000

    def test_millis_above_threshold(self):
        assert coerce_epoch_seconds(1700000000123) == 1700000000

    def test_threshold_itself_is_seconds(self):
        assert coerce_epoch_seconds(EPOCH_MILLIS_THRESHOLD) == EPOCH_MILLIS_THRESHOLD


class TestPeriods:
    def test_week_id_iso_numbering(self):
        # 2025-01-01 is a Wednesday in ISO week 1 of 2025.
        assert week_id_from_sec(_local(2025, 1, 1, 12)) == "2025-W01"

    def test_week_id_year_boundary(self):
        # 2024-12-30 (Monday) already belongs to 2025-W01.
        assert week_id_from_sec(_local(2024, 12, 30, 12)) == "2025-W01"

    def test_week_id_zero_padded(self):
        assert week_id_from_sec(_local(2025, 2, 21, 12)) == "2025-W08"

    def test_week_bounds_monday_to_sunday(self):
        start, end = week_bounds_from_sec(_local(2025, 2, 21, 14, 30))
        assert start == _local(2025, 2, 17)
        assert end == start + 7 * 86400 - 1

    def test_month_id(self):
        assert month_id_from_sec(_local(2025, 2, 21, 14, 30)) == "2025-02"

    def test_month_bounds(self):
        start, end = month_bounds_from_sec(_local(2025, 2, 21, 14, 30))
        assert start == _local(2025, 2, 1)
        assert end == _local(2025, 3, 1) - 1

    def test_december_bounds(self):
        start, end = month_bounds_from_sec(_local(2024, 12, 31, 23))
        assert start == _local(2024, 12, 1)
        assert end == _local(2025, 1, 1) - 1


class TestDateKey:
    def test_local_date(self):
        assert date_key_from_sec(_local(2025, 2, 21, 14, 30)) == 20250221

    def test_falls_back_to_today(self):
        today = date.today()
        key = date_key_from_sec(None)
        # Allow for the test straddling midnight.
        yesterday = today - timedelta(days=1)
        assert key in {
            today.year * 10000 + today.month * 100 + today.day,
            yesterday.year * 10000 + yesterday.month * 100 + yesterday.day,
        }
