"""Tests for shared time arithmetic."""

import datetime as dt

import pytest

from src.utils import (
    MINUTES_PER_DAY,
    day_of_week,
    from_minutes,
    intervals_overlap,
    parse_time,
    to_minutes,
    utc_now,
)


class TestMinutes:
    def test_to_minutes(self):
        assert to_minutes(dt.time(10, 45)) == 645

    def test_midnight_is_zero(self):
        assert to_minutes(dt.time(0, 0)) == 0

    def test_seconds_are_ignored(self):
        assert to_minutes(dt.time(8, 0, 59)) == 480

    def test_from_minutes(self):
        assert from_minutes(645) == dt.time(10, 45)

    def test_last_minute_of_day(self):
        assert from_minutes(MINUTES_PER_DAY - 1) == dt.time(23, 59)

    @pytest.mark.parametrize("minutes", [-1, MINUTES_PER_DAY, MINUTES_PER_DAY + 30])
    def test_outside_day_raises(self, minutes):
        with pytest.raises(ValueError, match="outside a single day"):
            from_minutes(minutes)


class TestDayOfWeek:
    @pytest.mark.parametrize(
        "date, expected",
        [
            (dt.date(2025, 3, 16), 0),  # Sunday
            (dt.date(2025, 3, 17), 1),
            (dt.date(2025, 3, 18), 2),
            (dt.date(2025, 3, 22), 6),  # Saturday
        ],
    )
    def test_sunday_is_zero(self, date, expected):
        assert day_of_week(date) == expected


class TestIntervalsOverlap:
    def test_partial_overlap(self):
        assert intervals_overlap(600, 645, 630, 660)

    def test_containment(self):
        assert intervals_overlap(600, 700, 620, 640)

    def test_touching_endpoints_do_not_overlap(self):
        assert not intervals_overlap(600, 645, 645, 675)
        assert not intervals_overlap(645, 675, 600, 645)

    def test_disjoint(self):
        assert not intervals_overlap(600, 630, 700, 730)


class TestParseTime:
    def test_hours_minutes(self):
        assert parse_time("09:30") == dt.time(9, 30)

    def test_with_seconds_and_whitespace(self):
        assert parse_time(" 17:00:00 ") == dt.time(17, 0)

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid time"):
            parse_time("half past nine")


class TestUtcNow:
    def test_is_timezone_aware(self):
        assert utc_now().tzinfo is not None
