"""
Tests — deadline calculation.

Covers:
    1. Morning / evening local deadlines converted to UTC
    2. Grace period end is 24h after the on-time deadline
    3. DST: offset of the scheduled date, not of today
    4. DeadlineCalculator memoisation per (date, time_of_day)
"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfoNotFoundError

import pytest

from app.services.deadlines import DeadlineCalculator, compute_deadlines

UTC = timezone.utc


class TestComputeDeadlines:

    def test_nairobi_morning(self):
        d = compute_deadlines(date(2025, 10, 31), "morning", "Africa/Nairobi")
        assert d.on_time_deadline == datetime(2025, 10, 31, 9, 0, tzinfo=UTC)
        assert d.grace_period_end == datetime(2025, 11, 1, 9, 0, tzinfo=UTC)

    def test_nairobi_evening(self):
        d = compute_deadlines(date(2025, 10, 31), "evening", "Africa/Nairobi")
        assert d.on_time_deadline == datetime(2025, 10, 31, 20, 59, 59, tzinfo=UTC)

    def test_utc_evening(self):
        d = compute_deadlines(date(2025, 10, 27), "evening", "UTC")
        assert d.on_time_deadline == datetime(2025, 10, 27, 23, 59, 59, tzinfo=UTC)
        assert d.grace_period_end == datetime(2025, 10, 28, 23, 59, 59, tzinfo=UTC)

    def test_grace_period_always_after_deadline(self):
        d = compute_deadlines(date(2025, 6, 1), "morning", "America/Los_Angeles")
        assert d.grace_period_end - d.on_time_deadline == timedelta(hours=24)

    def test_custom_grace_period(self):
        d = compute_deadlines(date(2025, 6, 1), "morning", "UTC", timedelta(hours=6))
        assert d.grace_period_end == datetime(2025, 6, 1, 18, 0, tzinfo=UTC)

    def test_results_are_utc(self):
        d = compute_deadlines(date(2025, 6, 1), "morning", "Asia/Tokyo")
        assert d.on_time_deadline.utcoffset() == timedelta(0)


class TestDaylightSaving:

    def test_london_across_autumn_change(self):
        # BST ends 2025-10-26
        before = compute_deadlines(date(2025, 10, 25), "morning", "Europe/London")
        after = compute_deadlines(date(2025, 10, 26), "morning", "Europe/London")
        assert before.on_time_deadline == datetime(2025, 10, 25, 11, 0, tzinfo=UTC)
        assert after.on_time_deadline == datetime(2025, 10, 26, 12, 0, tzinfo=UTC)

    def test_new_york_across_spring_change(self):
        # EDT starts 2025-03-09
        before = compute_deadlines(date(2025, 3, 8), "morning", "America/New_York")
        after = compute_deadlines(date(2025, 3, 9), "morning", "America/New_York")
        assert before.on_time_deadline == datetime(2025, 3, 8, 17, 0, tzinfo=UTC)
        assert after.on_time_deadline == datetime(2025, 3, 9, 16, 0, tzinfo=UTC)


class TestDeadlineCalculator:

    def test_matches_compute_deadlines(self):
        calc = DeadlineCalculator("Europe/Berlin")
        day = date(2025, 12, 24)
        assert calc(day, "evening") == compute_deadlines(day, "evening", "Europe/Berlin")

    def test_memoises_per_key(self):
        calc = DeadlineCalculator("UTC")
        first = calc(date(2025, 1, 1), "morning")
        second = calc(date(2025, 1, 1), "morning")
        assert first is second
        assert calc.computed == 1

        calc(date(2025, 1, 1), "evening")
        calc(date(2025, 1, 2), "morning")
        assert calc.computed == 3

    def test_invalid_timezone_fails_fast(self):
        with pytest.raises(ZoneInfoNotFoundError):
            DeadlineCalculator("Mars/Olympus_Mons")

    def test_unknown_time_of_day(self):
        with pytest.raises(KeyError):
            compute_deadlines(date(2025, 1, 1), "noon", "UTC")
