"""
Tests — rolling generation window.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.services.schedule_window import ScheduleWindow, compute_window, iter_dates

TODAY = date(2025, 10, 27)


class TestComputeWindow:

    def test_starts_today_indefinite(self):
        w = compute_window(TODAY, None, TODAY)
        assert w == ScheduleWindow(TODAY, TODAY + timedelta(days=59))
        assert w.days == 60

    def test_past_start_clamped_to_today(self):
        w = compute_window(TODAY - timedelta(days=30), None, TODAY)
        assert w.start == TODAY
        assert w.days == 60

    def test_future_start(self):
        start = TODAY + timedelta(days=14)
        w = compute_window(start, None, TODAY)
        assert w.start == start
        assert w.end == start + timedelta(days=59)

    def test_end_date_tightens(self):
        end = TODAY + timedelta(days=9)
        w = compute_window(TODAY, end, TODAY)
        assert w.end == end
        assert w.days == 10

    def test_end_date_beyond_horizon_is_capped(self):
        w = compute_window(TODAY, TODAY + timedelta(days=365), TODAY)
        assert w.end == TODAY + timedelta(days=59)

    def test_end_in_past_gives_empty_window(self):
        w = compute_window(TODAY - timedelta(days=20), TODAY - timedelta(days=1), TODAY)
        assert w.is_empty
        assert w.days == 0
        assert list(w.dates()) == []

    def test_single_day_window(self):
        w = compute_window(TODAY, TODAY, TODAY)
        assert list(w.dates()) == [TODAY]

    def test_custom_horizon(self):
        w = compute_window(TODAY, None, TODAY, max_horizon_days=7)
        assert w.end == TODAY + timedelta(days=6)

    def test_horizon_must_be_positive(self):
        with pytest.raises(ValueError):
            compute_window(TODAY, None, TODAY, max_horizon_days=0)

    def test_datetimes_normalised_to_utc_date(self):
        # 23:30 in New York on the 26th is already the 27th in UTC
        ny = timezone(timedelta(hours=-4))
        w = compute_window(datetime(2025, 10, 26, 23, 30, tzinfo=ny), None,
                           datetime(2025, 10, 20, 12, 0, tzinfo=timezone.utc))
        assert w.start == TODAY


class TestScheduleWindow:

    def test_clamp_end(self):
        w = ScheduleWindow(TODAY, TODAY + timedelta(days=59))
        assert w.clamp_end(TODAY + timedelta(days=5)).end == TODAY + timedelta(days=5)
        assert w.clamp_end(TODAY + timedelta(days=90)).end == w.end

    def test_iter_dates_inclusive(self):
        dates = list(iter_dates(TODAY, TODAY + timedelta(days=2)))
        assert dates == [TODAY, TODAY + timedelta(days=1), TODAY + timedelta(days=2)]
