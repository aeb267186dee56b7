"""
Skincare Routine Platform
Rolling generation window.

Completions are materialised for a contiguous, inclusive range of calendar
dates that never starts before "today" and never spans more than the rolling
horizon (60 days by default):

    effective_start = max(routine_start, today)
    effective_end   = min(effective_start + horizon - 1, routine_end)   # routine_end optional

All inputs are normalised to calendar dates (UTC) before comparison. A
window whose start is after its end is empty; that is a valid result, not an
error (e.g. a routine whose end date has already passed).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterator, NamedTuple

DEFAULT_WINDOW_DAYS = 60

ONE_DAY = timedelta(days=1)


def to_calendar_date(value) -> date:
    """Normalise a date or datetime to its UTC calendar date."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


class ScheduleWindow(NamedTuple):
    start: date
    end: date

    @property
    def is_empty(self) -> bool:
        return self.start > self.end

    @property
    def days(self) -> int:
        return 0 if self.is_empty else (self.end - self.start).days + 1

    def dates(self) -> Iterator[date]:
        return iter_dates(self.start, self.end)

    def clamp_end(self, end: date) -> "ScheduleWindow":
        return ScheduleWindow(self.start, min(self.end, end))


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date in ``[start, end]``."""
    current = start
    while current <= end:
        yield current
        current += ONE_DAY


def compute_window(
    routine_start,
    routine_end,
    today,
    max_horizon_days: int = DEFAULT_WINDOW_DAYS,
) -> ScheduleWindow:
    """Return the effective ``[start, end]`` generation window for a routine."""
    if max_horizon_days < 1:
        raise ValueError("max_horizon_days must be >= 1")

    effective_start = max(to_calendar_date(routine_start), to_calendar_date(today))
    default_end = effective_start + timedelta(days=max_horizon_days - 1)
    if routine_end is None:
        return ScheduleWindow(effective_start, default_end)
    return ScheduleWindow(effective_start, min(default_end, to_calendar_date(routine_end)))
