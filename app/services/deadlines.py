"""
Skincare Routine Platform
Deadline calculation for scheduled step completions.

A step scheduled on a calendar date is "on time" until a fixed local clock
time in the subscriber's timezone, and can still be completed "late" until the
grace period ends:

    morning  -> 12:00:00 local, grace ends 24h later
    evening  -> 23:59:59 local, grace ends 24h later

Both instants are returned in UTC using the zone's offset on *that* date, so
DST transitions inside a generation window are handled per day.

Usage:
    deadlines = compute_deadlines(date(2025, 10, 31), "morning", "Africa/Nairobi")
    deadlines.on_time_deadline   # 2025-10-31 09:00:00+00:00

    get_deadlines = DeadlineCalculator("Europe/London")
    get_deadlines(day, "evening")   # memoised per (day, time_of_day)
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = timedelta(hours=24)

LOCAL_DEADLINE_TIMES: dict[str, time] = {
    "morning": time(12, 0, 0),
    "evening": time(23, 59, 59),
}


class Deadlines(NamedTuple):
    on_time_deadline: datetime
    grace_period_end: datetime


def _deadlines_in_zone(
    scheduled_date: date,
    time_of_day: str,
    zone: ZoneInfo,
    grace_period: timedelta,
) -> Deadlines:
    local_deadline = datetime.combine(
        scheduled_date, LOCAL_DEADLINE_TIMES[time_of_day], tzinfo=zone,
    )
    on_time = local_deadline.astimezone(timezone.utc)
    return Deadlines(on_time, on_time + grace_period)


def compute_deadlines(
    scheduled_date: date,
    time_of_day: str,
    tz_name: str,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
) -> Deadlines:
    """Return the UTC on-time deadline and grace-period end for one instance.

    Raises:
        KeyError: ``time_of_day`` is not ``morning`` / ``evening``.
        zoneinfo.ZoneInfoNotFoundError: ``tz_name`` is not an IANA zone.
    """
    return _deadlines_in_zone(scheduled_date, time_of_day, ZoneInfo(tz_name), grace_period)


class DeadlineCalculator:
    """
    Deadline calculator bound to one timezone, memoised per (date, time_of_day).

    Create one per generation run and discard it afterwards; the cache must
    not outlive the run because a subscriber's timezone can change between
    runs. The zone is resolved eagerly so an invalid name fails before any
    rows are produced.
    """

    def __init__(self, tz_name: str, grace_period: timedelta = DEFAULT_GRACE_PERIOD):
        self.tz_name = tz_name
        self.zone = ZoneInfo(tz_name)
        self.grace_period = grace_period
        self._cache: dict[tuple[date, str], Deadlines] = {}
        self.computed = 0

    def __call__(self, scheduled_date: date, time_of_day: str) -> Deadlines:
        key = (scheduled_date, time_of_day)
        cached = self._cache.get(key)
        if cached is None:
            cached = _deadlines_in_zone(scheduled_date, time_of_day, self.zone, self.grace_period)
            self._cache[key] = cached
            self.computed += 1
        return cached

    def __repr__(self):
        return f"<DeadlineCalculator {self.tz_name} cached={len(self._cache)}>"
