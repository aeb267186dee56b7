"""
Skincare Routine Platform
Completion generator.

Walks a ScheduleWindow day by day and emits one pending completion row per
(step, date) the step's frequency rule selects. Rows are plain dicts shaped
for ``insert(StepCompletion)``; nothing is written here.

Steps are grouped by time of day before the walk so each
(date, time_of_day) pair needs a single deadline computation no matter how
many steps share it.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable

from app.models.routine import TIMES_OF_DAY
from app.services.deadlines import DEFAULT_GRACE_PERIOD, DeadlineCalculator
from app.services.frequency import rule_for, should_generate
from app.services.schedule_window import ScheduleWindow

logger = logging.getLogger(__name__)


def group_by_time_of_day(steps: Iterable) -> dict[str, list]:
    grouped: dict[str, list] = {tod: [] for tod in TIMES_OF_DAY}
    for step in steps:
        grouped.setdefault(step.time_of_day, []).append(step)
    return grouped


def generate_completions(
    steps: Iterable,
    window: ScheduleWindow,
    tz_name: str,
    user_profile_id: str,
    *,
    grace_period: timedelta = DEFAULT_GRACE_PERIOD,
) -> list[dict]:
    """Return pending completion rows for ``steps`` over ``window``.

    Args:
        steps: Objects exposing ``id``, ``frequency``, ``days``, ``time_of_day``.
        window: Inclusive date range; an empty window yields no rows.
        tz_name: Subscriber's IANA timezone (deadlines are local wall-clock).
        user_profile_id: Owner stamped on every row.
        grace_period: Time after the on-time deadline during which a late
            completion is still accepted.
    """
    if window.is_empty:
        return []

    grouped = [
        (time_of_day, [(step.id, rule_for(step)) for step in group])
        for time_of_day, group in group_by_time_of_day(steps).items()
        if group
    ]
    if not grouped:
        return []

    get_deadlines = DeadlineCalculator(tz_name, grace_period)
    rows: list[dict] = []

    for current in window.dates():
        for time_of_day, rules in grouped:
            deadlines = None
            for step_id, rule in rules:
                if not should_generate(rule, current):
                    continue
                if deadlines is None:
                    deadlines = get_deadlines(current, time_of_day)
                rows.append({
                    "routine_step_id": step_id,
                    "user_profile_id": user_profile_id,
                    "scheduled_date": current,
                    "scheduled_time_of_day": time_of_day,
                    "on_time_deadline": deadlines.on_time_deadline,
                    "grace_period_end": deadlines.grace_period_end,
                    "status": "pending",
                    "completed_at": None,
                })

    logger.debug(
        "Generated %d completions over %s..%s (%d deadline computations)",
        len(rows), window.start, window.end, get_deadlines.computed,
    )
    return rows
