"""
Skincare Routine Platform
Compliance service: marking completions done / undone, the overdue sweep and
adherence statistics.

Status rules for one completion (``resolve_completion``):

    undo                          -> pending, completed_at cleared
    already missed                -> rejected
    already on-time / late        -> unchanged
    attempted after grace end     -> rejected (the sweep marks it missed)
    attempted <= on-time deadline -> on-time
    otherwise                     -> late
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from app.core.exceptions import CompletionRejected, NotFoundError, ValidationError
from app.models import db
from app.models.routine import DONE_STATUSES, RoutineStep
from app.services.helpers import routine_queries as rq
from app.services.helpers.transactions import atomic, require_uuid
from app.utils.helpers import as_utc, parse_date_input, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResolution:
    status: str
    completed_at: datetime | None
    changed: bool
    rejected_reason: str | None = None

    @property
    def rejected(self) -> bool:
        return self.rejected_reason is not None


def resolve_completion(existing, attempted_at: datetime, marking_complete: bool) -> CompletionResolution:
    """Decide the new status of ``existing`` for a done/undo request at ``attempted_at``.

    Pure: reads ``status``, ``completed_at``, ``on_time_deadline`` and
    ``grace_period_end`` from ``existing`` and never mutates it.
    """
    if not marking_complete:
        changed = existing.status != "pending" or existing.completed_at is not None
        return CompletionResolution("pending", None, changed)

    if existing.status == "missed":
        return CompletionResolution(
            existing.status, existing.completed_at, False,
            rejected_reason="Cannot complete a missed step",
        )
    if existing.status in DONE_STATUSES:
        return CompletionResolution(existing.status, existing.completed_at, False)

    attempted_at = as_utc(attempted_at)
    if attempted_at > as_utc(existing.grace_period_end):
        return CompletionResolution(
            existing.status, existing.completed_at, False,
            rejected_reason="Grace period has ended for this step",
        )

    status = "on-time" if attempted_at <= as_utc(existing.on_time_deadline) else "late"
    return CompletionResolution(status, attempted_at, True)


def _apply(completion, resolution: CompletionResolution, stamp: datetime) -> None:
    if resolution.changed:
        completion.status = resolution.status
        completion.completed_at = resolution.completed_at
        completion.updated_at = stamp


def _resolve_batch(completions, attempted_at: datetime, completed: bool) -> dict:
    """Apply the resolver to each row; rejected rows are skipped and reported."""
    updated, rejected = 0, []
    for completion in completions:
        resolution = resolve_completion(completion, attempted_at, completed)
        if resolution.rejected:
            rejected.append(completion.id)
            continue
        if resolution.changed:
            _apply(completion, resolution, attempted_at)
            updated += 1
    return {"updated": updated, "rejected": rejected, "completions": completions}


def _parse_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", details={field: "invalid"})
    return value


def _parse_range(start, end):
    try:
        start_date = parse_date_input(start)
        end_date = parse_date_input(end)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"date": "invalid"}) from None
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end must be on or after start", details={"end": "before start"})
    return start_date, end_date


# ═══════════════════════════════════════════════════════════════════════════
#  Marking completions
# ═══════════════════════════════════════════════════════════════════════════


def update_completion(completion_id, user_profile_id, completed, *, session=None,
                      now: Callable = utcnow):
    """Mark one completion done (``completed=True``) or undo it.

    A completion owned by another user is reported as not found.
    """
    session = session or db.session
    try:
        completion_id = require_uuid(completion_id, "completion_id")
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        completed = _parse_bool(completed, "completed")
    except ValidationError as exc:
        return None, exc.to_error()

    def _update():
        completion = rq.find_completion(session, completion_id)
        if completion is None or completion.user_profile_id != user_profile_id:
            raise NotFoundError("StepCompletion", completion_id)
        attempted_at = as_utc(now())
        resolution = resolve_completion(completion, attempted_at, completed)
        if resolution.rejected:
            raise CompletionRejected(resolution.rejected_reason,
                                     details={"status": completion.status})
        _apply(completion, resolution, attempted_at)
        session.flush()
        return completion

    return atomic(session, "update_completion", _update,
                  user_profile_id=user_profile_id)


def update_completions_by_date(user_profile_id, on_date, completed, *, session=None,
                               now: Callable = utcnow):
    """Mark every completion of the user on ``on_date`` done, or undo them all.

    Completions the resolver rejects are skipped and reported, not fatal.

    Returns:
        ({"updated": int, "rejected": [completion_id, ...],
          "completions": [StepCompletion, ...]}, None)
    """
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        completed = _parse_bool(completed, "completed")
        try:
            day = parse_date_input(on_date)
        except ValueError as exc:
            raise ValidationError(str(exc), details={"date": "invalid"}) from None
        if day is None:
            raise ValidationError("date is required", details={"date": "required"})
    except ValidationError as exc:
        return None, exc.to_error()

    def _update():
        completions = rq.find_completions_for_user(session, user_profile_id, day, day)
        result = _resolve_batch(completions, as_utc(now()), completed)
        session.flush()
        return result

    return atomic(session, "update_completions_by_date", _update,
                  user_profile_id=user_profile_id)


def update_completions_by_ids(user_profile_id, completion_ids, completed, *, session=None,
                              now: Callable = utcnow):
    """Mark a batch of the user's completions done, or undo them.

    Every id must belong to the user; otherwise the whole batch is NotFound
    and nothing is written. Rejected rows are skipped and reported.

    Returns:
        ({"updated": int, "rejected": [completion_id, ...],
          "completions": [StepCompletion, ...]}, None)
    """
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        completed = _parse_bool(completed, "completed")
        if not isinstance(completion_ids, list) or not completion_ids:
            raise ValidationError("completion_ids must be a non-empty list",
                                  details={"completion_ids": "required"})
        wanted = list(dict.fromkeys(require_uuid(c, "completion_ids") for c in completion_ids))
    except ValidationError as exc:
        return None, exc.to_error()

    def _update():
        completions = rq.find_completions_by_ids(session, user_profile_id, wanted)
        missing = set(wanted) - {c.id for c in completions}
        if missing:
            raise NotFoundError("StepCompletion", ", ".join(sorted(missing)))

        result = _resolve_batch(completions, as_utc(now()), completed)
        session.flush()
        return result

    return atomic(session, "update_completions_by_ids", _update,
                  user_profile_id=user_profile_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Overdue sweep
# ═══════════════════════════════════════════════════════════════════════════


def mark_overdue_as_missed(user_profile_id, *, session=None, now: Callable = utcnow):
    """Transition the user's stale ``pending`` completions to ``missed``.

    Stale means the grace period ended before ``now``. Idempotent.

    Returns:
        (number_of_rows_marked, None)
    """
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
    except ValidationError as exc:
        return None, exc.to_error()

    return atomic(
        session,
        "mark_overdue_as_missed",
        lambda: rq.mark_pending_overdue(session, as_utc(now()), user_profile_id),
        user_profile_id=user_profile_id,
    )


def sweep_all_overdue(*, session=None, now: Callable = utcnow):
    """Run the overdue sweep across every user in one statement."""
    session = session or db.session
    return atomic(
        session,
        "sweep_all_overdue",
        lambda: rq.mark_pending_overdue(session, as_utc(now())),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Reads
# ═══════════════════════════════════════════════════════════════════════════


def list_completions(user_profile_id, start=None, end=None, *, session=None):
    """Completions of the user in ``[start, end]`` ordered by date, morning first."""
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        start_date, end_date = _parse_range(start, end)
    except ValidationError as exc:
        return None, exc.to_error()
    return rq.find_completions_for_user(session, user_profile_id, start_date, end_date), None


def _tally(completions) -> dict:
    counts = {"prescribed": len(completions), "completed": 0,
              "on_time": 0, "late": 0, "missed": 0}
    for c in completions:
        if c.status == "on-time":
            counts["on_time"] += 1
        elif c.status == "late":
            counts["late"] += 1
        elif c.status == "missed":
            counts["missed"] += 1
    counts["completed"] = counts["on_time"] + counts["late"]
    return counts


def get_compliance_stats(user_profile_id, start=None, end=None, *, session=None):
    """Adherence statistics over ``[start, end]``.

    Pending completions are not counted: only rows that have been done or
    missed contribute.

    Returns:
        ({"overall": {...}, "am": {...}, "pm": {...}, "steps": [...]}, None)
    """
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        start_date, end_date = _parse_range(start, end)
    except ValidationError as exc:
        return None, exc.to_error()

    countable = [
        c for c in rq.find_completions_for_user(session, user_profile_id, start_date, end_date)
        if c.status != "pending"
    ]

    overall = _tally(countable)
    del overall["completed"]
    am = _tally([c for c in countable if c.scheduled_time_of_day == "morning"])
    pm = _tally([c for c in countable if c.scheduled_time_of_day == "evening"])

    by_step = defaultdict(list)
    for c in countable:
        by_step[c.routine_step_id].append(c)

    steps_by_id = {}
    if by_step:
        steps_by_id = {
            s.id: s for s in session.query(RoutineStep)
            .filter(RoutineStep.id.in_(list(by_step))).all()
        }

    steps = []
    for step_id, rows in by_step.items():
        step = steps_by_id.get(step_id)
        if step is None:
            continue
        entry = {
            "routine_step_id": step_id,
            "routine_step": step.routine_step,
            "product_name": step.product_name,
            "time_of_day": step.time_of_day,
            "frequency": step.frequency,
            **_tally(rows),
            "missed_dates": [c.scheduled_date.isoformat() for c in rows if c.status == "missed"],
        }
        steps.append(entry)

    return {"overall": overall, "am": am, "pm": pm, "steps": steps}, None
