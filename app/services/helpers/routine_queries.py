"""
Routine / completion repository functions.

Every function takes the SQLAlchemy ``session`` as its first argument. The
same function therefore serves a standalone read (``db.session``) and a step
inside a caller's transaction; callers own commit/rollback.

Why this module exists:
  Reconciliation reads ("earliest/latest existing date") and writes ("insert
  the gap") must happen on the same transaction handle, otherwise two
  concurrent updates can both see the same gap and double-insert. Keeping
  all completion-table access here makes that rule auditable in one place.

Invariants enforced here rather than by callers:
  - ``delete_completions`` only ever removes ``pending`` rows.
  - ``insert_completions`` never inserts a row for a (step, date) pair that
    already has a row, whatever its status.
"""

import logging
from datetime import date, datetime

from sqlalchemy import delete, func, insert, select, update

from app.models.routine import RoutineStep, SkincareRoutine, StepCompletion, UserProfile

logger = logging.getLogger(__name__)


# ── Reads ───────────────────────────────────────────────────────────────────


def find_routine(session, routine_id: str) -> SkincareRoutine | None:
    return session.get(SkincareRoutine, routine_id)


def lock_routine(session, routine_id: str) -> SkincareRoutine | None:
    """Load a routine with a row lock (SELECT ... FOR UPDATE).

    Serialises concurrent reconciliations of the same routine on backends
    that support row locks; SQLite ignores the clause and relies on its
    database-level write lock instead.
    """
    return session.execute(
        select(SkincareRoutine)
        .where(SkincareRoutine.id == routine_id)
        .with_for_update()
    ).scalar_one_or_none()


def find_routine_by_user(session, user_profile_id: str) -> SkincareRoutine | None:
    return session.execute(
        select(SkincareRoutine).where(SkincareRoutine.user_profile_id == user_profile_id)
    ).scalar_one_or_none()


def find_user_profile(session, user_profile_id: str) -> UserProfile | None:
    return session.get(UserProfile, user_profile_id)


def find_user_timezone(session, user_profile_id: str) -> str | None:
    return session.execute(
        select(UserProfile.timezone).where(UserProfile.id == user_profile_id)
    ).scalar_one_or_none()


def find_step(session, step_id: str) -> RoutineStep | None:
    return session.get(RoutineStep, step_id)


def find_steps_by_routine(session, routine_id: str) -> list[RoutineStep]:
    return list(
        session.execute(
            select(RoutineStep)
            .where(RoutineStep.routine_id == routine_id)
            .order_by(RoutineStep.time_of_day, RoutineStep.order)
        ).scalars()
    )


def find_step_ids(session, routine_id: str) -> list[str]:
    return list(
        session.execute(
            select(RoutineStep.id).where(RoutineStep.routine_id == routine_id)
        ).scalars()
    )


def next_step_order(session, routine_id: str, time_of_day: str) -> int:
    current = session.execute(
        select(func.max(RoutineStep.order)).where(
            RoutineStep.routine_id == routine_id,
            RoutineStep.time_of_day == time_of_day,
        )
    ).scalar()
    return 0 if current is None else current + 1


def find_extreme_completion_date(session, step_ids: list[str], direction: str) -> date | None:
    """Earliest (``"min"``) or latest (``"max"``) scheduled date across ``step_ids``.

    Counts rows of every status. Returns None when there are no rows.
    """
    if direction not in ("min", "max"):
        raise ValueError(f"direction must be 'min' or 'max', got {direction!r}")
    if not step_ids:
        return None
    agg = func.min if direction == "min" else func.max
    return session.execute(
        select(agg(StepCompletion.scheduled_date)).where(
            StepCompletion.routine_step_id.in_(step_ids)
        )
    ).scalar()


def find_existing_completion_keys(
    session,
    step_ids: list[str],
    start: date,
    end: date,
) -> set[tuple[str, date]]:
    """(step_id, scheduled_date) pairs that already have a row in ``[start, end]``."""
    if not step_ids:
        return set()
    rows = session.execute(
        select(StepCompletion.routine_step_id, StepCompletion.scheduled_date).where(
            StepCompletion.routine_step_id.in_(step_ids),
            StepCompletion.scheduled_date >= start,
            StepCompletion.scheduled_date <= end,
        )
    ).all()
    return {(step_id, scheduled) for step_id, scheduled in rows}


def find_completion(session, completion_id: str) -> StepCompletion | None:
    return session.get(StepCompletion, completion_id)


def find_completions_by_ids(session, user_profile_id: str, completion_ids: list[str]) -> list[StepCompletion]:
    """The user's completions among ``completion_ids``; foreign ids are not returned."""
    if not completion_ids:
        return []
    stmt = (
        select(StepCompletion)
        .where(
            StepCompletion.user_profile_id == user_profile_id,
            StepCompletion.id.in_(completion_ids),
        )
        .order_by(StepCompletion.scheduled_date, StepCompletion.scheduled_time_of_day.desc())
    )
    return list(session.execute(stmt).scalars())


def find_completions_for_user(
    session,
    user_profile_id: str,
    start: date | None = None,
    end: date | None = None,
) -> list[StepCompletion]:
    stmt = select(StepCompletion).where(StepCompletion.user_profile_id == user_profile_id)
    if start is not None:
        stmt = stmt.where(StepCompletion.scheduled_date >= start)
    if end is not None:
        stmt = stmt.where(StepCompletion.scheduled_date <= end)
    stmt = stmt.order_by(
        StepCompletion.scheduled_date,
        StepCompletion.scheduled_time_of_day.desc(),  # morning before evening
    )
    return list(session.execute(stmt).scalars())


# ── Writes ──────────────────────────────────────────────────────────────────


def insert_completions(session, rows: list[dict]) -> int:
    """Bulk-insert generated completion rows, skipping instances that already exist.

    Returns the number of rows actually inserted.
    """
    if not rows:
        return 0

    step_ids = sorted({r["routine_step_id"] for r in rows})
    start = min(r["scheduled_date"] for r in rows)
    end = max(r["scheduled_date"] for r in rows)
    taken = find_existing_completion_keys(session, step_ids, start, end)

    fresh = []
    for row in rows:
        key = (row["routine_step_id"], row["scheduled_date"])
        if key in taken:
            continue
        taken.add(key)
        fresh.append(row)

    if len(fresh) < len(rows):
        logger.debug("Skipped %d completions whose date already has a row",
                     len(rows) - len(fresh))
    if fresh:
        session.execute(insert(StepCompletion), fresh)
    return len(fresh)


def delete_completions(
    session,
    step_ids: list[str],
    *,
    before: date | None = None,
    after: date | None = None,
) -> int:
    """Delete ``pending`` completions of ``step_ids``, optionally bounded by date.

    ``before`` deletes rows scheduled strictly before that date; ``after``
    deletes rows scheduled strictly after it. Rows in any other status are
    never touched. Returns the number of rows deleted.
    """
    if not step_ids:
        return 0
    stmt = delete(StepCompletion).where(
        StepCompletion.routine_step_id.in_(step_ids),
        StepCompletion.status == "pending",
    )
    if before is not None:
        stmt = stmt.where(StepCompletion.scheduled_date < before)
    if after is not None:
        stmt = stmt.where(StepCompletion.scheduled_date > after)
    result = session.execute(stmt.execution_options(synchronize_session="fetch"))
    return result.rowcount or 0


def mark_pending_overdue(session, now: datetime, user_profile_id: str | None = None) -> int:
    """Flip ``pending`` rows whose grace period ended before ``now`` to ``missed``."""
    stmt = update(StepCompletion).where(
        StepCompletion.status == "pending",
        StepCompletion.grace_period_end < now,
    )
    if user_profile_id is not None:
        stmt = stmt.where(StepCompletion.user_profile_id == user_profile_id)
    result = session.execute(
        stmt.values(status="missed", updated_at=now)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


def update_routine_status(session, routine: SkincareRoutine, status: str, now: datetime) -> SkincareRoutine:
    routine.status = status
    routine.updated_at = now
    session.flush()
    return routine


def update_routine_dates(session, routine: SkincareRoutine, fields: dict, now: datetime) -> SkincareRoutine:
    """Apply start_date/end_date changes (keys present in ``fields`` only)."""
    for attr in ("start_date", "end_date"):
        if attr in fields:
            setattr(routine, attr, fields[attr])
    routine.updated_at = now
    session.flush()
    return routine


def update_step_fields(session, step: RoutineStep, fields: dict, now: datetime) -> RoutineStep:
    for attr, value in fields.items():
        setattr(step, attr, value)
    step.updated_at = now
    session.flush()
    return step


def set_routine_start_date_flag(session, user_profile_id: str, value: bool) -> None:
    profile = session.get(UserProfile, user_profile_id)
    if profile is not None:
        profile.routine_start_date_set = value
