"""
Skincare Routine Platform
Routine service: routine / step lifecycle plus completion reconciliation.

Every mutating entry point runs as one transaction on ``session`` (default
``db.session``): the metadata write and any completion deletes/inserts it
triggers commit together or not at all. Entry points return the platform's
tuple result, ``(value, None)`` or ``(None, error_dict)``, and never raise
across the service boundary.

Time is injected: ``now`` is a zero-argument callable returning an aware UTC
datetime. "Today" for window purposes is the UTC calendar date of ``now()``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Callable

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models import db
from app.models.routine import (
    DAY_DEPENDENT_FREQUENCIES,
    FREQUENCIES,
    SCHEDULING_FIELDS,
    TIMES_OF_DAY,
    RoutineStep,
    SkincareRoutine,
)
from app.services.frequency import normalize_days
from app.services.helpers import routine_queries as rq
from app.services.helpers.transactions import atomic, require_uuid
from app.services.reconciliation import RoutineReconciler, scheduling_settings
from app.services.schedule_window import to_calendar_date
from app.utils.helpers import as_utc, parse_date_input, parse_uuid, utcnow

logger = logging.getLogger(__name__)

STEP_TEXT_FIELDS = {
    "routine_step": 50,
    "product_name": 200,
    "product_url": 500,
    "instructions": None,
}
REQUIRED_STEP_FIELDS = ("routine_step", "product_name", "time_of_day")


# ═══════════════════════════════════════════════════════════════════════════
#  Internals
# ═══════════════════════════════════════════════════════════════════════════


def _parse_date_field(data: dict, field: str, *, nullable: bool):
    try:
        value = parse_date_input(data.get(field))
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: "invalid date"}) from None
    if value is None and not nullable:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _parse_name(data: dict) -> str:
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if len(name) > 200:
        raise ValidationError("name must be at most 200 characters",
                              details={"name": "too long"})
    return name


def _check_date_order(start, end) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError("end_date must be on or after start_date",
                              details={"end_date": "before start_date"})


def _today(now: Callable) -> date:
    return to_calendar_date(as_utc(now()))


def _reconciler(session, routine, now: Callable) -> RoutineReconciler:
    window_days, grace = scheduling_settings()
    return RoutineReconciler(
        session, routine, today=_today(now), window_days=window_days, grace_period=grace,
    )


def _clean_step_fields(data: dict, *, partial: bool) -> dict:
    """Validate step payload keys and return the normalised subset present.

    Raises ValidationError before anything is written.
    """
    fields: dict = {}
    errors: dict = {}

    for field, max_len in STEP_TEXT_FIELDS.items():
        if field not in data:
            continue
        value = data[field]
        if value is None:
            if field in REQUIRED_STEP_FIELDS:
                errors[field] = "required"
            else:
                fields[field] = None
            continue
        value = str(value).strip()
        if field in REQUIRED_STEP_FIELDS and not value:
            errors[field] = "required"
        elif max_len and len(value) > max_len:
            errors[field] = f"max {max_len} characters"
        else:
            fields[field] = value

    if "frequency" in data:
        if data["frequency"] not in FREQUENCIES:
            errors["frequency"] = f"must be one of {', '.join(FREQUENCIES)}"
        else:
            fields["frequency"] = data["frequency"]

    if "time_of_day" in data:
        if data["time_of_day"] not in TIMES_OF_DAY:
            errors["time_of_day"] = "must be morning or evening"
        else:
            fields["time_of_day"] = data["time_of_day"]

    if "days" in data:
        try:
            fields["days"] = normalize_days(data["days"])
        except ValueError as exc:
            errors["days"] = str(exc)

    if not partial:
        for field in REQUIRED_STEP_FIELDS:
            if field not in fields and field not in errors:
                errors[field] = "required"
        fields.setdefault("frequency", "daily")
        fields.setdefault("days", [])

    if errors:
        raise ValidationError("Invalid routine step", details=errors)
    return fields


def _check_frequency_days(frequency: str, days: list, step_label: str) -> None:
    if frequency == "specific_days" and not days:
        raise ValidationError("days is required when frequency is specific_days",
                              details={"days": "required"})
    if frequency in DAY_DEPENDENT_FREQUENCIES and not days:
        logger.warning("Step %s has frequency %r but no days; it will never be scheduled",
                       step_label, frequency)


def _scheduling_changed(step: RoutineStep, fields: dict) -> bool:
    for field in SCHEDULING_FIELDS:
        if field not in fields:
            continue
        current = getattr(step, field)
        if field == "days":
            current = normalize_days(current or [])
        if fields[field] != current:
            return True
    return False


# ═══════════════════════════════════════════════════════════════════════════
#  Reconciling operations
# ═══════════════════════════════════════════════════════════════════════════


def publish_routine(routine_id, *, session=None, now: Callable = utcnow):
    """Flip a draft routine to published and materialise its initial window.

    The status flip and the generated completions commit together, so a
    routine is published if and only if its initial schedule exists.

    Returns:
        (SkincareRoutine, None) on success, (None, error_dict) otherwise.
    """
    session = session or db.session
    try:
        routine_id = require_uuid(routine_id, "routine_id")
    except ValidationError as exc:
        return None, exc.to_error()

    def _publish():
        routine = rq.lock_routine(session, routine_id)
        if routine is None:
            raise NotFoundError("Routine", routine_id)
        if routine.is_published:
            raise InvalidStateError("Routine is already published")
        steps = rq.find_steps_by_routine(session, routine_id)
        if not steps:
            raise InvalidStateError("Cannot publish a routine without steps")
        if rq.find_user_timezone(session, routine.user_profile_id) is None:
            raise InvalidStateError("Routine owner profile not found")

        rq.update_routine_status(session, routine, "published", as_utc(now()))
        _reconciler(session, routine, now).publish(steps)
        return routine

    return atomic(session, "publish_routine", _publish, routine_id=routine_id)


def update_routine(routine_id, data: dict, *, session=None, now: Callable = utcnow):
    """Update name / start_date / end_date, reconciling completions when published.

    ``end_date`` may be sent as null to make the routine indefinite.
    Supplying ``start_date`` also marks the owner's profile as having set one.
    """
    session = session or db.session
    try:
        routine_id = require_uuid(routine_id, "routine_id")
        fields = {}
        if "name" in data:
            fields["name"] = _parse_name(data)
        if "start_date" in data:
            fields["start_date"] = _parse_date_field(data, "start_date", nullable=False)
        if "end_date" in data:
            fields["end_date"] = _parse_date_field(data, "end_date", nullable=True)
    except ValidationError as exc:
        return None, exc.to_error()

    def _update():
        routine = rq.lock_routine(session, routine_id)
        if routine is None:
            raise NotFoundError("Routine", routine_id)

        old_start, old_end = routine.start_date, routine.end_date
        _check_date_order(fields.get("start_date", old_start),
                          fields.get("end_date", old_end))

        stamp = as_utc(now())
        if "name" in fields:
            routine.name = fields["name"]
        rq.update_routine_dates(session, routine, fields, stamp)
        if "start_date" in fields:
            rq.set_routine_start_date_flag(session, routine.user_profile_id, True)

        if routine.is_published:
            reconciler = _reconciler(session, routine, now)
            reconciler.apply_date_change(
                old_start,
                old_end,
                start_changed="start_date" in fields,
                end_changed="end_date" in fields,
            )
            logger.info(
                "Routine dates reconciled: %d deleted, %d inserted",
                reconciler.deleted, reconciler.inserted,
                extra={"routine_id": routine.id},
            )
        return routine

    return atomic(session, "update_routine", _update, routine_id=routine_id)


def update_routine_step(step_id, data: dict, *, session=None, now: Callable = utcnow):
    """Update a step; regenerate its pending completions on a scheduling change.

    Only ``frequency``, ``days`` and ``time_of_day`` count as scheduling
    fields, and only when the new value differs from the stored one. Draft
    routines and descriptive edits are metadata-only.
    """
    session = session or db.session
    try:
        step_id = require_uuid(step_id, "step_id")
        fields = _clean_step_fields(data, partial=True)
    except ValidationError as exc:
        return None, exc.to_error()

    def _update():
        step = rq.find_step(session, step_id)
        if step is None:
            raise NotFoundError("RoutineStep", step_id)
        routine = rq.lock_routine(session, step.routine_id)
        if routine is None:
            raise NotFoundError("Routine", step.routine_id)

        _check_frequency_days(
            fields.get("frequency", step.frequency),
            fields.get("days", step.days or []),
            step_id,
        )

        stamp = as_utc(now())
        if routine.is_published and _scheduling_changed(step, fields):
            reconciler = _reconciler(session, routine, now)
            window = reconciler.step_window()
            rq.update_step_fields(session, step, fields, stamp)
            reconciler.regenerate_step(step, window)
        else:
            rq.update_step_fields(session, step, fields, stamp)
        return step

    return atomic(session, "update_routine_step", _update, step_id=step_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Routine lifecycle
# ═══════════════════════════════════════════════════════════════════════════


def create_routine(user_profile_id, data: dict, *, session=None, now: Callable = utcnow):
    """Create the user's (single) routine in draft status."""
    session = session or db.session
    try:
        user_profile_id = require_uuid(user_profile_id, "user_profile_id")
        name = _parse_name(data)
        start_date = _parse_date_field(data, "start_date", nullable=False)
        end_date = _parse_date_field(data, "end_date", nullable=True)
        _check_date_order(start_date, end_date)
    except ValidationError as exc:
        return None, exc.to_error()

    def _create():
        if rq.find_user_profile(session, user_profile_id) is None:
            raise NotFoundError("UserProfile", user_profile_id)
        if rq.find_routine_by_user(session, user_profile_id) is not None:
            raise InvalidStateError("User already has a routine")
        stamp = as_utc(now())
        routine = SkincareRoutine(
            user_profile_id=user_profile_id,
            name=name,
            start_date=start_date,
            end_date=end_date,
            status="draft",
            saved_as_template=bool(data.get("saved_as_template", False)),
            created_at=stamp,
            updated_at=stamp,
        )
        session.add(routine)
        session.flush()
        return routine

    return atomic(session, "create_routine", _create, user_profile_id=user_profile_id)


def get_routine(user_profile_id, *, session=None) -> SkincareRoutine | None:
    """Return the user's routine, or None when they have none."""
    session = session or db.session
    try:
        user_profile_id = parse_uuid(user_profile_id)
    except (ValueError, AttributeError, TypeError):
        return None
    return rq.find_routine_by_user(session, user_profile_id)


def delete_routine(routine_id, *, session=None):
    """Delete a routine with its steps and completions; reset the profile flag."""
    session = session or db.session
    try:
        routine_id = require_uuid(routine_id, "routine_id")
    except ValidationError as exc:
        return None, exc.to_error()

    def _delete():
        routine = rq.lock_routine(session, routine_id)
        if routine is None:
            raise NotFoundError("Routine", routine_id)
        rq.set_routine_start_date_flag(session, routine.user_profile_id, False)
        session.delete(routine)
        session.flush()
        return True

    return atomic(session, "delete_routine", _delete, routine_id=routine_id)


# ═══════════════════════════════════════════════════════════════════════════
#  Step lifecycle
# ═══════════════════════════════════════════════════════════════════════════


def create_routine_step(routine_id, data: dict, *, session=None, now: Callable = utcnow):
    """Append a step to a routine; generate its completions if the routine is published."""
    session = session or db.session
    try:
        routine_id = require_uuid(routine_id, "routine_id")
        fields = _clean_step_fields(data, partial=False)
    except ValidationError as exc:
        return None, exc.to_error()

    def _create():
        routine = rq.lock_routine(session, routine_id)
        if routine is None:
            raise NotFoundError("Routine", routine_id)
        _check_frequency_days(fields["frequency"], fields["days"], fields["product_name"])

        stamp = as_utc(now())
        step = RoutineStep(
            routine_id=routine.id,
            user_profile_id=routine.user_profile_id,
            order=rq.next_step_order(session, routine.id, fields["time_of_day"]),
            created_at=stamp,
            updated_at=stamp,
            **fields,
        )
        session.add(step)
        session.flush()

        if routine.is_published:
            _reconciler(session, routine, now).generate_for_new_step(step)
        return step

    return atomic(session, "create_routine_step", _create, routine_id=routine_id)


def delete_routine_step(step_id, *, session=None):
    """Delete a step; its completions go with it."""
    session = session or db.session
    try:
        step_id = require_uuid(step_id, "step_id")
    except ValidationError as exc:
        return None, exc.to_error()

    def _delete():
        step = rq.find_step(session, step_id)
        if step is None:
            raise NotFoundError("RoutineStep", step_id)
        session.delete(step)
        session.flush()
        return True

    return atomic(session, "delete_routine_step", _delete, step_id=step_id)


def reorder_routine_steps(routine_id, time_of_day: str, step_ids: list, *, session=None):
    """Rewrite ``order`` for one time-of-day group.

    ``step_ids`` must list every step of that group exactly once.
    """
    session = session or db.session
    try:
        routine_id = require_uuid(routine_id, "routine_id")
        if time_of_day not in TIMES_OF_DAY:
            raise ValidationError("time_of_day must be morning or evening",
                                  details={"time_of_day": "invalid"})
        if not isinstance(step_ids, list):
            raise ValidationError("step_ids must be a list", details={"step_ids": "invalid"})
        step_ids = [require_uuid(s, "step_ids") for s in step_ids]
    except ValidationError as exc:
        return None, exc.to_error()

    def _reorder():
        routine = rq.lock_routine(session, routine_id)
        if routine is None:
            raise NotFoundError("Routine", routine_id)
        group = {
            s.id: s for s in rq.find_steps_by_routine(session, routine_id)
            if s.time_of_day == time_of_day
        }
        if len(step_ids) != len(set(step_ids)) or set(step_ids) != set(group):
            raise ValidationError(
                f"step_ids must list every {time_of_day} step of the routine exactly once",
                details={"step_ids": "mismatch"},
            )
        for index, sid in enumerate(step_ids):
            group[sid].order = index
        session.flush()
        return [group[sid] for sid in step_ids]

    return atomic(session, "reorder_routine_steps", _reorder, routine_id=routine_id)
