"""
Tests — step updates and per-step regeneration.

Covers:
    1. Scheduling change on a published routine (delete pending + regenerate)
    2. History preservation and idempotence
    3. Regeneration window bounded by the other steps / routine end
    4. Metadata-only edits and draft routines
    5. Validation
    6. Rollback when regeneration fails
"""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.models import db
from app.models.routine import RoutineStep, StepCompletion
from app.services.helpers import routine_queries as rq
from app.services.reconciliation import RoutineReconciler
from app.services.routine_service import create_routine_step, update_routine_step
from app.utils.errors import E
from app.utils.helpers import as_utc


def _rows(step_id=None):
    q = StepCompletion.query
    if step_id:
        q = q.filter_by(routine_step_id=step_id)
    return q.order_by(StepCompletion.scheduled_date).all()


def _first_step(routine):
    return RoutineStep.query.filter_by(routine_id=routine.id).order_by(RoutineStep.order).first()


class TestSchedulingChange:

    def test_daily_to_mon_wed_fri(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)
        tuesday = StepCompletion.query.filter_by(scheduled_date=make_date(1)).one()
        tuesday.status = "on-time"
        tuesday.completed_at = datetime(2025, 10, 28, 7, 0, tzinfo=timezone.utc)
        db.session.commit()
        tuesday_id = tuesday.id

        result, err = update_routine_step(
            step.id, {"frequency": "specific_days", "days": ["Friday", "Monday", "Wednesday"]},
            now=now,
        )

        assert err is None
        assert result.days == ["Monday", "Wednesday", "Friday"]
        rows = _rows()
        pending = [r for r in rows if r.status == "pending"]
        assert {r.scheduled_date.weekday() for r in pending} == {0, 2, 4}
        assert len(pending) == 26
        assert min(r.scheduled_date for r in pending) == make_date(0)
        assert max(r.scheduled_date for r in pending) <= make_date(59)
        survivor = db.session.get(StepCompletion, tuesday_id)
        assert survivor.status == "on-time"
        assert survivor.scheduled_date == make_date(1)

    def test_completed_row_on_regenerated_date_is_not_duplicated(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)
        monday = StepCompletion.query.filter_by(scheduled_date=make_date(0)).one()
        monday.status = "late"
        db.session.commit()

        update_routine_step(step.id, {"frequency": "specific_days", "days": ["Monday"]}, now=now)

        monday_rows = StepCompletion.query.filter_by(scheduled_date=make_date(0)).all()
        assert len(monday_rows) == 1
        assert monday_rows[0].status == "late"

    def test_time_of_day_change_moves_deadlines(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)

        update_routine_step(step.id, {"time_of_day": "evening"}, now=now)

        rows = _rows()
        assert len(rows) == 60
        assert {r.scheduled_time_of_day for r in rows} == {"evening"}
        assert as_utc(rows[0].on_time_deadline) == datetime(2025, 10, 27, 23, 59, 59,
                                                            tzinfo=timezone.utc)

    def test_only_the_edited_step_is_touched(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), steps=[{}, {"time_of_day": "evening"}],
                               published=True)
        morning, evening = RoutineStep.query.order_by(RoutineStep.time_of_day.desc()).all()
        evening_ids = [r.id for r in _rows(evening.id)]

        update_routine_step(morning.id, {"frequency": "specific_days", "days": ["Sunday"]},
                            now=now)

        assert [r.id for r in _rows(evening.id)] == evening_ids
        assert {r.scheduled_date.weekday() for r in _rows(morning.id)} == {6}

    def test_window_does_not_outrun_other_steps(self, make_routine, make_date):
        """Ten days later the step regenerates only up to the existing latest date."""
        routine = make_routine(start=make_date(0), published=True,
                               steps=[{}, {"time_of_day": "evening"}])
        step = _first_step(routine)
        later = lambda: datetime(2025, 11, 6, 8, 0, tzinfo=timezone.utc)  # day+10

        update_routine_step(step.id, {"frequency": "specific_days",
                                      "days": ["Monday", "Thursday"]}, now=later)

        pending = [r for r in _rows(step.id) if r.status == "pending"]
        assert min(r.scheduled_date for r in pending) >= make_date(10)
        assert max(r.scheduled_date for r in pending) <= make_date(59)

    def test_window_bounded_by_routine_end(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), end=make_date(13), published=True)
        step = _first_step(routine)
        update_routine_step(step.id, {"frequency": "specific_days", "days": ["Friday"]}, now=now)
        assert [r.scheduled_date for r in _rows()] == [make_date(4), make_date(11)]

    def test_empty_days_on_count_frequency_yields_no_rows(self, make_routine, make_date, now,
                                                          caplog):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)

        with caplog.at_level(logging.WARNING, logger="app.services.routine_service"):
            _, err = update_routine_step(step.id, {"frequency": "2x per week", "days": []},
                                         now=now)

        assert err is None
        assert _rows() == []
        assert "never be scheduled" in caplog.text


class TestIdempotence:

    def test_repeating_the_same_update(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)
        payload = {"frequency": "specific_days", "days": ["Tuesday", "Saturday"]}

        update_routine_step(step.id, payload, now=now)
        first = [(r.id, r.scheduled_date) for r in _rows()]
        update_routine_step(step.id, payload, now=now)

        assert [(r.id, r.scheduled_date) for r in _rows()] == first

    def test_regenerating_twice_converges(self, make_routine, make_date, today):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)

        for _ in range(2):
            reconciler = RoutineReconciler(db.session, routine, today=today)
            reconciler.regenerate_step(step, reconciler.step_window())
            db.session.commit()

        dates = [r.scheduled_date for r in _rows()]
        assert len(dates) == len(set(dates)) == 60

    def test_reordered_days_are_not_a_change(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True, steps=[
            {"frequency": "specific_days", "days": ["Monday", "Friday"]},
        ])
        step = _first_step(routine)
        before = [r.id for r in _rows()]

        update_routine_step(step.id, {"days": ["Friday", "Monday"]}, now=now)

        assert [r.id for r in _rows()] == before


class TestMetadataOnly:

    def test_descriptive_edit_keeps_rows(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step = _first_step(routine)
        before = [r.id for r in _rows()]

        result, err = update_routine_step(step.id, {"product_name": "Gentle foam",
                                                    "instructions": "Massage 60s"}, now=now)

        assert err is None
        assert result.product_name == "Gentle foam"
        assert [r.id for r in _rows()] == before

    def test_draft_routine_scheduling_edit(self, make_routine, now):
        routine = make_routine()
        step = _first_step(routine)
        result, err = update_routine_step(step.id, {"frequency": "specific_days",
                                                    "days": ["Monday"]}, now=now)
        assert err is None
        assert result.frequency == "specific_days"
        assert _rows() == []


class TestStepValidation:

    def test_specific_days_requires_days(self, make_routine, now):
        routine = make_routine(published=True)
        step = _first_step(routine)
        _, err = update_routine_step(step.id, {"frequency": "specific_days"}, now=now)
        assert err["status"] == 400
        assert len(_rows()) == 60

    def test_unknown_weekday(self, make_routine, now):
        step = _first_step(make_routine())
        _, err = update_routine_step(step.id, {"days": ["Caturday"]}, now=now)
        assert err["status"] == 400
        assert "days" in err["details"]

    def test_unknown_frequency(self, make_routine, now):
        step = _first_step(make_routine())
        _, err = update_routine_step(step.id, {"frequency": "hourly"}, now=now)
        assert "frequency" in err["details"]

    def test_unknown_time_of_day(self, make_routine, now):
        step = _first_step(make_routine())
        _, err = update_routine_step(step.id, {"time_of_day": "noon"}, now=now)
        assert "time_of_day" in err["details"]

    def test_unknown_step(self, now):
        _, err = update_routine_step("7c9e6679-7425-40de-944b-e07fc1f90ae7", {"order": 1},
                                     now=now)
        assert err["status"] == 404


class TestStepUpdateAtomicity:

    def test_generation_failure_rolls_back_step_and_rows(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)
        step_id = _first_step(routine).id
        before = [(r.id, r.scheduled_date, r.status) for r in _rows(step_id)]

        with patch.object(rq, "insert_completions", side_effect=RuntimeError("lost connection")):
            result, err = update_routine_step(
                step_id, {"frequency": "specific_days", "days": ["Monday"]}, now=now)

        assert result is None
        assert err["code"] == E.DATABASE
        assert err["status"] == 500
        db.session.expire_all()
        step = db.session.get(RoutineStep, step_id)
        assert step.frequency == "daily"
        assert step.days == []
        assert [(r.id, r.scheduled_date, r.status) for r in _rows(step_id)] == before

    def test_new_step_failure_leaves_no_step(self, make_routine, make_date, now):
        routine = make_routine(start=make_date(0), published=True)

        with patch.object(rq, "insert_completions", side_effect=RuntimeError("disk full")):
            _, err = create_routine_step(routine.id, {
                "routine_step": "Treat", "product_name": "Retinol",
                "time_of_day": "evening"}, now=now)

        assert err["status"] == 500
        assert RoutineStep.query.filter_by(routine_id=routine.id).count() == 1
        assert len(_rows()) == 60
