"""
Tests — publishing a routine.

Covers:
    1. Initial window generation (60 days, never in the past)
    2. Preconditions: not found, already published, no steps, owner missing
    3. Atomicity: a generation failure leaves the routine in draft
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.models import db
from app.models.routine import SkincareRoutine, StepCompletion
from app.services.helpers import routine_queries as rq
from app.services.routine_service import publish_routine
from app.utils.errors import E
from app.utils.helpers import as_utc


def _completions(routine_id=None):
    q = StepCompletion.query
    if routine_id:
        from app.models.routine import RoutineStep
        q = q.join(RoutineStep).filter(RoutineStep.routine_id == routine_id)
    return q.order_by(StepCompletion.scheduled_date, StepCompletion.routine_step_id).all()


class TestPublishRoutine:

    def test_daily_step_generates_sixty_days(self, make_routine, now, today):
        routine = make_routine(start=today)
        result, err = publish_routine(routine.id, now=now)

        assert err is None
        assert result.status == "published"
        rows = _completions()
        assert len(rows) == 60
        assert rows[0].scheduled_date == today
        assert rows[-1].scheduled_date == today + timedelta(days=59)
        assert {r.status for r in rows} == {"pending"}
        assert all(r.completed_at is None for r in rows)

    def test_past_start_never_generates_before_today(self, make_routine, now, today):
        routine = make_routine(start=today - timedelta(days=45))
        publish_routine(routine.id, now=now)
        rows = _completions()
        assert min(r.scheduled_date for r in rows) == today
        assert len(rows) == 60

    def test_end_date_bounds_window(self, make_routine, now, today):
        routine = make_routine(start=today, end=today + timedelta(days=9))
        publish_routine(routine.id, now=now)
        assert len(_completions()) == 10

    def test_end_date_in_past_publishes_with_no_rows(self, make_routine, now, today):
        routine = make_routine(start=today - timedelta(days=30), end=today - timedelta(days=1))
        result, err = publish_routine(routine.id, now=now)
        assert err is None
        assert result.status == "published"
        assert _completions() == []

    def test_mixed_steps(self, make_routine, now, today):
        routine = make_routine(start=today, steps=[
            {"time_of_day": "morning"},
            {"time_of_day": "evening", "frequency": "specific_days",
             "days": ["Monday", "Thursday"]},
        ])
        publish_routine(routine.id, now=now)
        rows = _completions()
        evening = [r for r in rows if r.scheduled_time_of_day == "evening"]
        assert len(rows) - len(evening) == 60
        assert {r.scheduled_date.weekday() for r in evening} == {0, 3}

    def test_deadlines_follow_owner_timezone(self, make_routine, make_profile, now):
        nairobi = make_profile(email="nairobi@example.com", tz="Africa/Nairobi")
        routine = make_routine(start=datetime(2025, 10, 31).date(), profile=nairobi)
        publish_routine(routine.id, now=now)
        first = _completions()[0]
        assert as_utc(first.on_time_deadline) == datetime(2025, 10, 31, 9, 0, tzinfo=timezone.utc)
        assert as_utc(first.grace_period_end) == datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)


class TestPublishPreconditions:

    def test_already_published_is_rejected(self, make_routine, now):
        routine = make_routine(published=True)
        before = len(_completions())

        result, err = publish_routine(routine.id, now=now)

        assert result is None
        assert err["code"] == E.CONFLICT_STATE
        assert err["status"] == 409
        assert len(_completions()) == before

    def test_no_steps(self, make_routine, now):
        routine = make_routine(steps=[])
        _, err = publish_routine(routine.id, now=now)
        assert err["status"] == 409
        assert "without steps" in err["error"]

    def test_not_found(self, now):
        _, err = publish_routine("7c9e6679-7425-40de-944b-e07fc1f90ae7", now=now)
        assert err["code"] == E.NOT_FOUND
        assert err["status"] == 404

    def test_malformed_id(self, now):
        _, err = publish_routine("not-a-uuid", now=now)
        assert err["code"] == E.VALIDATION_INVALID
        assert err["status"] == 400

    def test_owner_profile_unresolvable(self, make_routine, now, monkeypatch):
        routine = make_routine()
        monkeypatch.setattr(rq, "find_user_timezone", lambda session, uid: None)
        _, err = publish_routine(routine.id, now=now)
        assert err["status"] == 409
        assert db.session.get(SkincareRoutine, routine.id).status == "draft"


class TestPublishAtomicity:

    def test_generation_failure_rolls_back_status(self, make_routine, now):
        routine = make_routine()
        routine_id = routine.id

        with patch.object(rq, "insert_completions", side_effect=RuntimeError("disk full")):
            result, err = publish_routine(routine_id, now=now)

        assert result is None
        assert err["code"] == E.DATABASE
        assert err["status"] == 500
        assert db.session.get(SkincareRoutine, routine_id).status == "draft"
        assert _completions() == []

    def test_retry_after_failure_succeeds(self, make_routine, now):
        routine = make_routine()
        with patch.object(rq, "insert_completions", side_effect=RuntimeError("boom")):
            publish_routine(routine.id, now=now)

        result, err = publish_routine(routine.id, now=now)
        assert err is None
        assert len(_completions()) == 60
