"""
Shared pytest fixtures for the Skincare Routine Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - now / today: pinned clock (Monday 2025-10-27 08:00 UTC)
    - user_profile: Pre-created UserProfile (UTC)
    - make_routine: factory for routines with steps, optionally published
"""

from datetime import date, datetime, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.routine import RoutineStep, SkincareRoutine, UserProfile

PINNED_NOW = datetime(2025, 10, 27, 8, 0, tzinfo=timezone.utc)  # a Monday


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Clock ────────────────────────────────────────────────────────────────


@pytest.fixture()
def now():
    """Zero-argument clock pinned to PINNED_NOW."""
    return lambda: PINNED_NOW


@pytest.fixture()
def today():
    return PINNED_NOW.date()


# ── Domain fixtures ──────────────────────────────────────────────────────


def _create_profile(email="subscriber@example.com", tz="UTC"):
    profile = UserProfile(email=email, full_name="Test Subscriber", timezone=tz)
    _db.session.add(profile)
    _db.session.commit()
    return profile


@pytest.fixture()
def user_profile():
    """A subscriber in UTC."""
    return _create_profile()


@pytest.fixture()
def make_profile():
    return _create_profile


@pytest.fixture()
def make_routine(user_profile, now):
    """Factory: build a routine with steps directly in the DB.

    Steps are dicts of RoutineStep columns; ``frequency`` defaults to daily
    and ``time_of_day`` to morning. ``published=True`` goes through
    publish_routine so the initial window is generated.
    """
    from app.services.routine_service import publish_routine

    def _make(start=None, end=None, steps=None, published=False, profile=None):
        owner = profile or user_profile
        routine = SkincareRoutine(
            user_profile_id=owner.id,
            name="Morning glow",
            start_date=start or now().date(),
            end_date=end,
            status="draft",
        )
        _db.session.add(routine)
        _db.session.flush()
        for index, overrides in enumerate(steps if steps is not None else [{}]):
            values = {
                "routine_step": "Cleanse",
                "product_name": f"Product {index + 1}",
                "frequency": "daily",
                "days": [],
                "time_of_day": "morning",
                "order": index,
            }
            values.update(overrides)
            _db.session.add(RoutineStep(
                routine_id=routine.id, user_profile_id=owner.id, **values,
            ))
        _db.session.commit()

        if published:
            routine, err = publish_routine(routine.id, now=now)
            assert err is None, err
        return routine

    return _make


@pytest.fixture()
def make_date():
    """Shorthand: make_date(offset) -> PINNED_NOW.date() + offset days."""
    from datetime import timedelta
    base: date = PINNED_NOW.date()
    return lambda offset=0: base + timedelta(days=offset)
