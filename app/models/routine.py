"""
Skincare Routine Platform
Routine scheduling models.

Models:
    - UserProfile: Subscriber profile (owns the timezone used for deadlines)
    - SkincareRoutine: One routine per user, draft -> published
    - RoutineStep: One product/step with a frequency rule and time of day
    - StepCompletion: One scheduled instance of a step on a calendar date
"""

import uuid
from datetime import datetime, timezone

from app.models import db
from app.utils.helpers import as_utc


# ── Constants ────────────────────────────────────────────────────────────────

ROUTINE_STATUSES = {"draft", "published"}
TIMES_OF_DAY = ("morning", "evening")
FREQUENCIES = ("daily", "2x per week", "3x per week", "specific_days")
DAY_DEPENDENT_FREQUENCIES = {"2x per week", "3x per week", "specific_days"}
COMPLETION_STATUSES = {"pending", "on-time", "late", "missed"}
DONE_STATUSES = {"on-time", "late"}

# Monday first, matching date.weekday()
WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

# Fields that change which dates a step fires on (or their deadlines)
SCHEDULING_FIELDS = ("frequency", "days", "time_of_day")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        value = as_utc(value)
    return value.isoformat()


class UserProfile(db.Model):
    """
    Subscriber profile.

    Referenced by routines and completions. Supplies the IANA timezone that
    anchors on-time deadlines to the subscriber's local clock.
    """

    __tablename__ = "user_profiles"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), nullable=False, unique=True)
    full_name = db.Column(db.String(200), default="")
    timezone = db.Column(db.String(64), nullable=False, default="UTC",
                         comment="IANA zone name, e.g. Europe/London")
    routine_start_date_set = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "timezone": self.timezone,
            "routine_start_date_set": self.routine_start_date_set,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<UserProfile {self.email} tz={self.timezone}>"


class SkincareRoutine(db.Model):
    """
    A subscriber's routine: ordered steps plus a date range.

    Created as ``draft``; publishing flips it to ``published`` exactly once and
    materialises the first window of completions.
    """

    __tablename__ = "skincare_routines"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_profile_id = db.Column(
        db.String(36),
        db.ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="One routine per user",
    )
    name = db.Column(db.String(200), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=True, comment="NULL = indefinite")
    status = db.Column(db.String(20), nullable=False, default="draft",
                       comment="draft, published")
    saved_as_template = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps = db.relationship(
        "RoutineStep",
        backref="routine",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RoutineStep.order",
    )

    @property
    def is_published(self):
        return self.status == "published"

    def to_dict(self, include_steps=False):
        d = {
            "id": self.id,
            "user_profile_id": self.user_profile_id,
            "name": self.name,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "saved_as_template": self.saved_as_template,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<SkincareRoutine {self.id} [{self.status}]>"


class RoutineStep(db.Model):
    """
    One product in a routine.

    ``frequency``, ``days`` and ``time_of_day`` drive scheduling; every other
    column is descriptive and never touches the completion table.
    """

    __tablename__ = "routine_steps"
    __table_args__ = (
        db.Index("idx_rstep_routine_tod", "routine_id", "time_of_day"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    routine_id = db.Column(
        db.String(36),
        db.ForeignKey("skincare_routines.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_profile_id = db.Column(
        db.String(36),
        db.ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    routine_step = db.Column(db.String(50), nullable=False,
                             comment="Step category: Cleanse, Treat, Protect, ...")
    product_name = db.Column(db.String(200), nullable=False)
    product_url = db.Column(db.String(500), nullable=True)
    instructions = db.Column(db.Text, nullable=True)
    frequency = db.Column(db.String(20), nullable=False, default="daily",
                          comment="daily, 2x per week, 3x per week, specific_days")
    days = db.Column(db.JSON, nullable=True, comment="Weekday names, e.g. ['Monday']")
    time_of_day = db.Column(db.String(10), nullable=False, comment="morning, evening")
    order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    completions = db.relationship(
        "StepCompletion",
        backref="step",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "routine_id": self.routine_id,
            "user_profile_id": self.user_profile_id,
            "routine_step": self.routine_step,
            "product_name": self.product_name,
            "product_url": self.product_url,
            "instructions": self.instructions,
            "frequency": self.frequency,
            "days": list(self.days or []),
            "time_of_day": self.time_of_day,
            "order": self.order,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<RoutineStep {self.product_name} {self.frequency}/{self.time_of_day}>"


class StepCompletion(db.Model):
    """
    One scheduled instance of a step.

    (routine_step_id, scheduled_date) is the instance key. Rows are created
    ``pending``; only ``status`` and ``completed_at`` change afterwards.
    Non-pending rows are history and are never removed by regeneration.
    """

    __tablename__ = "step_completions"
    __table_args__ = (
        db.UniqueConstraint("routine_step_id", "scheduled_date",
                            name="uq_completion_step_date"),
        db.Index("idx_completion_user_date", "user_profile_id", "scheduled_date"),
        db.Index("idx_completion_user_status", "user_profile_id", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    routine_step_id = db.Column(
        db.String(36),
        db.ForeignKey("routine_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_profile_id = db.Column(
        db.String(36),
        db.ForeignKey("user_profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    scheduled_date = db.Column(db.Date, nullable=False)
    scheduled_time_of_day = db.Column(db.String(10), nullable=False)
    on_time_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    grace_period_end = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(10), nullable=False, default="pending",
                       comment="pending, on-time, late, missed")
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "routine_step_id": self.routine_step_id,
            "user_profile_id": self.user_profile_id,
            "scheduled_date": _iso(self.scheduled_date),
            "scheduled_time_of_day": self.scheduled_time_of_day,
            "on_time_deadline": _iso(self.on_time_deadline),
            "grace_period_end": _iso(self.grace_period_end),
            "status": self.status,
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<StepCompletion {self.routine_step_id}@{self.scheduled_date} [{self.status}]>"
