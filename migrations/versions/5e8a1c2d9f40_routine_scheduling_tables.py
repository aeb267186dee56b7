"""routine_scheduling_tables

Create user profiles, routines, routine steps, step completions and the
scheduled job registry.

Revision ID: 5e8a1c2d9f40
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5e8a1c2d9f40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "user_profiles" not in existing_tables:
        op.create_table(
            "user_profiles",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("timezone", sa.String(length=64), nullable=False, server_default="UTC"),
            sa.Column("routine_start_date_set", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "skincare_routines" not in existing_tables:
        op.create_table(
            "skincare_routines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_profile_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("start_date", sa.Date(), nullable=False),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("saved_as_template", sa.Boolean(), nullable=False,
                      server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_profile_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_profile_id"),
        )

    if "routine_steps" not in existing_tables:
        op.create_table(
            "routine_steps",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("routine_id", sa.String(length=36), nullable=False),
            sa.Column("user_profile_id", sa.String(length=36), nullable=False),
            sa.Column("routine_step", sa.String(length=50), nullable=False),
            sa.Column("product_name", sa.String(length=200), nullable=False),
            sa.Column("product_url", sa.String(length=500), nullable=True),
            sa.Column("instructions", sa.Text(), nullable=True),
            sa.Column("frequency", sa.String(length=20), nullable=False, server_default="daily"),
            sa.Column("days", sa.JSON(), nullable=True),
            sa.Column("time_of_day", sa.String(length=10), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["routine_id"], ["skincare_routines.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_profile_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_routine_steps_routine_id", "routine_steps", ["routine_id"])
        op.create_index("ix_routine_steps_user_profile_id", "routine_steps", ["user_profile_id"])
        op.create_index("idx_rstep_routine_tod", "routine_steps", ["routine_id", "time_of_day"])

    if "step_completions" not in existing_tables:
        op.create_table(
            "step_completions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("routine_step_id", sa.String(length=36), nullable=False),
            sa.Column("user_profile_id", sa.String(length=36), nullable=False),
            sa.Column("scheduled_date", sa.Date(), nullable=False),
            sa.Column("scheduled_time_of_day", sa.String(length=10), nullable=False),
            sa.Column("on_time_deadline", sa.DateTime(timezone=True), nullable=False),
            sa.Column("grace_period_end", sa.DateTime(timezone=True), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="pending"),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["routine_step_id"], ["routine_steps.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_profile_id"], ["user_profiles.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("routine_step_id", "scheduled_date", name="uq_completion_step_date"),
        )
        op.create_index("ix_step_completions_routine_step_id", "step_completions",
                        ["routine_step_id"])
        op.create_index("idx_completion_user_date", "step_completions",
                        ["user_profile_id", "scheduled_date"])
        op.create_index("idx_completion_user_status", "step_completions",
                        ["user_profile_id", "status"])

    if "scheduled_jobs" not in existing_tables:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("job_name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("schedule_type", sa.String(length=30), nullable=True),
            sa.Column("schedule_config", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("is_enabled", sa.Boolean(), nullable=True),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(length=20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer(), nullable=True),
            sa.Column("last_run_result", sa.JSON(), nullable=True),
            sa.Column("run_count", sa.Integer(), nullable=True),
            sa.Column("error_count", sa.Integer(), nullable=True),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("job_name"),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "scheduled_jobs" in existing_tables:
        op.drop_table("scheduled_jobs")
    if "step_completions" in existing_tables:
        op.drop_index("idx_completion_user_status", table_name="step_completions")
        op.drop_index("idx_completion_user_date", table_name="step_completions")
        op.drop_index("ix_step_completions_routine_step_id", table_name="step_completions")
        op.drop_table("step_completions")
    if "routine_steps" in existing_tables:
        op.drop_index("idx_rstep_routine_tod", table_name="routine_steps")
        op.drop_index("ix_routine_steps_user_profile_id", table_name="routine_steps")
        op.drop_index("ix_routine_steps_routine_id", table_name="routine_steps")
        op.drop_table("routine_steps")
    if "skincare_routines" in existing_tables:
        op.drop_table("skincare_routines")
    if "user_profiles" in existing_tables:
        op.drop_table("user_profiles")
