"""
Skincare Routine Platform
Completion reconciliation engine.

Brings the materialised completion rows of one routine in line with its
current definition after a publish, a start/end date change or a step
scheduling change. Runs entirely on the caller's session; the caller owns
the transaction and commits (or rolls back) everything together with the
metadata update that triggered the reconciliation.

Two rules hold on every path:
    - only ``pending`` rows are ever deleted (see ``delete_completions``)
    - a (step, date) pair that already has a row never gets a second one
      (see ``insert_completions``)

Usage:
    reconciler = RoutineReconciler(session, routine, today=today)
    reconciler.publish(steps)
    reconciler.apply_date_change(old_start, old_end,
                                 start_changed=True, end_changed=False)
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from flask import current_app, has_app_context

from app.core.exceptions import NotFoundError
from app.services.completion_generator import generate_completions
from app.services.deadlines import DEFAULT_GRACE_PERIOD
from app.services.helpers import routine_queries as rq
from app.services.schedule_window import (
    DEFAULT_WINDOW_DAYS,
    ONE_DAY,
    ScheduleWindow,
    compute_window,
)

logger = logging.getLogger(__name__)


def scheduling_settings() -> tuple[int, timedelta]:
    """Return ``(window_days, grace_period)`` from app config, else module defaults."""
    if not has_app_context():
        return DEFAULT_WINDOW_DAYS, DEFAULT_GRACE_PERIOD
    cfg = current_app.config
    window_days = int(cfg.get("ROUTINE_WINDOW_DAYS", DEFAULT_WINDOW_DAYS))
    grace_hours = cfg.get("COMPLETION_GRACE_HOURS")
    grace = DEFAULT_GRACE_PERIOD if grace_hours is None else timedelta(hours=float(grace_hours))
    return window_days, grace


class RoutineReconciler:
    """
    One reconciliation pass over a single routine.

    Create per operation; ``deleted`` / ``inserted`` accumulate the row
    counts of every branch taken and are logged by the caller.
    """

    def __init__(
        self,
        session,
        routine,
        *,
        today: date,
        window_days: int = DEFAULT_WINDOW_DAYS,
        grace_period: timedelta = DEFAULT_GRACE_PERIOD,
    ):
        self.session = session
        self.routine = routine
        self.today = today
        self.window_days = window_days
        self.grace_period = grace_period
        self.deleted = 0
        self.inserted = 0
        self._tz_name: str | None = None

    # ── helpers ─────────────────────────────────────────────────────────

    @property
    def tz_name(self) -> str:
        if self._tz_name is None:
            tz = rq.find_user_timezone(self.session, self.routine.user_profile_id)
            if tz is None:
                raise NotFoundError("UserProfile", self.routine.user_profile_id)
            self._tz_name = tz
        return self._tz_name

    def _log_extra(self, **extra) -> dict:
        extra.setdefault("routine_id", self.routine.id)
        extra.setdefault("user_profile_id", self.routine.user_profile_id)
        return extra

    def _window(self) -> ScheduleWindow:
        return compute_window(
            self.routine.start_date, self.routine.end_date, self.today, self.window_days,
        )

    def _steps(self) -> list:
        return rq.find_steps_by_routine(self.session, self.routine.id)

    def _step_ids(self) -> list[str]:
        return rq.find_step_ids(self.session, self.routine.id)

    def _generate(self, steps, window: ScheduleWindow) -> int:
        if window.is_empty or not steps:
            return 0
        rows = generate_completions(
            steps,
            window,
            self.tz_name,
            self.routine.user_profile_id,
            grace_period=self.grace_period,
        )
        inserted = rq.insert_completions(self.session, rows)
        self.inserted += inserted
        return inserted

    def _delete(self, step_ids, **bounds) -> int:
        deleted = rq.delete_completions(self.session, step_ids, **bounds)
        self.deleted += deleted
        return deleted

    # ── publish ─────────────────────────────────────────────────────────

    def publish(self, steps) -> int:
        """Generate the initial window for every step."""
        window = self._window()
        inserted = self._generate(steps, window)
        logger.info(
            "Publish: generated %d completions over %s..%s",
            inserted, window.start, window.end, extra=self._log_extra(),
        )
        return inserted

    # ── routine date change ─────────────────────────────────────────────

    def apply_date_change(
        self,
        old_start: date,
        old_end: date | None,
        *,
        start_changed: bool,
        end_changed: bool,
    ) -> None:
        """Reconcile after ``routine.start_date`` / ``routine.end_date`` changed.

        The routine must already carry the new dates. Start handling runs
        before end handling; each branch sees the rows the previous one left.
        """
        new_start = self.routine.start_date
        new_end = self.routine.end_date

        if start_changed and new_start != old_start:
            if new_start > old_start:
                self._start_moved_forward(new_start)
            else:
                self._start_moved_backward(old_start, new_start)

        if end_changed and new_end != old_end:
            if new_end is not None:
                self._end_trimmed(new_end)
            extended = (
                (new_end is None and old_end is not None)
                or (new_end is not None and old_end is not None and new_end > old_end)
            )
            if extended:
                self._end_extended(indefinite=new_end is None)

    def _start_moved_forward(self, new_start: date) -> None:
        deleted = self._delete(self._step_ids(), before=new_start)
        logger.info(
            "Start moved forward to %s: deleted %d pending completions",
            new_start, deleted, extra=self._log_extra(),
        )

    def _start_moved_backward(self, old_start: date, new_start: date) -> None:
        old_effective = max(old_start, self.today)
        new_effective = max(new_start, self.today)
        if not (new_effective < old_effective and new_start >= self.today):
            logger.info(
                "Start moved back to %s: effective start unchanged, nothing to backfill",
                new_start, extra=self._log_extra(),
            )
            return

        window = self._window()
        step_ids = self._step_ids()
        trimmed = self._delete(step_ids, after=window.end)

        earliest = rq.find_extreme_completion_date(self.session, step_ids, "min")
        if earliest is None:
            gap = window
        else:
            gap = ScheduleWindow(window.start, min(earliest - ONE_DAY, window.end))
        inserted = self._generate(self._steps(), gap)
        logger.info(
            "Start moved back to %s: trimmed %d beyond %s, backfilled %d over %s..%s",
            new_start, trimmed, window.end, inserted, gap.start, gap.end,
            extra=self._log_extra(),
        )

    def _end_trimmed(self, new_end: date) -> None:
        deleted = self._delete(self._step_ids(), after=new_end)
        logger.info(
            "End set to %s: deleted %d pending completions after it",
            new_end, deleted, extra=self._log_extra(),
        )

    def _end_extended(self, *, indefinite: bool) -> None:
        window = self._window()
        latest = rq.find_extreme_completion_date(self.session, self._step_ids(), "max")
        gap_start = window.start if latest is None else max(latest + ONE_DAY, window.start)
        gap = ScheduleWindow(gap_start, window.end)
        inserted = self._generate(self._steps(), gap)
        logger.info(
            "End %s: extended %d completions over %s..%s",
            "removed (indefinite)" if indefinite else f"moved later to {self.routine.end_date}",
            inserted, gap.start, gap.end, extra=self._log_extra(),
        )

    # ── step changes ────────────────────────────────────────────────────

    def step_window(self) -> ScheduleWindow:
        """Window for (re)generating a single step.

        Ends at the routine's end date when set; otherwise at the latest date
        any step of the routine already has, so one step never outruns the
        others; otherwise the rolling horizon. Must be computed before the
        step's own pending rows are deleted.
        """
        window = self._window()
        if self.routine.end_date is not None:
            return window
        latest = rq.find_extreme_completion_date(self.session, self._step_ids(), "max")
        if latest is None:
            return window
        return window.clamp_end(latest)

    def regenerate_step(self, step, window: ScheduleWindow) -> None:
        """Drop the step's pending rows and regenerate them over ``window``."""
        deleted = self._delete([step.id])
        inserted = self._generate([step], window)
        logger.info(
            "Step regenerated: deleted %d, inserted %d over %s..%s",
            deleted, inserted, window.start, window.end,
            extra=self._log_extra(step_id=step.id),
        )

    def generate_for_new_step(self, step) -> int:
        window = self.step_window()
        inserted = self._generate([step], window)
        logger.info(
            "New step: generated %d completions over %s..%s",
            inserted, window.start, window.end,
            extra=self._log_extra(step_id=step.id),
        )
        return inserted
