"""Frequency rules: does a step fire on a given calendar date?"""

from __future__ import annotations

from datetime import date
from typing import Iterable, NamedTuple

from app.models.routine import WEEKDAYS


class FrequencyRule(NamedTuple):
    frequency: str
    days: tuple[str, ...] = ()


def weekday_name(on_date: date) -> str:
    """English weekday name, independent of the process locale."""
    return WEEKDAYS[on_date.weekday()]


def rule_for(step) -> FrequencyRule:
    """Build the rule from anything exposing ``frequency`` and ``days``."""
    return FrequencyRule(step.frequency, tuple(step.days or ()))


def should_generate(rule: FrequencyRule, on_date: date) -> bool:
    """Return True when a step with ``rule`` should produce a completion on ``on_date``.

    ``daily`` always fires. Every other frequency fires on the weekdays listed
    in ``days``; the "2x"/"3x" in the label is descriptive and not checked
    here. An empty ``days`` set on a day-dependent frequency fires never.
    """
    if rule.frequency == "daily":
        return True
    if rule.days:
        return weekday_name(on_date) in rule.days
    return False


def normalize_days(days: Iterable[str] | None) -> list[str]:
    """De-duplicate weekday names and return them Monday-first.

    Raises:
        ValueError: a value is not an English weekday name.
    """
    if not days:
        return []
    if isinstance(days, str):
        raise ValueError("days must be a list of weekday names")
    unknown = [d for d in days if d not in WEEKDAYS]
    if unknown:
        raise ValueError(f"Invalid weekday name(s): {', '.join(map(str, unknown))}")
    wanted = set(days)
    return [d for d in WEEKDAYS if d in wanted]
