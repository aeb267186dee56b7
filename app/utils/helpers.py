"""Shared parsing and time utilities used by services and blueprints.

parse_date_input:  date strings/objects -> date (raises ValueError on bad input)
parse_uuid:        validates identifier strings (raises ValueError)
as_utc:            normalises datetimes read back from the DB to aware UTC
utcnow:            default ``now`` provider for scheduling entry points
"""
import logging
import uuid
from datetime import date, datetime, timezone

logger = logging.getLogger(__name__)


def utcnow():
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value):
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back ``DateTime(timezone=True)`` columns as naive values; the
    platform always writes UTC, so a naive value is read as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_input(value):
    """Parse a date string, raising ValueError on bad input.

    Supports: YYYY-MM-DD, full ISO datetimes (UTC calendar date is taken),
    DD.MM.YYYY, date and datetime objects. Returns None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).date()
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError("Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY.")
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return parse_date_input(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return datetime.strptime(value, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValueError(
            "Invalid date format. Use YYYY-MM-DD or DD.MM.YYYY."
        ) from exc


def parse_uuid(value):
    """Return the canonical string form of a UUID, raising ValueError otherwise."""
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise ValueError("Identifier must be a UUID string")
    return str(uuid.UUID(value))
