"""
Transaction boundary shared by the scheduling services.

``atomic`` runs a unit of work on a session and turns its outcome into the
platform's tuple result:

    value, err = atomic(db.session, "publish_routine", _publish, routine_id=rid)

ServiceError subclasses raised by the unit of work become their own error
dict; anything else becomes a TransactionFailure. Either way the session is
rolled back first, so no part of the work is visible afterwards.
"""

import logging
import time
from typing import Callable

from app.core.exceptions import ServiceError, TransactionFailure, ValidationError
from app.utils.helpers import parse_uuid

logger = logging.getLogger(__name__)


def atomic(session, action: str, fn: Callable, **log_extra):
    start = time.monotonic()
    try:
        value = fn()
        session.commit()
    except ServiceError as exc:
        session.rollback()
        logger.warning("%s rejected: %s", action, exc, extra=log_extra)
        return None, exc.to_error()
    except Exception as exc:
        session.rollback()
        logger.exception("%s failed, transaction rolled back", action, extra=log_extra)
        return None, TransactionFailure(f"{action} failed: {exc}").to_error()

    log_extra["duration_ms"] = int((time.monotonic() - start) * 1000)
    logger.info("%s committed", action, extra=log_extra)
    return value, None


def require_uuid(value, field: str) -> str:
    """Canonical UUID string, or ValidationError naming ``field``."""
    try:
        return parse_uuid(value)
    except (ValueError, AttributeError, TypeError):
        raise ValidationError(f"{field} is not a valid identifier",
                              details={field: "invalid uuid"}) from None
