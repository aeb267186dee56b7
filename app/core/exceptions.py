"""
Platform-wide exception hierarchy.

Services raise these inside their transactional bodies; the service entry
points convert them to ``(None, error_dict)`` results via ``to_error()`` so
nothing crosses the service/caller boundary as an exception. Blueprints
register handlers against the same types for anything raised outside a
service call.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Routine", resource_id=routine_id)
    raise ValidationError("end_date must be on or after start_date",
                          details={"end_date": "before start_date"})
"""

from app.utils.errors import E


class ServiceError(Exception):
    """Base class: carries the machine-readable code and HTTP status."""

    code = E.INTERNAL
    status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_error(self) -> dict:
        err = {"error": str(self), "code": self.code, "status": self.status}
        if self.details:
            err["details"] = self.details
        return err


class NotFoundError(ServiceError):
    """Raised when a routine, step, completion or user profile does not exist.

    Also used when a record exists but belongs to another user, so callers
    cannot discover foreign ids.

    Args:
        resource: Human-readable entity name (e.g. "Routine", "RoutineStep").
        resource_id: The id that was looked up. Included in logs and message.
    """

    code = E.NOT_FOUND
    status = 404

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class InvalidStateError(ServiceError):
    """Raised when the entity exists but is in the wrong state for the operation.

    Examples: publishing an already-published routine, publishing a routine
    with no steps, creating a second routine for the same user.
    """

    code = E.CONFLICT_STATE
    status = 409


class ValidationError(ServiceError):
    """Raised for malformed identifiers, dates or field values.

    Always raised before any write, so a rejected request has no side effects.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    code = E.VALIDATION_INVALID
    status = 400


class TransactionFailure(ServiceError):
    """Raised (or reported) when the atomic reconciliation transaction fails.

    The session has been rolled back by the time callers see this; none of the
    metadata update, deletes or inserts is visible.
    """

    code = E.DATABASE
    status = 500


class CompletionRejected(ServiceError):
    """Raised when marking a completion done is not allowed.

    The instance is already ``missed``, or the attempt falls after the grace
    period end. The stored row is left unchanged.
    """

    code = E.COMPLETION_REJECTED
    status = 422
