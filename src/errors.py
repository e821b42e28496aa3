"""
Error taxonomy for the scheduling core.

Every error carries a machine-readable ``kind`` plus the offending field
and record reference, so an HTTP layer can map it to a 4xx response
without parsing the message.
"""

from typing import Any, Optional


class SchedulingError(Exception):
    """Base class for all recoverable scheduling errors."""

    kind: str = "scheduling_error"
    status_code: int = 400
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        ref: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.ref = ref

    def to_dict(self) -> dict[str, Any]:
        """Structured payload for API responses."""
        return {
            "kind": self.kind,
            "message": self.message,
            "field": self.field,
            "ref": self.ref,
            "retryable": self.retryable,
        }


class NotFoundError(SchedulingError):
    """Booking, task, mechanic, or service does not exist."""

    kind = "not_found"
    status_code = 404


class ForbiddenError(SchedulingError):
    """Actor role or ownership does not permit the operation."""

    kind = "forbidden"
    status_code = 403


class InvalidTransitionError(SchedulingError):
    """Requested status is unknown or unreachable for this actor and state."""

    kind = "invalid_transition"
    status_code = 400


class MechanicUnavailableError(SchedulingError):
    """Mechanic has no covering availability slot or a conflicting booking."""

    kind = "mechanic_unavailable"
    status_code = 409


class ConcurrentConflictError(SchedulingError):
    """Another transaction changed the same records first. Safe to retry."""

    kind = "concurrent_conflict"
    status_code = 409
    retryable = True


class InvalidRequestError(SchedulingError):
    """Missing or malformed input."""

    kind = "invalid_request"
    status_code = 400
