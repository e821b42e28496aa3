"""Canonical status enum shared by bookings and mechanic tasks."""

from enum import Enum
from typing import Any, Iterable, Optional

from src.errors import InvalidTransitionError


class BookingStatus(str, Enum):
    """Booking lifecycle states. Tasks use a subset of the same values."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED}
)

CANCELLABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED}
)

TASK_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.PENDING, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)

# Statuses a task change mirrors onto its booking.
SYNCED_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)


def parse_status(
    value: Any, allowed: Optional[Iterable[BookingStatus]] = None
) -> BookingStatus:
    """Resolve a raw value to a BookingStatus without any coercion.

    Near-miss spellings such as ``in_progress`` are rejected, never mapped.

    Raises:
        InvalidTransitionError: If the value is not a known status, or not
            in ``allowed`` when given.
    """
    try:
        status = BookingStatus(value)
    except ValueError:
        raise InvalidTransitionError(
            f"Unknown status {value!r}. Valid statuses: {[s.value for s in BookingStatus]}",
            field="status",
            ref=value,
        ) from None

    if allowed is not None:
        allowed_set = frozenset(allowed)
        if status not in allowed_set:
            raise InvalidTransitionError(
                f"Status '{status.value}' is not allowed here. "
                f"Valid statuses: {sorted(s.value for s in allowed_set)}",
                field="status",
                ref=status.value,
            )
    return status
