"""
Explicit transition tables for booking and task statuses.

Every status change must match a row in these tables. Role permissions
are layered on top in ``permissions``; these tables only describe which
states can follow which.

Usage:
    check_booking_transition(BookingStatus.PENDING, BookingStatus.CONFIRMED, "B-0001")
"""

from dataclasses import dataclass

from src.errors import InvalidTransitionError
from src.schemas.status_schema import BookingStatus

S = BookingStatus


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_state: BookingStatus
    to_state: BookingStatus


BOOKING_TRANSITIONS: list[Transition] = [
    # --- Pending ---
    Transition(S.PENDING, S.CONFIRMED),
    Transition(S.PENDING, S.IN_PROGRESS),
    Transition(S.PENDING, S.COMPLETED),
    Transition(S.PENDING, S.CANCELLED),

    # --- Confirmed ---
    Transition(S.CONFIRMED, S.PENDING),
    Transition(S.CONFIRMED, S.IN_PROGRESS),
    Transition(S.CONFIRMED, S.COMPLETED),
    Transition(S.CONFIRMED, S.CANCELLED),

    # --- Work started ---
    Transition(S.IN_PROGRESS, S.COMPLETED),

    # completed and cancelled are terminal
]

TASK_TRANSITIONS: list[Transition] = [
    Transition(S.PENDING, S.IN_PROGRESS),
    Transition(S.PENDING, S.COMPLETED),
    Transition(S.IN_PROGRESS, S.COMPLETED),
]


def valid_booking_targets(current: BookingStatus) -> list[BookingStatus]:
    """Return all statuses reachable from ``current`` in one step."""
    return [t.to_state for t in BOOKING_TRANSITIONS if t.from_state == current]


def valid_task_targets(current: BookingStatus) -> list[BookingStatus]:
    return [t.to_state for t in TASK_TRANSITIONS if t.from_state == current]


def check_booking_transition(
    current: BookingStatus, target: BookingStatus, booking_id: str
) -> None:
    """
    Raises:
        InvalidTransitionError: If no row allows current -> target.
    """
    valid = valid_booking_targets(current)
    if target not in valid:
        raise InvalidTransitionError(
            f"Booking {booking_id} cannot move from '{current.value}' "
            f"to '{target.value}'. Valid targets: {[s.value for s in valid]}",
            field="status",
            ref=booking_id,
        )


def check_task_transition(
    current: BookingStatus, target: BookingStatus, task_id: str
) -> None:
    valid = valid_task_targets(current)
    if target not in valid:
        raise InvalidTransitionError(
            f"Task {task_id} cannot move from '{current.value}' "
            f"to '{target.value}'. Valid targets: {[s.value for s in valid]}",
            field="status",
            ref=task_id,
        )
