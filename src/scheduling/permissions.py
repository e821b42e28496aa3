"""
Role permission table for scheduling operations.

| actor                 | booking status targets                 |
|-----------------------|----------------------------------------|
| admin / owner / staff | any status                             |
| assigned mechanic     | in-progress, completed                 |
| owning customer       | cancelled                              |

Dispatch is on the actor variant; an unknown variant is a programming
error and raises TypeError.
"""

from src.errors import ForbiddenError
from src.schemas.actor_schema import (
    Actor,
    CustomerActor,
    MechanicActor,
    describe_actor,
    is_staff,
)
from src.schemas.booking_schema import Booking
from src.schemas.status_schema import BookingStatus

MECHANIC_BOOKING_TARGETS: frozenset[BookingStatus] = frozenset(
    {BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED}
)
CUSTOMER_BOOKING_TARGETS: frozenset[BookingStatus] = frozenset({BookingStatus.CANCELLED})


def allowed_booking_targets(actor: Actor) -> frozenset[BookingStatus]:
    if is_staff(actor):
        return frozenset(BookingStatus)
    if isinstance(actor, MechanicActor):
        return MECHANIC_BOOKING_TARGETS
    if isinstance(actor, CustomerActor):
        return CUSTOMER_BOOKING_TARGETS
    raise TypeError(f"Unhandled actor type: {type(actor).__name__}")


def can_access_booking(actor: Actor, booking: Booking) -> bool:
    """Staff see everything; mechanics their assignments; customers their own."""
    if is_staff(actor):
        return True
    if isinstance(actor, MechanicActor):
        return booking.mechanic_id == actor.mechanic_id
    if isinstance(actor, CustomerActor):
        return booking.customer_id == actor.customer_id
    raise TypeError(f"Unhandled actor type: {type(actor).__name__}")


def require_booking_access(actor: Actor, booking: Booking) -> None:
    if not can_access_booking(actor, booking):
        raise ForbiddenError(
            f"{describe_actor(actor)} is not authorized for booking {booking.id}",
            field="booking_id",
            ref=booking.id,
        )


def require_staff(actor: Actor, action: str) -> None:
    if not is_staff(actor):
        raise ForbiddenError(
            f"{describe_actor(actor)} is not authorized to {action}",
            field="role",
        )


def require_mechanic(actor: Actor, action: str) -> MechanicActor:
    if not isinstance(actor, MechanicActor):
        raise ForbiddenError(
            f"{describe_actor(actor)} is not authorized to {action}",
            field="role",
        )
    return actor


def authorize_booking_status(actor: Actor, booking: Booking, target: BookingStatus) -> None:
    """
    Raises:
        ForbiddenError: If the actor may not touch this booking, or may not
            set ``target`` at all.
    """
    require_booking_access(actor, booking)
    allowed = allowed_booking_targets(actor)
    if target not in allowed:
        raise ForbiddenError(
            f"{describe_actor(actor)} may not set status '{target.value}'. "
            f"Allowed: {sorted(s.value for s in allowed)}",
            field="status",
            ref=booking.id,
        )
