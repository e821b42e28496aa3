"""
Mechanic-to-booking assignment.

The availability check and the writes that follow it run under the
mechanic-date lock and inside one store transaction, so no overlapping
assignment can slip in between check and commit.
"""

import datetime as dt
from typing import Callable

from src.errors import (
    InvalidTransitionError,
    MechanicUnavailableError,
    NotFoundError,
)
from src.logging_context import get_request_logger
from src.schemas.actor_schema import Actor, describe_actor
from src.schemas.booking_schema import Booking
from src.schemas.status_schema import TERMINAL_STATUSES, BookingStatus
from src.scheduling.availability import AvailabilityResolver
from src.scheduling.locks import MechanicDateLocks
from src.scheduling.permissions import require_staff
from src.scheduling.tasks import create_task
from src.stores.base import GarageStore
from src.utils import utc_now

logger = get_request_logger(__name__)


class AssignmentEngine:
    """Validates availability and confirms a booking with its mechanic task."""

    def __init__(
        self,
        store: GarageStore,
        resolver: AvailabilityResolver,
        locks: MechanicDateLocks,
        clock: Callable[[], dt.datetime] = utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._locks = locks
        self._clock = clock

    def assign_mechanic(self, booking_id: str, mechanic_id: int, actor: Actor) -> Booking:
        """
        Assign a mechanic to a booking (staff only).

        Re-assignment is allowed and re-runs the full check against the new
        mechanic. The previous task is left untouched.

        Raises:
            ForbiddenError: If the actor is not staff.
            NotFoundError: If the booking, mechanic, or service is missing.
            InvalidTransitionError: If the booking is completed or cancelled.
            MechanicUnavailableError: If the mechanic is inactive, has no
                covering slot, or has a conflicting booking.
        """
        require_staff(actor, "assign mechanics")
        logger.info(
            "%s assigning mechanic %s to booking %s",
            describe_actor(actor), mechanic_id, booking_id,
        )
        return self.assign_unchecked(booking_id, mechanic_id)

    def assign_unchecked(self, booking_id: str, mechanic_id: int) -> Booking:
        """Assignment without the caller role check. Joins an open transaction."""
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", field="booking_id", ref=booking_id)

        mechanic = self._store.get_mechanic(mechanic_id)
        if mechanic is None:
            raise NotFoundError(
                f"Mechanic {mechanic_id} not found", field="mechanic_id", ref=mechanic_id
            )
        if not mechanic.is_active:
            raise MechanicUnavailableError(
                f"Mechanic {mechanic_id} is not active", field="mechanic_id", ref=mechanic_id
            )

        with self._locks.hold(mechanic_id, booking.date):
            with self._store.transaction():
                return self._assign_locked(booking_id, mechanic_id)

    def _assign_locked(self, booking_id: str, mechanic_id: int) -> Booking:
        # the in-process lock does not cover other workers sharing the database
        self._store.lock_mechanic(mechanic_id)
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", field="booking_id", ref=booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Booking {booking_id} is {booking.status.value} and cannot be assigned",
                field="status",
                ref=booking_id,
            )

        service = self._store.get_service(booking.service_id)
        if service is None:
            raise NotFoundError(
                f"Service {booking.service_id} not found",
                field="service_id",
                ref=booking.service_id,
            )

        start, end = self._resolver.booking_window(booking, service)
        if not self._resolver.is_free(
            mechanic_id, booking.date, start, end, exclude_booking_id=booking.id
        ):
            logger.info(
                "Mechanic %s unavailable for booking %s on %s at %s",
                mechanic_id, booking_id, booking.date, booking.time,
            )
            raise MechanicUnavailableError(
                f"Mechanic {mechanic_id} is not available on {booking.date.isoformat()} "
                f"from {booking.time.strftime('%H:%M')} for {end - start} minutes",
                field="mechanic_id",
                ref=mechanic_id,
            )

        if booking.mechanic_id is not None and booking.mechanic_id != mechanic_id:
            logger.warning(
                "Booking %s reassigned from mechanic %s to %s; previous task left in place",
                booking_id, booking.mechanic_id, mechanic_id,
            )

        now = self._clock()
        updated = self._store.save_booking(
            booking.model_copy(
                update={
                    "mechanic_id": mechanic_id,
                    "status": BookingStatus.CONFIRMED,
                    "updated_at": now,
                }
            )
        )
        task = create_task(self._store, updated, mechanic_id, (start, end), now)
        logger.info(
            "Booking %s confirmed with mechanic %s (task %s)",
            booking_id, mechanic_id, task.id,
        )
        return updated
