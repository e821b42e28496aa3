"""
Availability resolution against weekly templates and existing bookings.

A mechanic is free for ``[start, end)`` on a date when one availability
slot for that weekday covers the whole interval and no active booking of
the same mechanic on that date strictly overlaps it. All methods are
read-only.
"""

import datetime as dt
from typing import Optional

from src.config import settings
from src.errors import NotFoundError
from src.logging_context import get_request_logger
from src.schemas.availability_schema import AvailabilitySlot, FreeSlot
from src.schemas.booking_schema import Booking
from src.schemas.catalog_schema import Service
from src.stores.base import GarageStore
from src.utils import (
    MINUTES_PER_DAY,
    day_of_week,
    from_minutes,
    intervals_overlap,
    to_minutes,
)

logger = get_request_logger(__name__)


class AvailabilityResolver:
    """Answers "is this mechanic free?" and enumerates bookable windows."""

    def __init__(
        self,
        store: GarageStore,
        default_duration_minutes: int = settings.scheduling.default_service_minutes,
        slot_step_minutes: int = settings.scheduling.slot_step_minutes,
    ) -> None:
        self._store = store
        self._default_duration = default_duration_minutes
        self._step = slot_step_minutes

    # ------------------------------------------------------------------ #
    # Durations
    # ------------------------------------------------------------------ #

    def service_duration(self, service: Optional[Service]) -> int:
        """Service estimated_time in minutes, or the configured default."""
        if service is None or not service.estimated_time:
            return self._default_duration
        return service.estimated_time

    def booking_window(
        self, booking: Booking, service: Optional[Service] = None
    ) -> tuple[int, int]:
        """Booking's ``[start, end)`` in minutes since midnight.

        The end may exceed one day for late bookings; such windows never
        fit inside a slot.
        """
        if service is None:
            service = self._store.get_service(booking.service_id)
        start = to_minutes(booking.time)
        return start, start + self.service_duration(service)

    # ------------------------------------------------------------------ #
    # Core checks
    # ------------------------------------------------------------------ #

    def covering_slot(
        self, mechanic_id: int, on: dt.date, start: int, end: int
    ) -> Optional[AvailabilitySlot]:
        """First slot on the weekday that contains the whole interval.

        Slots are never unioned; the interval must fit inside one row.
        """
        if end > MINUTES_PER_DAY:
            return None
        weekday = day_of_week(on)
        for slot in self._store.get_mechanic_availability(mechanic_id):
            if slot.day_of_week != weekday:
                continue
            if to_minutes(slot.start_time) <= start and to_minutes(slot.end_time) >= end:
                return slot
        return None

    def _busy_windows(
        self, mechanic_id: int, on: dt.date, exclude_booking_id: Optional[str] = None
    ) -> list[tuple[Booking, int, int]]:
        services: dict[int, Optional[Service]] = {}
        windows = []
        for booking in self._store.list_active_bookings_for_mechanic_on_date(mechanic_id, on):
            if booking.id == exclude_booking_id:
                continue
            if booking.service_id not in services:
                services[booking.service_id] = self._store.get_service(booking.service_id)
            start, end = self.booking_window(booking, services[booking.service_id])
            windows.append((booking, start, end))
        return windows

    def find_conflicts(
        self,
        mechanic_id: int,
        on: dt.date,
        start: int,
        end: int,
        exclude_booking_id: Optional[str] = None,
    ) -> list[Booking]:
        """Active bookings of the mechanic on ``on`` that strictly overlap."""
        return [
            booking
            for booking, b_start, b_end in self._busy_windows(mechanic_id, on, exclude_booking_id)
            if intervals_overlap(b_start, b_end, start, end)
        ]

    def is_free(
        self,
        mechanic_id: int,
        on: dt.date,
        start: int,
        end: int,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Minute-based availability check used by the assignment engine."""
        if self.covering_slot(mechanic_id, on, start, end) is None:
            logger.debug(
                "Mechanic %s has no slot covering %s %s-%s", mechanic_id, on, start, end
            )
            return False

        conflicts = self.find_conflicts(mechanic_id, on, start, end, exclude_booking_id)
        if conflicts:
            logger.debug(
                "Mechanic %s conflicts on %s: %s",
                mechanic_id, on, [b.id for b in conflicts],
            )
            return False
        return True

    def is_available(
        self,
        mechanic_id: int,
        on: dt.date,
        start_time: dt.time,
        end_time: dt.time,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        """Check ``[start_time, end_time)`` against slots and active bookings."""
        return self.is_free(
            mechanic_id, on, to_minutes(start_time), to_minutes(end_time), exclude_booking_id
        )

    # ------------------------------------------------------------------ #
    # Slot sweep
    # ------------------------------------------------------------------ #

    def free_slots(
        self, on: dt.date, service_id: int, mechanic_id: Optional[int] = None
    ) -> list[FreeSlot]:
        """
        Enumerate bookable windows for a service on a date.

        Each availability slot for the weekday is swept in fixed steps from
        its start; a candidate is kept when it fits the slot and overlaps
        no active booking. Redundant slots yield each window once.

        Raises:
            NotFoundError: If the service or the requested mechanic is unknown.
        """
        service = self._store.get_service(service_id)
        if service is None:
            raise NotFoundError(f"Service {service_id} not found", field="service_id", ref=service_id)

        if mechanic_id is not None:
            mechanic = self._store.get_mechanic(mechanic_id)
            if mechanic is None:
                raise NotFoundError(
                    f"Mechanic {mechanic_id} not found", field="mechanic_id", ref=mechanic_id
                )
            mechanics = [mechanic] if mechanic.is_active else []
        else:
            mechanics = self._store.list_mechanics(active_only=True)

        duration = self.service_duration(service)
        weekday = day_of_week(on)
        found: set[tuple[int, int]] = set()

        for mechanic in mechanics:
            busy = self._busy_windows(mechanic.id, on)
            for slot in self._store.get_mechanic_availability(mechanic.id):
                if slot.day_of_week != weekday:
                    continue
                slot_end = to_minutes(slot.end_time)
                start = to_minutes(slot.start_time)
                while start + duration <= slot_end:
                    end = start + duration
                    if not any(intervals_overlap(b_start, b_end, start, end) for _, b_start, b_end in busy):
                        found.add((start, mechanic.id))
                    start += self._step

        slots = [
            FreeSlot(
                mechanic_id=m_id,
                date=on,
                start_time=from_minutes(start),
                end_time=from_minutes(min(start + duration, MINUTES_PER_DAY - 1)),
            )
            for start, m_id in sorted(found)
        ]
        logger.debug(
            "%d free slots for service %s on %s (mechanic=%s)",
            len(slots), service_id, on, mechanic_id,
        )
        return slots
