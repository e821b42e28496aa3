"""
Record store contract consumed by the scheduling core.

Any backend works as long as ``transaction()`` gives all-or-nothing
writes and ``save_booking``/``save_task`` reject stale versions with
``ConcurrentConflictError``.
"""

import datetime as dt
from contextlib import AbstractContextManager
from typing import Iterable, Optional, Protocol

from src.schemas.availability_schema import AvailabilitySlot
from src.schemas.booking_schema import Booking
from src.schemas.catalog_schema import Mechanic, Service
from src.schemas.task_schema import FieldNote, MechanicTask


class GarageStore(Protocol):
    """Persistence operations for bookings, tasks, and availability."""

    def transaction(self) -> AbstractContextManager[None]:
        """Scope in which all writes commit together or not at all.

        Nested calls join the outer transaction.
        """
        ...

    # --- catalog ---
    def get_service(self, service_id: int) -> Optional[Service]: ...

    def save_service(self, service: Service) -> Service: ...

    def get_mechanic(self, mechanic_id: int) -> Optional[Mechanic]: ...

    def list_mechanics(self, active_only: bool = True) -> list[Mechanic]: ...

    def save_mechanic(self, mechanic: Mechanic) -> Mechanic: ...

    def lock_mechanic(self, mechanic_id: int) -> None:
        """Serialize assignments to one mechanic until the transaction ends.

        Must be called inside ``transaction()``.
        """
        ...

    # --- availability ---
    def get_mechanic_availability(self, mechanic_id: int) -> list[AvailabilitySlot]: ...

    def replace_mechanic_availability(
        self, mechanic_id: int, slots: Iterable[AvailabilitySlot]
    ) -> list[AvailabilitySlot]: ...

    # --- bookings ---
    def next_booking_id(self) -> str: ...

    def get_booking(self, booking_id: str) -> Optional[Booking]: ...

    def save_booking(self, booking: Booking) -> Booking:
        """Insert or update. Returns the stored record with its new version."""
        ...

    def list_active_bookings_for_mechanic_on_date(
        self, mechanic_id: int, on: dt.date
    ) -> list[Booking]: ...

    def list_bookings_for_mechanic(self, mechanic_id: int) -> list[Booking]:
        """Every booking currently assigned to the mechanic, any status."""
        ...

    # --- tasks ---
    def next_task_id(self) -> str: ...

    def get_task(self, task_id: str) -> Optional[MechanicTask]: ...

    def get_task_by_booking(
        self, booking_id: str, mechanic_id: Optional[int] = None
    ) -> Optional[MechanicTask]:
        """Most recent task for a booking, optionally for one mechanic."""
        ...

    def save_task(self, task: MechanicTask) -> MechanicTask: ...

    # --- field notes ---
    def add_field_note(
        self, booking_id: str, mechanic_id: int, note: str, created_at: dt.datetime
    ) -> FieldNote: ...

    def list_field_notes(self, booking_id: str) -> list[FieldNote]: ...
