"""
In-memory garage store.

Suitable for tests, the console demo, and single-process deployments.
Transactions are serialized by one re-entrant lock and roll back by
restoring a snapshot taken when the outermost transaction began.
Reads take the same lock, so they never observe uncommitted writes
from another thread.
"""

import datetime as dt
import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Optional

from src.config import settings
from src.errors import ConcurrentConflictError
from src.schemas.availability_schema import AvailabilitySlot
from src.schemas.booking_schema import Booking
from src.schemas.catalog_schema import Mechanic, Service
from src.schemas.status_schema import BookingStatus
from src.schemas.task_schema import FieldNote, MechanicTask

logger = logging.getLogger(__name__)

ID_WIDTH = 4


class InMemoryGarageStore:
    """Dict-backed implementation of the GarageStore protocol."""

    def __init__(
        self,
        booking_id_prefix: str = settings.store.booking_id_prefix,
        task_id_prefix: str = settings.store.task_id_prefix,
    ) -> None:
        self._booking_id_prefix = booking_id_prefix
        self._task_id_prefix = task_id_prefix
        self._tx_lock = threading.RLock()
        self._local = threading.local()
        self.reset()

    def reset(self) -> None:
        """Clear all records. Used by test fixtures for isolation."""
        self._services: dict[int, Service] = {}
        self._mechanics: dict[int, Mechanic] = {}
        self._availability: dict[int, list[AvailabilitySlot]] = {}
        self._bookings: dict[str, Booking] = {}
        self._tasks: dict[str, MechanicTask] = {}
        self._field_notes: list[FieldNote] = []
        self._booking_seq = 0
        self._task_seq = 0

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    def _snapshot(self) -> dict:
        return {
            "services": dict(self._services),
            "mechanics": dict(self._mechanics),
            "availability": {k: list(v) for k, v in self._availability.items()},
            "bookings": dict(self._bookings),
            "tasks": dict(self._tasks),
            "field_notes": list(self._field_notes),
            "booking_seq": self._booking_seq,
            "task_seq": self._task_seq,
        }

    def _restore(self, snap: dict) -> None:
        self._services = snap["services"]
        self._mechanics = snap["mechanics"]
        self._availability = snap["availability"]
        self._bookings = snap["bookings"]
        self._tasks = snap["tasks"]
        self._field_notes = snap["field_notes"]
        self._booking_seq = snap["booking_seq"]
        self._task_seq = snap["task_seq"]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._tx_lock:
            depth = getattr(self._local, "depth", 0)
            if depth:
                self._local.depth = depth + 1
                try:
                    yield
                finally:
                    self._local.depth = depth
                return

            snap = self._snapshot()
            self._local.depth = 1
            try:
                yield
            except BaseException:
                self._restore(snap)
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._local.depth = 0

    # ------------------------------------------------------------------ #
    # Catalog
    # ------------------------------------------------------------------ #

    def get_service(self, service_id: int) -> Optional[Service]:
        return self._services.get(service_id)

    def save_service(self, service: Service) -> Service:
        with self._tx_lock:
            self._services[service.id] = service
        return service

    def get_mechanic(self, mechanic_id: int) -> Optional[Mechanic]:
        return self._mechanics.get(mechanic_id)

    def list_mechanics(self, active_only: bool = True) -> list[Mechanic]:
        with self._tx_lock:
            mechanics = sorted(self._mechanics.values(), key=lambda m: m.id)
        if active_only:
            return [m for m in mechanics if m.is_active]
        return mechanics

    def save_mechanic(self, mechanic: Mechanic) -> Mechanic:
        with self._tx_lock:
            self._mechanics[mechanic.id] = mechanic
        return mechanic

    def lock_mechanic(self, mechanic_id: int) -> None:
        # transactions already hold the store-wide lock
        pass

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def get_mechanic_availability(self, mechanic_id: int) -> list[AvailabilitySlot]:
        with self._tx_lock:
            slots = list(self._availability.get(mechanic_id, []))
        return sorted(slots, key=lambda s: (s.day_of_week, s.start_time))

    def replace_mechanic_availability(
        self, mechanic_id: int, slots: Iterable[AvailabilitySlot]
    ) -> list[AvailabilitySlot]:
        with self.transaction():
            self._availability[mechanic_id] = [
                s.model_copy(update={"mechanic_id": mechanic_id}) for s in slots
            ]
        return self.get_mechanic_availability(mechanic_id)

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def next_booking_id(self) -> str:
        with self._tx_lock:
            self._booking_seq += 1
            return f"{self._booking_id_prefix}{self._booking_seq:0{ID_WIDTH}d}"

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._tx_lock:
            booking = self._bookings.get(booking_id)
        return booking.model_copy() if booking else None

    def save_booking(self, booking: Booking) -> Booking:
        with self._tx_lock:
            current = self._bookings.get(booking.id)
            if current is not None and current.version != booking.version:
                raise ConcurrentConflictError(
                    f"Booking {booking.id} was modified concurrently "
                    f"(expected version {booking.version}, found {current.version})",
                    field="version",
                    ref=booking.id,
                )
            stored = booking.model_copy(update={"version": booking.version + 1})
            self._bookings[booking.id] = stored
        return stored.model_copy()

    def list_active_bookings_for_mechanic_on_date(
        self, mechanic_id: int, on: dt.date
    ) -> list[Booking]:
        with self._tx_lock:
            return sorted(
                (
                    b.model_copy()
                    for b in self._bookings.values()
                    if b.mechanic_id == mechanic_id
                    and b.date == on
                    and b.status != BookingStatus.CANCELLED
                ),
                key=lambda b: b.time,
            )

    def list_bookings_for_mechanic(self, mechanic_id: int) -> list[Booking]:
        with self._tx_lock:
            return sorted(
                (b.model_copy() for b in self._bookings.values() if b.mechanic_id == mechanic_id),
                key=lambda b: (b.date, b.time, b.id),
            )

    # ------------------------------------------------------------------ #
    # Tasks
    # ------------------------------------------------------------------ #

    def next_task_id(self) -> str:
        with self._tx_lock:
            self._task_seq += 1
            return f"{self._task_id_prefix}{self._task_seq:0{ID_WIDTH}d}"

    def get_task(self, task_id: str) -> Optional[MechanicTask]:
        with self._tx_lock:
            task = self._tasks.get(task_id)
        return task.model_copy() if task else None

    def get_task_by_booking(
        self, booking_id: str, mechanic_id: Optional[int] = None
    ) -> Optional[MechanicTask]:
        with self._tx_lock:
            matches = [
                t
                for t in self._tasks.values()
                if t.booking_id == booking_id
                and (mechanic_id is None or t.mechanic_id == mechanic_id)
            ]
        if not matches:
            return None
        return max(matches, key=lambda t: (t.created_at, t.id)).model_copy()

    def save_task(self, task: MechanicTask) -> MechanicTask:
        with self._tx_lock:
            current = self._tasks.get(task.id)
            if current is not None and current.version != task.version:
                raise ConcurrentConflictError(
                    f"Task {task.id} was modified concurrently "
                    f"(expected version {task.version}, found {current.version})",
                    field="version",
                    ref=task.id,
                )
            stored = task.model_copy(update={"version": task.version + 1})
            self._tasks[task.id] = stored
        return stored.model_copy()

    # ------------------------------------------------------------------ #
    # Field notes
    # ------------------------------------------------------------------ #

    def add_field_note(
        self, booking_id: str, mechanic_id: int, note: str, created_at: dt.datetime
    ) -> FieldNote:
        with self._tx_lock:
            field_note = FieldNote(
                id=len(self._field_notes) + 1,
                booking_id=booking_id,
                mechanic_id=mechanic_id,
                note=note,
                created_at=created_at,
            )
            self._field_notes.append(field_note)
        return field_note

    def list_field_notes(self, booking_id: str) -> list[FieldNote]:
        with self._tx_lock:
            return [n for n in self._field_notes if n.booking_id == booking_id]
