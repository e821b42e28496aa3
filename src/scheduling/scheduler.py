"""
GarageScheduler: the single entry point an HTTP layer calls.

Wires the store, availability resolver, locks, assignment engine and
status transition manager together, and adds the booking, availability
and field-note operations around them. Every operation takes an explicit
actor, or falls back to the ``current_actor`` callable supplied at
construction.
"""

import datetime as dt
import functools
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError

from src.config import settings
from src.errors import ForbiddenError, InvalidRequestError, InvalidTransitionError, NotFoundError
from src.logging_context import get_request_logger, request_scope
from src.schemas.actor_schema import Actor, CustomerActor, MechanicActor, describe_actor
from src.schemas.availability_schema import AvailabilitySlot, FreeSlot
from src.schemas.booking_schema import Booking, BookingRequest
from src.schemas.status_schema import TASK_STATUSES, BookingStatus, parse_status
from src.schemas.task_schema import FieldNote, MechanicTask, TaskDetail
from src.scheduling.assignment import AssignmentEngine
from src.scheduling.availability import AvailabilityResolver
from src.scheduling.locks import MechanicDateLocks
from src.scheduling.permissions import require_booking_access, require_mechanic, require_staff
from src.scheduling.transitions import StatusTransitionManager
from src.stores import build_store
from src.stores.base import GarageStore
from src.utils import garage_timezone, utc_now

logger = get_request_logger(__name__)

SlotInput = Union[AvailabilitySlot, dict[str, Any]]


def _traced(method):
    """Run a write operation under a request id so its log lines correlate."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with request_scope():
            return method(self, *args, **kwargs)

    return wrapper


class GarageScheduler:
    """Scheduling and booking-assignment operations for one garage."""

    def __init__(
        self,
        store: Optional[GarageStore] = None,
        clock: Callable[[], dt.datetime] = utc_now,
        current_actor: Optional[Callable[[], Optional[Actor]]] = None,
        locks: Optional[MechanicDateLocks] = None,
        resolver: Optional[AvailabilityResolver] = None,
        timezone: Optional[dt.tzinfo] = None,
    ) -> None:
        self.store = store if store is not None else build_store()
        self._clock = clock
        self._current_actor = current_actor
        self.locks = locks or MechanicDateLocks(settings.scheduling.lock_timeout_sec)
        self.resolver = resolver or AvailabilityResolver(
            self.store,
            settings.scheduling.default_service_minutes,
            settings.scheduling.slot_step_minutes,
        )
        self.assignments = AssignmentEngine(self.store, self.resolver, self.locks, clock)
        self.transitions = StatusTransitionManager(
            self.store,
            self.resolver,
            self.locks,
            clock,
            timezone or garage_timezone(settings.scheduling.timezone),
        )

    def _actor(self, actor: Optional[Actor]) -> Actor:
        if actor is not None:
            return actor
        if self._current_actor is not None:
            current = self._current_actor()
            if current is not None:
                return current
        raise ForbiddenError("No authenticated actor for this request", field="actor")

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", field="booking_id", ref=booking_id)
        return booking

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def check_availability(
        self, on: dt.date, service_id: int, mechanic_id: Optional[int] = None
    ) -> list[FreeSlot]:
        """Free windows for a service on a date, across active mechanics or one."""
        return self.resolver.free_slots(on, service_id, mechanic_id)

    def is_available(
        self,
        mechanic_id: int,
        on: dt.date,
        start_time: dt.time,
        end_time: dt.time,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        return self.resolver.is_available(mechanic_id, on, start_time, end_time, exclude_booking_id)

    def get_mechanic_availability(self, mechanic_id: int) -> list[AvailabilitySlot]:
        if self.store.get_mechanic(mechanic_id) is None:
            raise NotFoundError(f"Mechanic {mechanic_id} not found", field="mechanic_id", ref=mechanic_id)
        return self.store.get_mechanic_availability(mechanic_id)

    @_traced
    def replace_mechanic_availability(
        self,
        mechanic_id: int,
        slots: Iterable[SlotInput],
        actor: Optional[Actor] = None,
    ) -> list[AvailabilitySlot]:
        """
        Replace a mechanic's whole weekly template.

        Every slot is validated before anything is written; one bad slot
        leaves the existing template untouched.

        Raises:
            ForbiddenError: Actor is not staff.
            NotFoundError: Mechanic absent.
            InvalidRequestError: A slot has a bad day or start >= end.
        """
        actor = self._actor(actor)
        require_staff(actor, "edit mechanic availability")
        if self.store.get_mechanic(mechanic_id) is None:
            raise NotFoundError(f"Mechanic {mechanic_id} not found", field="mechanic_id", ref=mechanic_id)

        validated = []
        for index, slot in enumerate(slots):
            data = slot.model_dump() if isinstance(slot, AvailabilitySlot) else dict(slot)
            data["mechanic_id"] = mechanic_id
            try:
                validated.append(AvailabilitySlot.model_validate(data))
            except ValidationError as e:
                raise InvalidRequestError(
                    f"Availability slot {index} is invalid: {e.errors()[0]['msg']}",
                    field="slots",
                    ref=index,
                ) from e

        with self.store.transaction():
            result = self.store.replace_mechanic_availability(mechanic_id, validated)
        logger.info(
            "%s replaced availability of mechanic %s with %d slots",
            describe_actor(actor), mechanic_id, len(result),
        )
        return result

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    @_traced
    def create_booking(self, request: BookingRequest, actor: Optional[Actor] = None) -> Booking:
        """
        Create a pending booking, assigning the preferred mechanic if named.

        With a preferred mechanic, creation and assignment commit together;
        if the mechanic is unavailable nothing is stored.

        Raises:
            ForbiddenError: Mechanics cannot create bookings.
            InvalidRequestError: Staff omitted ``customer_id``, or the
                service is out of stock.
            NotFoundError: Service or mechanic absent.
            MechanicUnavailableError: Preferred mechanic cannot take it.
        """
        actor = self._actor(actor)
        if isinstance(actor, MechanicActor):
            raise ForbiddenError(f"{describe_actor(actor)} is not authorized to create bookings", field="role")
        if isinstance(actor, CustomerActor):
            customer_id = actor.customer_id
        else:
            if request.customer_id is None:
                raise InvalidRequestError("customer_id is required when booking for a customer", field="customer_id")
            customer_id = request.customer_id

        service = self.store.get_service(request.service_id)
        if service is None:
            raise NotFoundError(
                f"Service {request.service_id} not found", field="service_id", ref=request.service_id
            )
        if not service.in_stock:
            raise InvalidRequestError(
                f"Service '{service.name}' is currently unavailable",
                field="service_id",
                ref=service.id,
            )

        with self.locks.hold(request.mechanic_id, request.date):
            with self.store.transaction():
                now = self._clock()
                booking = self.store.save_booking(
                    Booking(
                        id=self.store.next_booking_id(),
                        customer_id=customer_id,
                        service_id=request.service_id,
                        vehicle_id=request.vehicle_id,
                        date=request.date,
                        time=request.time,
                        notes=request.notes or "",
                        customer_name=request.customer_name,
                        created_at=now,
                        updated_at=now,
                    )
                )
                if request.mechanic_id is not None:
                    booking = self.assignments.assign_unchecked(booking.id, request.mechanic_id)

        logger.info(
            "%s created booking %s for %s %s (status=%s)",
            describe_actor(actor), booking.id, booking.date, booking.time, booking.status.value,
        )
        return booking

    def get_booking(self, booking_id: str, actor: Optional[Actor] = None) -> Booking:
        actor = self._actor(actor)
        booking = self._load_booking(booking_id)
        require_booking_access(actor, booking)
        return booking

    @_traced
    def update_booking_notes(
        self, booking_id: str, notes: str, actor: Optional[Actor] = None
    ) -> Booking:
        actor = self._actor(actor)
        with self.store.transaction():
            booking = self._load_booking(booking_id)
            require_booking_access(actor, booking)
            updated = self.store.save_booking(
                booking.model_copy(update={"notes": notes, "updated_at": self._clock()})
            )
        logger.info("%s updated notes on booking %s", describe_actor(actor), booking_id)
        return updated

    # ------------------------------------------------------------------ #
    # Assignment and status
    # ------------------------------------------------------------------ #

    @_traced
    def assign_mechanic(
        self, booking_id: str, mechanic_id: int, actor: Optional[Actor] = None
    ) -> Booking:
        return self.assignments.assign_mechanic(booking_id, mechanic_id, self._actor(actor))

    @_traced
    def set_booking_status(
        self, booking_id: str, new_status: Union[BookingStatus, str], actor: Optional[Actor] = None
    ) -> Booking:
        return self.transitions.set_booking_status(booking_id, new_status, self._actor(actor))

    @_traced
    def set_task_status(
        self, ref: str, new_status: Union[BookingStatus, str], actor: Optional[Actor] = None
    ) -> MechanicTask:
        return self.transitions.set_task_status(ref, new_status, self._actor(actor))

    @_traced
    def cancel_booking(self, booking_id: str, actor: Optional[Actor] = None) -> Booking:
        return self.transitions.cancel_booking(booking_id, self._actor(actor))

    @_traced
    def ensure_task_exists(self, booking_id: str, mechanic_id: int) -> MechanicTask:
        booking = self._load_booking(booking_id)
        with self.locks.hold(booking.mechanic_id, booking.date):
            with self.store.transaction():
                return self.transitions.ensure_task_exists(booking_id, mechanic_id)

    # ------------------------------------------------------------------ #
    # Mechanic views
    # ------------------------------------------------------------------ #

    def list_mechanic_tasks(
        self,
        actor: Optional[Actor] = None,
        on: Optional[dt.date] = None,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        status: Optional[Union[BookingStatus, str]] = None,
    ) -> list[TaskDetail]:
        """
        Bookings assigned to the calling mechanic with their tasks, ordered
        by date and time.

        ``on`` selects one date; ``start``/``end`` an inclusive range.
        ``status`` keeps only bookings whose task has that task status;
        ``"all"`` or ``None`` keeps everything. Tasks left behind by a
        reassignment never appear.
        """
        mechanic = require_mechanic(self._actor(actor), "list mechanic tasks")
        if on is not None:
            start = end = on
        if start is not None and end is not None and start > end:
            raise InvalidRequestError(f"start {start} is after end {end}", field="start")

        wanted = None
        if status is not None and status != "all":
            try:
                wanted = parse_status(status, allowed=TASK_STATUSES)
            except InvalidTransitionError as e:
                raise InvalidRequestError(e.message, field="status", ref=status) from e

        details = []
        for booking in self.store.list_bookings_for_mechanic(mechanic.mechanic_id):
            if start is not None and booking.date < start:
                continue
            if end is not None and booking.date > end:
                continue
            task = self.store.get_task_by_booking(booking.id, mechanic.mechanic_id)
            if wanted is not None and (task is None or task.status != wanted):
                continue
            details.append(TaskDetail(task=task, booking=booking))

        details.sort(key=lambda d: (d.booking.date, d.booking.time, d.booking.id))
        return details

    @_traced
    def add_field_note(self, ref: str, note: str, actor: Optional[Actor] = None) -> FieldNote:
        """Attach a note to the booking behind a task or booking id (mechanics only)."""
        mechanic = require_mechanic(self._actor(actor), "add field notes")
        text = (note or "").strip()
        if not text:
            raise InvalidRequestError("Field note must not be empty", field="note")

        booking, _ = self.transitions.resolve_task_ref(ref, mechanic)
        with self.store.transaction():
            field_note = self.store.add_field_note(
                booking.id, mechanic.mechanic_id, text, self._clock()
            )
        logger.info("%s added a field note to booking %s", describe_actor(mechanic), booking.id)
        return field_note

    def list_field_notes(self, booking_id: str, actor: Optional[Actor] = None) -> list[FieldNote]:
        actor = self._actor(actor)
        require_booking_access(actor, self._load_booking(booking_id))
        return self.store.list_field_notes(booking_id)
