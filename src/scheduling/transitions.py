"""
Booking and task status transitions.

Keeps ``bookings.status`` and ``mechanic_tasks.status`` in step: a task
moving to in-progress or completed moves its booking too, and the same
booking change made directly moves the task. Every multi-record change
runs in one transaction under the mechanic-date lock.
"""

import datetime as dt
from typing import Any, Callable, Optional

from src.errors import (
    ConcurrentConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from src.logging_context import get_request_logger
from src.schemas.actor_schema import Actor, CustomerActor, MechanicActor, describe_actor
from src.schemas.booking_schema import Booking
from src.schemas.status_schema import (
    SYNCED_STATUSES,
    TASK_STATUSES,
    BookingStatus,
    parse_status,
)
from src.schemas.task_schema import MechanicTask
from src.scheduling.availability import AvailabilityResolver
from src.scheduling.lifecycle import check_booking_transition, check_task_transition
from src.scheduling.locks import MechanicDateLocks
from src.scheduling.permissions import authorize_booking_status
from src.scheduling.tasks import create_task
from src.stores.base import GarageStore
from src.utils import utc_now

logger = get_request_logger(__name__)


class StatusTransitionManager:
    """Applies role-checked status changes to bookings and tasks."""

    def __init__(
        self,
        store: GarageStore,
        resolver: AvailabilityResolver,
        locks: MechanicDateLocks,
        clock: Callable[[], dt.datetime] = utc_now,
        timezone: dt.tzinfo = dt.timezone.utc,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._locks = locks
        self._clock = clock
        self._timezone = timezone

    # ------------------------------------------------------------------ #
    # Loading helpers
    # ------------------------------------------------------------------ #

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", field="booking_id", ref=booking_id)
        return booking

    def _reload_booking(self, seen: Booking) -> Booking:
        """Fresh copy under the lock. The mechanic must not have changed meanwhile."""
        booking = self._load_booking(seen.id)
        if booking.mechanic_id != seen.mechanic_id or booking.date != seen.date:
            raise ConcurrentConflictError(
                f"Booking {seen.id} was reassigned while the request was in flight",
                field="mechanic_id",
                ref=seen.id,
            )
        return booking

    # ------------------------------------------------------------------ #
    # Booking status
    # ------------------------------------------------------------------ #

    def set_booking_status(self, booking_id: str, new_status: Any, actor: Actor) -> Booking:
        """
        Change a booking's status.

        Setting the current status again returns the booking unchanged, so
        ``completed_at`` is stamped exactly once.

        Raises:
            InvalidTransitionError: Unknown status, or unreachable from the
                current state.
            NotFoundError: Booking absent.
            ForbiddenError: Actor may not touch this booking or set this status.
        """
        target = parse_status(new_status)
        booking = self._load_booking(booking_id)
        authorize_booking_status(actor, booking, target)

        with self._locks.hold(booking.mechanic_id, booking.date):
            with self._store.transaction():
                booking = self._reload_booking(booking)
                if booking.status == target:
                    logger.debug("Booking %s already %s", booking_id, target.value)
                    return booking

                check_booking_transition(booking.status, target, booking_id)
                now = self._clock()
                updates: dict[str, Any] = {"status": target, "updated_at": now}
                if target == BookingStatus.COMPLETED:
                    updates["completed_at"] = now
                if target == BookingStatus.PENDING:
                    # pending bookings never carry a mechanic
                    updates["mechanic_id"] = None

                saved = self._store.save_booking(booking.model_copy(update=updates))

                if target in SYNCED_STATUSES and saved.mechanic_id is not None:
                    task = self.ensure_task_exists(saved.id, saved.mechanic_id)
                    self._apply_task_status(task, target, now)

        logger.info(
            "%s moved booking %s from %s to %s",
            describe_actor(actor), booking_id, booking.status.value, target.value,
        )
        return saved

    def cancel_booking(self, booking_id: str, actor: Actor) -> Booking:
        """Customer-facing cancellation; allowed only while pending or confirmed."""
        return self.set_booking_status(booking_id, BookingStatus.CANCELLED, actor)

    # ------------------------------------------------------------------ #
    # Task status
    # ------------------------------------------------------------------ #

    def resolve_task_ref(
        self, ref: str, actor: Actor
    ) -> tuple[Booking, Optional[MechanicTask]]:
        """
        Resolve a booking id or a task id to ``(booking, task)``.

        For a mechanic given a booking id with no task yet, the task is
        ``None`` and the caller decides whether to create it.

        Raises:
            ForbiddenError: Customers, or a mechanic not assigned to the booking.
            NotFoundError: Neither a booking nor a task matches ``ref``.
            InvalidTransitionError: ``ref`` names a task left behind by a
                reassignment.
        """
        if isinstance(actor, CustomerActor):
            raise ForbiddenError(
                f"{describe_actor(actor)} is not authorized to update tasks", field="role"
            )

        booking = self._store.get_booking(ref)
        if booking is not None:
            if isinstance(actor, MechanicActor):
                if booking.mechanic_id != actor.mechanic_id:
                    raise ForbiddenError(
                        f"Booking {ref} is not assigned to {describe_actor(actor)}",
                        field="booking_id",
                        ref=ref,
                    )
                return booking, self._store.get_task_by_booking(booking.id, actor.mechanic_id)

            task = None
            if booking.mechanic_id is not None:
                task = self._store.get_task_by_booking(booking.id, booking.mechanic_id)
            if task is None:
                raise NotFoundError(
                    f"Booking {ref} has no task for its assigned mechanic",
                    field="task_id",
                    ref=ref,
                )
            return booking, task

        task = self._store.get_task(ref)
        if task is None:
            raise NotFoundError(f"Task or booking {ref} not found", field="task_id", ref=ref)
        booking = self._load_booking(task.booking_id)

        if isinstance(actor, MechanicActor) and (
            task.mechanic_id != actor.mechanic_id or booking.mechanic_id != actor.mechanic_id
        ):
            raise ForbiddenError(
                f"Task {ref} is not assigned to {describe_actor(actor)}",
                field="task_id",
                ref=ref,
            )
        self._require_current_task(booking, task)
        return booking, task

    def _require_current_task(self, booking: Booking, task: MechanicTask) -> None:
        """Only the latest task of the booking's assigned mechanic may change."""
        current = None
        if booking.mechanic_id is not None and task.mechanic_id == booking.mechanic_id:
            current = self._store.get_task_by_booking(booking.id, booking.mechanic_id)
        if current is None or current.id != task.id:
            raise InvalidTransitionError(
                f"Task {task.id} was superseded by a reassignment of booking {booking.id}",
                field="task_id",
                ref=task.id,
            )

    def ensure_task_exists(self, booking_id: str, mechanic_id: int) -> MechanicTask:
        """
        Return the booking's task for this mechanic, creating it if absent.

        This is the only place a task is created as a side effect of a
        status change rather than an explicit assignment.
        """
        existing = self._store.get_task_by_booking(booking_id, mechanic_id)
        if existing is not None:
            return existing

        booking = self._load_booking(booking_id)
        window = self._resolver.booking_window(booking)
        task = create_task(self._store, booking, mechanic_id, window, self._clock())
        logger.info(
            "Created task %s for booking %s on first status update by mechanic %s",
            task.id, booking_id, mechanic_id,
        )
        return task

    def set_task_status(self, ref: str, new_status: Any, actor: Actor) -> MechanicTask:
        """
        Change a task's status, resolving ``ref`` as a booking or task id.

        in-progress and completed are mirrored onto the booking in the
        same transaction, with ``completed_at`` stamped on completion.

        Raises:
            InvalidTransitionError: Not a task status, or not reachable.
            NotFoundError: Neither booking nor task found.
            ForbiddenError: Actor may not update this task.
        """
        target = parse_status(new_status, allowed=TASK_STATUSES)
        booking, task = self.resolve_task_ref(ref, actor)

        with self._locks.hold(booking.mechanic_id, booking.date):
            with self._store.transaction():
                booking = self._reload_booking(booking)
                if booking.status == BookingStatus.CANCELLED:
                    raise InvalidTransitionError(
                        f"Booking {booking.id} is cancelled; its task cannot change",
                        field="status",
                        ref=booking.id,
                    )

                if task is None:
                    task = self.ensure_task_exists(booking.id, actor.mechanic_id)
                else:
                    task = self._store.get_task(task.id) or task
                    self._require_current_task(booking, task)

                if task.status == target:
                    logger.debug("Task %s already %s", task.id, target.value)
                    return task

                check_task_transition(task.status, target, task.id)
                now = self._clock()
                task = self._apply_task_status(task, target, now)

                if target in SYNCED_STATUSES and booking.status != target:
                    check_booking_transition(booking.status, target, booking.id)
                    updates: dict[str, Any] = {"status": target, "updated_at": now}
                    if target == BookingStatus.COMPLETED:
                        updates["completed_at"] = now
                    self._store.save_booking(booking.model_copy(update=updates))

        logger.info(
            "%s moved task %s (booking %s) to %s",
            describe_actor(actor), task.id, booking.id, target.value,
        )
        return task

    def _apply_task_status(
        self, task: MechanicTask, target: BookingStatus, now: dt.datetime
    ) -> MechanicTask:
        if task.status == target:
            return task
        check_task_transition(task.status, target, task.id)

        # task times are garage wall-clock times, like booking times
        stamp = now.astimezone(self._timezone).time().replace(second=0, microsecond=0)
        updates: dict[str, Any] = {"status": target, "updated_at": now}
        if target == BookingStatus.IN_PROGRESS and not task.is_started():
            updates["start_time"] = stamp
        if target == BookingStatus.COMPLETED and task.end_time is None:
            updates["end_time"] = stamp
        return self._store.save_task(task.model_copy(update=updates))
