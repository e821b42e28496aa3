"""Creation of mechanic task records from bookings."""

import datetime as dt

from src.schemas.booking_schema import Booking
from src.schemas.status_schema import BookingStatus
from src.schemas.task_schema import MechanicTask
from src.stores.base import GarageStore
from src.utils import MINUTES_PER_DAY, from_minutes


def create_task(
    store: GarageStore,
    booking: Booking,
    mechanic_id: int,
    window: tuple[int, int],
    now: dt.datetime,
) -> MechanicTask:
    """Insert a pending task spanning the booking's planned window.

    Must run inside the caller's transaction.
    """
    start, end = window
    task = MechanicTask(
        id=store.next_task_id(),
        booking_id=booking.id,
        mechanic_id=mechanic_id,
        status=BookingStatus.PENDING,
        start_time=from_minutes(start),
        end_time=from_minutes(min(end, MINUTES_PER_DAY - 1)),
        created_at=now,
        updated_at=now,
    )
    return store.save_task(task)
