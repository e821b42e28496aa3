"""Shared test fixtures and helpers."""

import datetime as dt
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from src.schemas.actor_schema import (
    AdminActor,
    CustomerActor,
    MechanicActor,
    OwnerActor,
    StaffActor,
)
from src.schemas.availability_schema import AvailabilitySlot
from src.schemas.booking_schema import Booking, BookingRequest
from src.schemas.catalog_schema import Mechanic, Service
from src.scheduling.scheduler import GarageScheduler
from src.stores.memory import InMemoryGarageStore
from src.stores.sql import SqlGarageStore

# 2025-03-18 is a Tuesday (day_of_week == 2)
TUESDAY = dt.date(2025, 3, 18)
WEDNESDAY = dt.date(2025, 3, 19)
START_OF_DAY = dt.datetime(2025, 3, 18, 7, 0, tzinfo=dt.timezone.utc)

OIL_CHANGE = 1  # 45 minutes
BRAKE_CHECK = 2  # 30 minutes
DIAGNOSTIC = 3  # no estimated time, uses the default duration
TYRE_ROTATION = 4  # out of stock

MECHANIC_M = 1  # Tue 08:00-17:00
MECHANIC_P = 2  # Tue 09:00-12:00
MECHANIC_INACTIVE = 3


class TickingClock:
    """Deterministic clock advancing one minute per reading."""

    def __init__(self, start: dt.datetime = START_OF_DAY) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        current = self.now
        self.now = current + dt.timedelta(minutes=1)
        return current


def seed_garage(store) -> None:
    store.save_service(Service(id=OIL_CHANGE, name="Oil change", price=89.0, estimated_time=45))
    store.save_service(Service(id=BRAKE_CHECK, name="Brake check", price=60.0, estimated_time=30))
    store.save_service(Service(id=DIAGNOSTIC, name="Diagnostic", price=120.0))
    store.save_service(Service(id=TYRE_ROTATION, name="Tyre rotation", in_stock=False))

    store.save_mechanic(Mechanic(id=MECHANIC_M, name="Morgan"))
    store.save_mechanic(Mechanic(id=MECHANIC_P, name="Parker"))
    store.save_mechanic(Mechanic(id=MECHANIC_INACTIVE, name="Quinn", is_active=False))

    store.replace_mechanic_availability(
        MECHANIC_M, [make_slot(MECHANIC_M, 2, dt.time(8), dt.time(17))]
    )
    store.replace_mechanic_availability(
        MECHANIC_P, [make_slot(MECHANIC_P, 2, dt.time(9), dt.time(12))]
    )
    store.replace_mechanic_availability(
        MECHANIC_INACTIVE, [make_slot(MECHANIC_INACTIVE, 2, dt.time(8), dt.time(17))]
    )


def make_slot(
    mechanic_id: int, day: int, start: dt.time, end: dt.time
) -> AvailabilitySlot:
    return AvailabilitySlot(mechanic_id=mechanic_id, day_of_week=day, start_time=start, end_time=end)


def make_sql_store() -> SqlGarageStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlGarageStore(engine, "B-", "T-")
    store.migrate()
    return store


@pytest.fixture
def memory_store():
    store = InMemoryGarageStore("B-", "T-")
    seed_garage(store)
    return store


@pytest.fixture
def sql_store():
    store = make_sql_store()
    seed_garage(store)
    yield store
    store.engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Seeded store, run once per backend."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def scheduler(store, clock):
    return GarageScheduler(store=store, clock=clock)


@pytest.fixture
def admin():
    return AdminActor(user_id=1)


@pytest.fixture
def owner():
    return OwnerActor(user_id=2)


@pytest.fixture
def staff():
    return StaffActor(user_id=10)


@pytest.fixture
def mechanic():
    return MechanicActor(user_id=30, mechanic_id=MECHANIC_M)


@pytest.fixture
def other_mechanic():
    return MechanicActor(user_id=31, mechanic_id=MECHANIC_P)


@pytest.fixture
def customer():
    return CustomerActor(user_id=20, customer_id=200)


@pytest.fixture
def other_customer():
    return CustomerActor(user_id=21, customer_id=201)


def book(
    scheduler: GarageScheduler,
    actor,
    time: dt.time,
    service_id: int = OIL_CHANGE,
    on: dt.date = TUESDAY,
    mechanic_id: Optional[int] = None,
    customer_id: Optional[int] = None,
) -> Booking:
    """Create a booking through the scheduler with sensible defaults."""
    return scheduler.create_booking(
        BookingRequest(
            service_id=service_id,
            vehicle_id=5,
            date=on,
            time=time,
            mechanic_id=mechanic_id,
            customer_id=customer_id,
        ),
        actor,
    )


def assigned_booking(
    scheduler: GarageScheduler, customer, staff, time: dt.time = dt.time(10), mechanic_id: int = MECHANIC_M
) -> Booking:
    booking = book(scheduler, customer, time)
    return scheduler.assign_mechanic(booking.id, mechanic_id, staff)
