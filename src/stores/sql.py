"""
SQLAlchemy-backed garage store.

Schema is created once by ``migrate()`` at startup; request paths never
alter tables. Bookings and tasks carry a ``version`` column used as an
optimistic guard, and the mechanic/date booking read takes row locks
(``SELECT ... FOR UPDATE``) on backends that support them.
"""

import datetime as dt
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional, Union

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    Time,
    create_engine,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError

from src.config import settings
from src.errors import ConcurrentConflictError
from src.schemas.availability_schema import AvailabilitySlot
from src.schemas.booking_schema import Booking
from src.schemas.catalog_schema import Mechanic, Service
from src.schemas.status_schema import BookingStatus
from src.schemas.task_schema import FieldNote, MechanicTask

logger = logging.getLogger(__name__)

ID_WIDTH = 4

metadata = MetaData()

services_table = Table(
    "services",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, default=""),
    Column("price", Float, nullable=False, default=0.0),
    Column("estimated_time", Integer, nullable=True),  # minutes
    Column("in_stock", Boolean, nullable=False, default=True),
)

mechanics_table = Table(
    "mechanics",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("name", String(255), nullable=False),
    Column("specialization", String(255), nullable=False, default=""),
    Column("is_active", Boolean, nullable=False, default=True),
)

availability_table = Table(
    "mechanic_availability",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mechanic_id", Integer, nullable=False, index=True),
    Column("day_of_week", Integer, nullable=False),  # 0=Sunday
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
)

bookings_table = Table(
    "bookings",
    metadata,
    Column("id", String(20), primary_key=True),
    Column("customer_id", Integer, nullable=False),
    Column("service_id", Integer, nullable=False),
    Column("vehicle_id", Integer, nullable=False),
    Column("mechanic_id", Integer, nullable=True, index=True),
    Column("booking_date", Date, nullable=False, index=True),
    Column("booking_time", Time, nullable=False),
    Column("status", String(20), nullable=False, default=BookingStatus.PENDING.value),
    Column("notes", Text, nullable=False, default=""),
    Column("customer_name", String(255), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("version", Integer, nullable=False, default=1),
)

tasks_table = Table(
    "mechanic_tasks",
    metadata,
    Column("id", String(20), primary_key=True),
    Column("booking_id", String(20), nullable=False, index=True),
    Column("mechanic_id", Integer, nullable=False, index=True),
    Column("status", String(20), nullable=False, default=BookingStatus.PENDING.value),
    Column("start_time", Time, nullable=True),
    Column("end_time", Time, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("version", Integer, nullable=False, default=1),
)

field_notes_table = Table(
    "field_notes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("booking_id", String(20), nullable=False, index=True),
    Column("mechanic_id", Integer, nullable=False),
    Column("note", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

sequences_table = Table(
    "id_sequences",
    metadata,
    Column("name", String(20), primary_key=True),
    Column("value", Integer, nullable=False, default=0),
)

_SEQUENCE_NAMES = ("booking", "task")

_SERIALIZATION_MARKERS = (
    "deadlock detected",
    "could not serialize",
    "database is locked",
)


def _is_serialization_failure(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _SERIALIZATION_MARKERS)


def _to_utc(value: Optional[dt.datetime]) -> Optional[dt.datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def _row_to_booking(row: Any) -> Booking:
    m = row._mapping
    return Booking(
        id=m["id"],
        customer_id=m["customer_id"],
        service_id=m["service_id"],
        vehicle_id=m["vehicle_id"],
        mechanic_id=m["mechanic_id"],
        date=m["booking_date"],
        time=m["booking_time"],
        status=BookingStatus(m["status"]),
        notes=m["notes"] or "",
        customer_name=m["customer_name"],
        created_at=_to_utc(m["created_at"]),
        updated_at=_to_utc(m["updated_at"]),
        completed_at=_to_utc(m["completed_at"]),
        version=m["version"],
    )


def _row_to_task(row: Any) -> MechanicTask:
    m = row._mapping
    return MechanicTask(
        id=m["id"],
        booking_id=m["booking_id"],
        mechanic_id=m["mechanic_id"],
        status=BookingStatus(m["status"]),
        start_time=m["start_time"],
        end_time=m["end_time"],
        created_at=_to_utc(m["created_at"]),
        updated_at=_to_utc(m["updated_at"]),
        version=m["version"],
    )


class SqlGarageStore:
    """GarageStore implementation over any SQLAlchemy-supported database."""

    def __init__(
        self,
        engine: Union[str, Engine],
        booking_id_prefix: str = settings.store.booking_id_prefix,
        task_id_prefix: str = settings.store.task_id_prefix,
    ) -> None:
        if isinstance(engine, str):
            engine = create_engine(engine, pool_pre_ping=True)
        self._engine = engine
        self._booking_id_prefix = booking_id_prefix
        self._task_id_prefix = task_id_prefix
        self._local = threading.local()

    @property
    def engine(self) -> Engine:
        return self._engine

    def migrate(self) -> None:
        """Create tables and seed id sequences. Idempotent."""
        metadata.create_all(self._engine)
        with self._engine.begin() as conn:
            existing = {
                row.name for row in conn.execute(select(sequences_table.c.name))
            }
            for name in _SEQUENCE_NAMES:
                if name not in existing:
                    conn.execute(insert(sequences_table).values(name=name, value=0))
        logger.info("Schema migration complete (%s)", self._engine.url.render_as_string())

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        try:
            with self._engine.begin() as conn:
                self._local.conn = conn
                try:
                    yield
                finally:
                    self._local.conn = None
        except OperationalError as exc:
            if _is_serialization_failure(exc):
                raise ConcurrentConflictError(
                    "Transaction aborted by a concurrent update, retry the request",
                ) from exc
            raise

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        with self.transaction():
            yield self._local.conn

    def _next_sequence(self, name: str) -> int:
        with self._connect() as conn:
            conn.execute(
                update(sequences_table)
                .where(sequences_table.c.name == name)
                .values(value=sequences_table.c.value + 1)
            )
            return conn.execute(
                select(sequences_table.c.value).where(sequences_table.c.name == name)
            ).scalar_one()

    # ------------------------------------------------------------------ #
    # Catalog
    # ------------------------------------------------------------------ #

    def get_service(self, service_id: int) -> Optional[Service]:
        with self._connect() as conn:
            row = conn.execute(
                select(services_table).where(services_table.c.id == service_id)
            ).first()
        return Service(**row._mapping) if row else None

    def save_service(self, service: Service) -> Service:
        values = service.model_dump(exclude={"id"})
        with self._connect() as conn:
            result = conn.execute(
                update(services_table)
                .where(services_table.c.id == service.id)
                .values(**values)
            )
            if result.rowcount == 0:
                conn.execute(insert(services_table).values(id=service.id, **values))
        return service

    def get_mechanic(self, mechanic_id: int) -> Optional[Mechanic]:
        with self._connect() as conn:
            row = conn.execute(
                select(mechanics_table).where(mechanics_table.c.id == mechanic_id)
            ).first()
        return Mechanic(**row._mapping) if row else None

    def list_mechanics(self, active_only: bool = True) -> list[Mechanic]:
        query = select(mechanics_table).order_by(mechanics_table.c.id)
        if active_only:
            query = query.where(mechanics_table.c.is_active.is_(True))
        with self._connect() as conn:
            return [Mechanic(**row._mapping) for row in conn.execute(query)]

    def save_mechanic(self, mechanic: Mechanic) -> Mechanic:
        values = mechanic.model_dump(exclude={"id"})
        with self._connect() as conn:
            result = conn.execute(
                update(mechanics_table)
                .where(mechanics_table.c.id == mechanic.id)
                .values(**values)
            )
            if result.rowcount == 0:
                conn.execute(insert(mechanics_table).values(id=mechanic.id, **values))
        return mechanic

    def lock_mechanic(self, mechanic_id: int) -> None:
        """Take a row lock on the mechanic for the rest of the transaction.

        The booking rows read by the conflict check may not exist yet, so
        locking them alone cannot stop two sessions from both seeing a free
        window. The mechanic row always exists and acts as the guard.
        """
        with self._connect() as conn:
            conn.execute(
                select(mechanics_table.c.id)
                .where(mechanics_table.c.id == mechanic_id)
                .with_for_update()
            )

    # ------------------------------------------------------------------ #
    # Availability
    # ------------------------------------------------------------------ #

    def get_mechanic_availability(self, mechanic_id: int) -> list[AvailabilitySlot]:
        query = (
            select(availability_table)
            .where(availability_table.c.mechanic_id == mechanic_id)
            .order_by(availability_table.c.day_of_week, availability_table.c.start_time)
        )
        with self._connect() as conn:
            return [
                AvailabilitySlot(
                    mechanic_id=row.mechanic_id,
                    day_of_week=row.day_of_week,
                    start_time=row.start_time,
                    end_time=row.end_time,
                )
                for row in conn.execute(query)
            ]

    def replace_mechanic_availability(
        self, mechanic_id: int, slots: Iterable[AvailabilitySlot]
    ) -> list[AvailabilitySlot]:
        rows = [
            {
                "mechanic_id": mechanic_id,
                "day_of_week": s.day_of_week,
                "start_time": s.start_time,
                "end_time": s.end_time,
            }
            for s in slots
        ]
        with self.transaction():
            with self._connect() as conn:
                conn.execute(
                    delete(availability_table).where(
                        availability_table.c.mechanic_id == mechanic_id
                    )
                )
                if rows:
                    conn.execute(insert(availability_table), rows)
            return self.get_mechanic_availability(mechanic_id)

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def next_booking_id(self) -> str:
        return f"{self._booking_id_prefix}{self._next_sequence('booking'):0{ID_WIDTH}d}"

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._connect() as conn:
            row = conn.execute(
                select(bookings_table).where(bookings_table.c.id == booking_id)
            ).first()
        return _row_to_booking(row) if row else None

    def save_booking(self, booking: Booking) -> Booking:
        values = {
            "customer_id": booking.customer_id,
            "service_id": booking.service_id,
            "vehicle_id": booking.vehicle_id,
            "mechanic_id": booking.mechanic_id,
            "booking_date": booking.date,
            "booking_time": booking.time,
            "status": booking.status.value,
            "notes": booking.notes,
            "customer_name": booking.customer_name,
            "created_at": _to_utc(booking.created_at),
            "updated_at": _to_utc(booking.updated_at),
            "completed_at": _to_utc(booking.completed_at),
            "version": booking.version + 1,
        }
        with self._connect() as conn:
            result = conn.execute(
                update(bookings_table)
                .where(
                    bookings_table.c.id == booking.id,
                    bookings_table.c.version == booking.version,
                )
                .values(**values)
            )
            if result.rowcount == 0:
                current = conn.execute(
                    select(bookings_table.c.version).where(bookings_table.c.id == booking.id)
                ).first()
                if current is not None:
                    raise ConcurrentConflictError(
                        f"Booking {booking.id} was modified concurrently "
                        f"(expected version {booking.version}, found {current.version})",
                        field="version",
                        ref=booking.id,
                    )
                conn.execute(insert(bookings_table).values(id=booking.id, **values))
        return booking.model_copy(update={"version": booking.version + 1})

    def list_active_bookings_for_mechanic_on_date(
        self, mechanic_id: int, on: dt.date
    ) -> list[Booking]:
        query = (
            select(bookings_table)
            .where(
                bookings_table.c.mechanic_id == mechanic_id,
                bookings_table.c.booking_date == on,
                bookings_table.c.status != BookingStatus.CANCELLED.value,
            )
            .order_by(bookings_table.c.booking_time)
            .with_for_update()
        )
        with self._connect() as conn:
            return [_row_to_booking(row) for row in conn.execute(query)]

    def list_bookings_for_mechanic(self, mechanic_id: int) -> list[Booking]:
        query = (
            select(bookings_table)
            .where(bookings_table.c.mechanic_id == mechanic_id)
            .order_by(
                bookings_table.c.booking_date,
                bookings_table.c.booking_time,
                bookings_table.c.id,
            )
        )
        with self._connect() as conn:
            return [_row_to_booking(row) for row in conn.execute(query)]

    # ------------------------------------------------------------------ #
    # Tasks
    # ------------------------------------------------------------------ #

    def next_task_id(self) -> str:
        return f"{self._task_id_prefix}{self._next_sequence('task'):0{ID_WIDTH}d}"

    def get_task(self, task_id: str) -> Optional[MechanicTask]:
        with self._connect() as conn:
            row = conn.execute(
                select(tasks_table).where(tasks_table.c.id == task_id)
            ).first()
        return _row_to_task(row) if row else None

    def get_task_by_booking(
        self, booking_id: str, mechanic_id: Optional[int] = None
    ) -> Optional[MechanicTask]:
        query = select(tasks_table).where(tasks_table.c.booking_id == booking_id)
        if mechanic_id is not None:
            query = query.where(tasks_table.c.mechanic_id == mechanic_id)
        query = query.order_by(tasks_table.c.created_at.desc(), tasks_table.c.id.desc())
        with self._connect() as conn:
            row = conn.execute(query.limit(1)).first()
        return _row_to_task(row) if row else None

    def save_task(self, task: MechanicTask) -> MechanicTask:
        values = {
            "booking_id": task.booking_id,
            "mechanic_id": task.mechanic_id,
            "status": task.status.value,
            "start_time": task.start_time,
            "end_time": task.end_time,
            "created_at": _to_utc(task.created_at),
            "updated_at": _to_utc(task.updated_at),
            "version": task.version + 1,
        }
        with self._connect() as conn:
            result = conn.execute(
                update(tasks_table)
                .where(tasks_table.c.id == task.id, tasks_table.c.version == task.version)
                .values(**values)
            )
            if result.rowcount == 0:
                current = conn.execute(
                    select(tasks_table.c.version).where(tasks_table.c.id == task.id)
                ).first()
                if current is not None:
                    raise ConcurrentConflictError(
                        f"Task {task.id} was modified concurrently "
                        f"(expected version {task.version}, found {current.version})",
                        field="version",
                        ref=task.id,
                    )
                conn.execute(insert(tasks_table).values(id=task.id, **values))
        return task.model_copy(update={"version": task.version + 1})

    # ------------------------------------------------------------------ #
    # Field notes
    # ------------------------------------------------------------------ #

    def add_field_note(
        self, booking_id: str, mechanic_id: int, note: str, created_at: dt.datetime
    ) -> FieldNote:
        with self._connect() as conn:
            result = conn.execute(
                insert(field_notes_table).values(
                    booking_id=booking_id,
                    mechanic_id=mechanic_id,
                    note=note,
                    created_at=_to_utc(created_at),
                )
            )
            note_id = result.inserted_primary_key[0]
        return FieldNote(
            id=note_id,
            booking_id=booking_id,
            mechanic_id=mechanic_id,
            note=note,
            created_at=_to_utc(created_at),
        )

    def list_field_notes(self, booking_id: str) -> list[FieldNote]:
        query = (
            select(field_notes_table)
            .where(field_notes_table.c.booking_id == booking_id)
            .order_by(field_notes_table.c.id)
        )
        with self._connect() as conn:
            return [
                FieldNote(
                    id=row.id,
                    booking_id=row.booking_id,
                    mechanic_id=row.mechanic_id,
                    note=row.note,
                    created_at=_to_utc(row.created_at),
                )
                for row in conn.execute(query)
            ]
