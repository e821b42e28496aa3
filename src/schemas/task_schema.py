"""Mechanic-side work tracking records."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from src.schemas.booking_schema import Booking
from src.schemas.status_schema import TASK_STATUSES, BookingStatus


class MechanicTask(BaseModel):
    """One task per (booking, mechanic) pair.

    Uses the booking status enum; only pending, in-progress and
    completed are valid for a task.
    """

    id: str
    booking_id: str
    mechanic_id: int
    status: BookingStatus = BookingStatus.PENDING
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    version: int = Field(default=0, ge=0)

    @field_validator("status")
    @classmethod
    def _task_status_subset(cls, value: BookingStatus) -> BookingStatus:
        if value not in TASK_STATUSES:
            raise ValueError(f"Task status cannot be '{value.value}'")
        return value

    def is_started(self) -> bool:
        """A start time equal to the end time marks a task that never started."""
        return self.start_time is not None and self.start_time != self.end_time


class FieldNote(BaseModel):
    """Free-text note a mechanic attaches to a booking while working on it."""

    id: int
    booking_id: str
    mechanic_id: int
    note: str
    created_at: dt.datetime


class TaskDetail(BaseModel):
    """A booking assigned to a mechanic, with that mechanic's task once it exists."""

    task: Optional[MechanicTask] = None
    booking: Booking
