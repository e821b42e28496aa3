"""Booking records and booking creation requests."""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field

from src.schemas.status_schema import BookingStatus


class BookingRequest(BaseModel):
    """Validated booking creation data."""
    service_id: int
    vehicle_id: int
    date: dt.date
    time: dt.time
    notes: Optional[str] = None
    customer_id: Optional[int] = None
    mechanic_id: Optional[int] = None
    customer_name: Optional[str] = None


class Booking(BaseModel):
    """A scheduled service appointment.

    ``mechanic_id`` is only set once the booking is confirmed or later.
    ``version`` increments on every save and backs optimistic conflict
    detection in the stores.
    """
    id: str
    customer_id: int
    service_id: int
    vehicle_id: int
    date: dt.date
    time: dt.time
    mechanic_id: Optional[int] = None
    status: BookingStatus = BookingStatus.PENDING
    notes: str = ""
    customer_name: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime
    completed_at: Optional[dt.datetime] = None
    version: int = Field(default=0, ge=0)
