"""Service catalog and mechanic roster records."""

from typing import Optional

from pydantic import BaseModel, Field


class Service(BaseModel):
    """A bookable garage service."""
    id: int
    name: str
    description: str = ""
    price: float = 0.0
    estimated_time: Optional[int] = Field(default=None, gt=0)
    in_stock: bool = True


class Mechanic(BaseModel):
    """A mechanic that can be assigned to bookings."""
    id: int
    name: str
    specialization: str = ""
    is_active: bool = True
