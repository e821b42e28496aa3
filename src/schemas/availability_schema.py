"""Weekly availability templates and computed free slots."""

import datetime as dt

from pydantic import BaseModel, Field, model_validator


class AvailabilitySlot(BaseModel):
    """Recurring weekly window during which a mechanic can be scheduled.

    ``day_of_week`` runs 0=Sunday .. 6=Saturday. Slots for the same day may
    overlap; redundant rows are tolerated.
    """

    mechanic_id: int
    day_of_week: int = Field(ge=0, le=6)
    start_time: dt.time
    end_time: dt.time

    @model_validator(mode="after")
    def _check_window(self) -> "AvailabilitySlot":
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time {self.start_time} must be before end_time {self.end_time}"
            )
        return self


class FreeSlot(BaseModel):
    """A concrete bookable window for one mechanic on one date."""

    mechanic_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
