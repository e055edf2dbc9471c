# backend/cadence/schemas/scheduling.py
"""Availability, reservation and pricing payloads."""

import datetime
from decimal import Decimal
import re
from typing import Any, Optional, Type, TypeVar

from pydantic import (
    AwareDatetime,
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..core.enums import CallType
from ..core.exceptions import ValidationException
from ._strict_base import StrictModel, StrictRequestModel

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

M = TypeVar("M", bound=BaseModel)


class WeeklyWindowIn(StrictRequestModel):
    """A weekly wall-clock window in the mentor's own timezone."""

    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        if not HHMM.match(v):
            raise ValueError("Time must be HH:MM (24h)")
        return v

    @model_validator(mode="after")
    def validate_time_order(self) -> "WeeklyWindowIn":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class AvailabilityExceptionIn(StrictRequestModel):
    start_date: datetime.date
    end_date: datetime.date
    reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def validate_range(self) -> "AvailabilityExceptionIn":
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before start date")
        return self


class ReservationRequest(StrictRequestModel):
    """
    A request to claim one slot.

    ``scheduled_at`` must already be an absolute, timezone-aware instant;
    converting a participant's local time is the caller's job.
    """

    participant_id: str = Field(min_length=1)
    mentor_id: str = Field(min_length=1)
    scheduled_at: AwareDatetime
    call_type: CallType
    enrollment_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class MentorshipRequestIn(StrictRequestModel):
    participant_id: str = Field(min_length=1)
    mentor_id: str = Field(min_length=1)
    requested_date: datetime.date
    requested_at: Optional[AwareDatetime] = None
    topic: Optional[str] = Field(default=None, max_length=2000)


class PriceQuote(StrictModel):
    mentor_id: str
    base_price: int
    multiplier: Decimal
    final_price: int
    occupancy_rate: float
    capacity: float
    booked_count: int
    tier: str


class FundsSplit(StrictModel):
    amount: int
    commission_pct: int
    platform_fee: int
    mentor_earnings: int


class CycleWindow(StrictModel):
    start_date: datetime.date
    end_date: datetime.date


class ExtensionResult(StrictModel):
    entity_id: str
    previous_end_date: datetime.date
    new_end_date: datetime.date
    additional_days: int
    regenerate_from: datetime.date
    regenerate_to: datetime.date


class CycleStats(StrictModel):
    start_date: datetime.date
    end_date: datetime.date
    total_days: int
    elapsed_days: int
    remaining_days: int
    progress_pct: float


def parse_model(model: Type[M], data: Any) -> M:
    """Validate ``data`` against ``model``; pydantic errors become ValidationException."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationException(
            f"Invalid {model.__name__} payload",
            code="INVALID_PAYLOAD",
            details={
                "errors": [
                    {"loc": ".".join(str(p) for p in e.get("loc", ())), "msg": e.get("msg")}
                    for e in exc.errors(include_url=False)
                ]
            },
        ) from exc
