# backend/cadence/schemas/action.py
"""
Recurring action payloads.

Frequency and assigned days arrive as loosely-typed JSON; they are converted
here into the closed Frequency enum and a validated day list before anything
reaches the expander.
"""

import datetime
from typing import Any, List, Optional

from pydantic import Field, ValidationError, field_validator, model_validator

from ..core.enums import Frequency
from ..core.exceptions import DomainException, UnknownFrequencyException, ValidationException
from ..domain.recurrence import coerce_frequency, normalize_assigned_days
from ._strict_base import StrictModel, StrictRequestModel


class RecurringActionCreate(StrictRequestModel):
    description: str = Field(min_length=1, max_length=2000)
    frequency: Frequency
    assigned_days: List[int] = Field(default_factory=list)
    specific_date: Optional[datetime.date] = None
    requires_evidence: bool = False
    deadline_hours: Optional[int] = Field(default=None, gt=0, le=24 * 14)
    goal_id: Optional[str] = None

    @field_validator("frequency", mode="before")
    @classmethod
    def parse_frequency(cls, v: Any) -> Frequency:
        try:
            return coerce_frequency(v)
        except UnknownFrequencyException as exc:
            raise ValueError(exc.message) from exc

    @model_validator(mode="before")
    @classmethod
    def normalize_days(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        try:
            frequency = coerce_frequency(data.get("frequency"))
        except UnknownFrequencyException:
            return data  # reported by parse_frequency
        try:
            days = normalize_assigned_days(frequency, data.get("assigned_days"))
        except DomainException as exc:
            raise ValueError(exc.message) from exc
        return {**data, "assigned_days": days}


def parse_action_payload(data: Any) -> RecurringActionCreate:
    """Validate a raw payload, translating pydantic errors into domain errors."""
    try:
        return RecurringActionCreate.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        for err in errors:
            if err.get("loc") and err["loc"][0] == "frequency" and err.get("type") != "missing":
                raw = data.get("frequency") if isinstance(data, dict) else None
                raise UnknownFrequencyException(raw) from exc
        raise ValidationException(
            "Invalid recurring action payload",
            code="INVALID_ACTION_PAYLOAD",
            details={
                "errors": [
                    {"loc": ".".join(str(p) for p in e.get("loc", ())), "msg": e.get("msg")}
                    for e in errors
                ]
            },
        ) from exc


class MaterializationResult(StrictModel):
    """Outcome of expanding and persisting one action over a window."""

    action_id: str
    created: int = 0
    skipped: int = 0
    removed: int = 0
    warnings: List[str] = Field(default_factory=list)


class RegenerationFailure(StrictModel):
    action_id: str
    code: str
    message: str


class RegenerationReport(StrictModel):
    results: List[MaterializationResult] = Field(default_factory=list)
    failures: List[RegenerationFailure] = Field(default_factory=list)

    @property
    def created(self) -> int:
        return sum(r.created for r in self.results)

    @property
    def warnings(self) -> List[str]:
        return [w for r in self.results for w in r.warnings]
