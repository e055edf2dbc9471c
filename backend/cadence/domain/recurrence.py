# backend/cadence/domain/recurrence.py
"""
Recurrence expansion.

Turns a recurring action's rule into the ordered list of dates it is due
within a date range. Everything here is pure: no clock, no session, no
logging side effects. Calling ``expand`` twice with the same inputs always
returns the same list.

Weekday indices follow the 0 = Sunday ... 6 = Saturday convention used by
stored ``assigned_days`` and ``AvailabilityWindow.day_of_week``.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..core.enums import Frequency
from ..core.exceptions import UnknownFrequencyException, ValidationException

EPOCH = date(1970, 1, 1)
LAST_DAY_OF_MONTH = -1


def weekday_index(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def epoch_days(day: date) -> int:
    return (day - EPOCH).days


class WeekParityPolicy(Protocol):
    """Decides whether a date falls in an "on" week for BIWEEKLY actions."""

    def is_on_week(self, day: date) -> bool:
        ...


class EpochWeekParity:
    """
    Even weeks counted from 1970-01-01.

    Blocks of seven days start on Thursdays (the epoch's weekday), and two
    actions always agree on which week is "on" regardless of when they were
    created.
    """

    def is_on_week(self, day: date) -> bool:
        return (epoch_days(day) // 7) % 2 == 0

    def __repr__(self) -> str:
        return "EpochWeekParity()"


@dataclass(frozen=True)
class AnchoredWeekParity:
    """Week 0 is the seven days starting at ``anchor``; every other week after it is on."""

    anchor: date

    def is_on_week(self, day: date) -> bool:
        return ((day - self.anchor).days // 7) % 2 == 0


DEFAULT_PARITY: WeekParityPolicy = EpochWeekParity()


def coerce_frequency(value: Any) -> Frequency:
    """Convert loosely-typed input into a Frequency or raise."""
    if isinstance(value, Frequency):
        return value
    if isinstance(value, str):
        candidate = value.strip().upper().replace("-", "_")
        try:
            return Frequency(candidate)
        except ValueError:
            pass
    raise UnknownFrequencyException(value)


def normalize_assigned_days(frequency: Frequency, values: Optional[Iterable[Any]]) -> List[int]:
    """
    Validate and sort ``assigned_days`` for a frequency.

    Weekly kinds take weekday indices 0-6. MONTHLY takes a single day of month
    1-31, or -1 for the last day. DAILY and ONE_TIME ignore the list.
    """
    raw = list(values or [])
    days: List[int] = []
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, (int, str)):
            raise ValidationException(
                f"Invalid assigned day: {item!r}",
                code="INVALID_ASSIGNED_DAY",
                details={"value": repr(item)},
            )
        try:
            days.append(int(item))
        except ValueError as exc:
            raise ValidationException(
                f"Invalid assigned day: {item!r}",
                code="INVALID_ASSIGNED_DAY",
                details={"value": repr(item)},
            ) from exc

    if frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY):
        bad = [d for d in days if not 0 <= d <= 6]
        if bad:
            raise ValidationException(
                "Weekdays must be between 0 (Sunday) and 6 (Saturday)",
                code="INVALID_ASSIGNED_DAY",
                details={"values": bad},
            )
        return sorted(set(days))

    if frequency == Frequency.MONTHLY:
        if len(days) > 1:
            raise ValidationException(
                "Monthly actions take a single day of month",
                code="INVALID_ASSIGNED_DAY",
                details={"values": days},
            )
        if days and not (days[0] == LAST_DAY_OF_MONTH or 1 <= days[0] <= 31):
            raise ValidationException(
                "Day of month must be 1-31 or -1 for the last day",
                code="INVALID_ASSIGNED_DAY",
                details={"values": days},
            )
        return days

    return []


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    assigned_days: Tuple[int, ...] = ()
    specific_date: Optional[date] = None

    @classmethod
    def from_action(cls, action: Any) -> "RecurrenceRule":
        if isinstance(action, RecurrenceRule):
            return action
        return cls(
            frequency=coerce_frequency(action.frequency),
            assigned_days=tuple(action.assigned_days or ()),
            specific_date=action.specific_date,
        )


def _monthly_target(day: date, assigned: Sequence[int]) -> int:
    target = assigned[0] if assigned else 1
    if target == LAST_DAY_OF_MONTH:
        return calendar.monthrange(day.year, day.month)[1]
    return target


def _days(from_date: date, to_date: date) -> Iterable[date]:
    current = from_date
    while current <= to_date:
        yield current
        current += timedelta(days=1)


def expand(
    action: Any,
    from_date: date,
    to_date: date,
    parity: WeekParityPolicy = DEFAULT_PARITY,
) -> List[date]:
    """
    Dates in ``[from_date, to_date]`` on which ``action`` is due, ascending.

    ``action`` is a RecurrenceRule or anything exposing ``frequency``,
    ``assigned_days`` and ``specific_date``. WEEKLY and BIWEEKLY with no
    assigned days yield ``[]``; detecting that is the caller's job.
    """
    if from_date > to_date:
        return []

    rule = RecurrenceRule.from_action(action)
    assigned = rule.assigned_days

    if rule.frequency == Frequency.ONE_TIME:
        if rule.specific_date is not None and from_date <= rule.specific_date <= to_date:
            return [rule.specific_date]
        return [from_date]

    if rule.frequency == Frequency.DAILY:
        return list(_days(from_date, to_date))

    if rule.frequency == Frequency.WEEKLY:
        wanted = set(assigned)
        return [d for d in _days(from_date, to_date) if weekday_index(d) in wanted]

    if rule.frequency == Frequency.BIWEEKLY:
        wanted = set(assigned)
        return [
            d
            for d in _days(from_date, to_date)
            if weekday_index(d) in wanted and parity.is_on_week(d)
        ]

    if rule.frequency == Frequency.MONTHLY:
        return [d for d in _days(from_date, to_date) if d.day == _monthly_target(d, assigned)]

    raise UnknownFrequencyException(rule.frequency)


def is_silent_noop(action: Any) -> bool:
    """True when a weekly-kind rule has no weekdays and can never produce a date."""
    rule = RecurrenceRule.from_action(action)
    return rule.frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY) and not rule.assigned_days
