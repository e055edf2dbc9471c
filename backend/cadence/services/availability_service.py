# backend/cadence/services/availability_service.py
"""
Availability templates and theoretical open slots.

``free_template_slots`` answers "when could this mentor take a call of this
type on this day" from the weekly windows and vacation exceptions alone.
It knows nothing about existing reservations; subtracting those is the
reservation service's job.
"""

from datetime import date, datetime
import logging
from typing import Any, Dict, Iterable, List, Optional

import pytz
from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import CallType
from ..core.exceptions import NotFoundException, ValidationException
from ..domain.recurrence import weekday_index
from ..models.availability import AvailabilityException, AvailabilityWindow
from ..models.mentor import MentorProfile
from ..repositories.factory import RepositoryFactory
from ..schemas.scheduling import AvailabilityExceptionIn, WeeklyWindowIn, parse_model
from .base import BaseService
from .timezone_service import NonExistentLocalTime, TimezoneService

logger = logging.getLogger(__name__)


def slot_minutes_for(call_type: CallType) -> int:
    if call_type == CallType.MENTORSHIP:
        return settings.mentorship_slot_minutes
    return settings.discipline_slot_minutes


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _to_hhmm(total_minutes: int) -> str:
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def walk_window(start_time: str, end_time: str, step_minutes: int) -> List[str]:
    """Slot starts from ``start_time`` in ``step_minutes`` steps whose end fits the window."""
    if step_minutes <= 0:
        raise ValidationException(
            "Slot granularity must be positive",
            code="INVALID_GRANULARITY",
            details={"granularity": step_minutes},
        )
    start, end = _to_minutes(start_time), _to_minutes(end_time)
    slots = []
    cursor = start
    while cursor + step_minutes <= end:
        slots.append(_to_hhmm(cursor))
        cursor += step_minutes
    return slots


class AvailabilityService(BaseService):
    """Mentor availability: templates, exceptions and free template slots."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.window_repository = RepositoryFactory.create_availability_window_repository(db)
        self.exception_repository = RepositoryFactory.create_availability_exception_repository(db)
        self.profile_repository = RepositoryFactory.create_mentor_profile_repository(db)

    # Timezone helpers

    def mentor_timezone(self, mentor_id: str) -> str:
        profile = self.profile_repository.get_by_mentor(mentor_id)
        if profile is not None and profile.timezone:
            return profile.timezone
        return settings.calendar_timezone

    def mentor_today(self, mentor_id: str) -> date:
        return TimezoneService.utc_to_local(self.now(), self.mentor_timezone(mentor_id)).date()

    def slot_instant(self, mentor_id: str, day: date, hhmm: str) -> datetime:
        return TimezoneService.local_to_utc(
            day, TimezoneService.parse_hhmm(hhmm), self.mentor_timezone(mentor_id)
        )

    # Read path

    @BaseService.measure_operation("free_template_slots")
    def free_template_slots(
        self,
        mentor_id: str,
        day: date,
        call_type: CallType,
        slot_granularity_minutes: Optional[int] = None,
    ) -> List[str]:
        """
        Theoretical open slots ("HH:MM", mentor-local, ascending) for one day.

        MENTORSHIP is blocked by any exception covering the day; DISCIPLINE
        never is. Past days have no slots, and on the current day only slots
        starting strictly after now are kept.
        """
        granularity = slot_granularity_minutes or slot_minutes_for(call_type)

        if call_type == CallType.MENTORSHIP:
            blocking = self.exception_repository.covering(mentor_id, day)
            if blocking is not None:
                self.logger.debug(
                    "Mentorship slots blocked by exception",
                    extra={"mentor_id": mentor_id, "day": day.isoformat()},
                )
                return []

        windows = self.window_repository.active_windows(
            mentor_id, call_type, day_of_week=weekday_index(day)
        )
        if not windows:
            return []

        today = self.mentor_today(mentor_id)
        if day < today:
            return []

        slots = sorted(
            {slot for w in windows for slot in walk_window(w.start_time, w.end_time, granularity)}
        )

        if day == today:
            now = self.now()
            slots = [s for s in slots if self._starts_after(mentor_id, day, s, now)]

        return [s for s in slots if self._exists(mentor_id, day, s)]

    def _exists(self, mentor_id: str, day: date, hhmm: str) -> bool:
        try:
            self.slot_instant(mentor_id, day, hhmm)
        except NonExistentLocalTime:
            return False
        return True

    def _starts_after(self, mentor_id: str, day: date, hhmm: str, now: datetime) -> bool:
        try:
            return self.slot_instant(mentor_id, day, hhmm) > now
        except NonExistentLocalTime:
            return False

    # Template management

    @BaseService.measure_operation("replace_weekly_windows")
    def replace_weekly_windows(
        self, mentor_id: str, call_type: CallType, windows: Iterable[Any]
    ) -> List[AvailabilityWindow]:
        """Replace the whole weekly template of one calendar type."""
        parsed = [parse_model(WeeklyWindowIn, w) for w in windows]
        self._reject_overlaps(parsed)

        with self.transaction():
            self.window_repository.delete_for_mentor(mentor_id, call_type)
            created = [
                self.window_repository.create(
                    mentor_id=mentor_id,
                    day_of_week=w.day_of_week,
                    start_time=w.start_time,
                    end_time=w.end_time,
                    call_type=call_type.value,
                    is_active=True,
                )
                for w in parsed
            ]

        self.log_operation(
            "replace_weekly_windows",
            mentor_id=mentor_id,
            call_type=call_type.value,
            windows=len(created),
        )
        return created

    @staticmethod
    def _reject_overlaps(windows: List[WeeklyWindowIn]) -> None:
        by_day: Dict[int, List[WeeklyWindowIn]] = {}
        for w in windows:
            by_day.setdefault(w.day_of_week, []).append(w)
        for day, items in by_day.items():
            items.sort(key=lambda w: w.start_time)
            for previous, current in zip(items, items[1:]):
                if current.start_time < previous.end_time:
                    raise ValidationException(
                        "Availability windows overlap",
                        code="AVAILABILITY_OVERLAP",
                        details={
                            "day_of_week": day,
                            "first": f"{previous.start_time}-{previous.end_time}",
                            "second": f"{current.start_time}-{current.end_time}",
                        },
                    )

    @BaseService.measure_operation("add_exception")
    def add_exception(self, mentor_id: str, payload: Any) -> AvailabilityException:
        data = parse_model(AvailabilityExceptionIn, payload)
        with self.transaction():
            exception = self.exception_repository.create(
                mentor_id=mentor_id,
                start_date=data.start_date,
                end_date=data.end_date,
                reason=data.reason,
            )
        self.log_operation(
            "add_exception",
            mentor_id=mentor_id,
            start_date=data.start_date.isoformat(),
            end_date=data.end_date.isoformat(),
        )
        return exception

    @BaseService.measure_operation("remove_exception")
    def remove_exception(self, mentor_id: str, exception_id: str) -> None:
        with self.transaction():
            exception = self.exception_repository.get_by_id(exception_id)
            if exception is None or exception.mentor_id != mentor_id:
                raise NotFoundException(
                    "Availability exception not found",
                    details={"exception_id": exception_id},
                )
            self.exception_repository.delete(exception_id)

    @BaseService.measure_operation("upsert_mentor_profile")
    def upsert_mentor_profile(
        self,
        mentor_id: str,
        *,
        timezone: Optional[str] = None,
        base_price: Optional[int] = None,
        commission_pct: Optional[int] = None,
    ) -> MentorProfile:
        if timezone is not None and timezone not in pytz.all_timezones_set:
            raise ValidationException(f"Unknown timezone: {timezone}", code="INVALID_TIMEZONE")
        if base_price is not None and base_price < 0:
            raise ValidationException("Base price must not be negative", code="INVALID_PRICE")
        if commission_pct is not None and not 0 <= commission_pct <= 100:
            raise ValidationException(
                "Commission must be between 0 and 100", code="INVALID_COMMISSION"
            )

        with self.transaction():
            profile = self.profile_repository.get_by_mentor(mentor_id)
            if profile is None:
                profile = self.profile_repository.create(mentor_id=mentor_id)
            if timezone is not None:
                profile.timezone = timezone
            if base_price is not None:
                profile.base_price = base_price
            if commission_pct is not None:
                profile.commission_pct = commission_pct
        return profile
