"""
Mentor-local wall clock <-> UTC instants.

Availability windows are "HH:MM" in the mentor's timezone; everything stored
or compared is a UTC instant. This is the only place the two meet.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from ..core.config import settings


class NonExistentLocalTime(ValueError):
    """The wall-clock time is skipped by a DST transition."""


class TimezoneService:
    """Handles all timezone conversions consistently."""

    @staticmethod
    def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
        """Get timezone object, with fallback to the calendar default."""
        try:
            return pytz.timezone(tz_str or settings.calendar_timezone)
        except pytz.UnknownTimeZoneError:
            return pytz.timezone(settings.calendar_timezone)

    @staticmethod
    def parse_hhmm(value: str) -> time:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))

    @staticmethod
    def local_to_utc(local_date: date, local_time: time, timezone_str: Optional[str]) -> datetime:
        """
        Convert local date/time to UTC.

        Uses the timezone rules valid on ``local_date`` (not today).

        Raises:
            NonExistentLocalTime: If the time doesn't exist (DST spring-forward gap)
        """
        tz = TimezoneService.get_timezone(timezone_str)
        naive_dt = datetime.combine(local_date, local_time)

        try:
            # is_dst=None raises exception for ambiguous/nonexistent times
            local_dt = tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            # Fall back (time exists twice) - use first occurrence
            local_dt = tz.localize(naive_dt, is_dst=True)
        except pytz.exceptions.NonExistentTimeError as exc:
            raise NonExistentLocalTime(
                f"{local_time.strftime('%H:%M')} does not exist on {local_date} in {tz.zone}"
            ) from exc

        return local_dt.astimezone(timezone.utc)

    @staticmethod
    def utc_to_local(utc_dt: datetime, timezone_str: Optional[str]) -> datetime:
        """Convert UTC datetime to local timezone."""
        if utc_dt.tzinfo is None:
            utc_dt = utc_dt.replace(tzinfo=timezone.utc)

        tz = TimezoneService.get_timezone(timezone_str)
        return utc_dt.astimezone(tz)
