# backend/cadence/core/clock.py
"""
Clock abstraction.

Services never call ``datetime.now()`` directly; they ask an injected clock so
"is this slot in the future" decisions can be frozen in tests.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Protocol

import pytz


class Clock(Protocol):
    """Interface for anything that can tell the current instant."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC instant."""
        ...


class SystemClock:
    """Wall-clock time from the host."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Deterministic clock for tests and replays."""

    def __init__(self, current: datetime) -> None:
        self._current = ensure_utc(current)

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        self._current = ensure_utc(current)

    def advance(self, **delta: float) -> datetime:
        self._current = self._current + timedelta(**delta)
        return self._current


def ensure_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def today_in(clock: Clock, tz_name: str) -> date:
    """Calendar date of ``clock.now()`` in the given timezone."""
    return clock.now().astimezone(pytz.timezone(tz_name)).date()
