from datetime import date, datetime, timedelta, timezone

import pytest

from cadence.core.clock import FrozenClock, ensure_utc, today_in


@pytest.mark.unit
def test_frozen_clock_advances() -> None:
    clock = FrozenClock(datetime(2024, 1, 5, 23, 30, tzinfo=timezone.utc))
    assert clock.advance(hours=1) == datetime(2024, 1, 6, 0, 30, tzinfo=timezone.utc)
    assert clock.now().tzinfo is not None


@pytest.mark.unit
def test_naive_values_are_taken_as_utc() -> None:
    assert ensure_utc(datetime(2024, 1, 5, 12, 0)) == datetime(
        2024, 1, 5, 12, 0, tzinfo=timezone.utc
    )
    shifted = datetime(2024, 1, 5, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(shifted).hour == 10


@pytest.mark.unit
def test_today_in_uses_calendar_timezone() -> None:
    clock = FrozenClock(datetime(2024, 1, 6, 2, 0, tzinfo=timezone.utc))
    assert today_in(clock, "UTC") == date(2024, 1, 6)
    assert today_in(clock, "America/New_York") == date(2024, 1, 5)
