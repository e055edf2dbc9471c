from datetime import date, datetime, time, timezone

import pytest

from cadence.services.timezone_service import NonExistentLocalTime, TimezoneService


@pytest.mark.unit
class TestTimezoneService:
    def test_local_to_utc(self) -> None:
        result = TimezoneService.local_to_utc(date(2024, 1, 8), time(9, 0), "America/New_York")
        assert result == datetime(2024, 1, 8, 14, 0, tzinfo=timezone.utc)

    def test_spring_forward_gap_raises(self) -> None:
        with pytest.raises(NonExistentLocalTime):
            TimezoneService.local_to_utc(date(2024, 3, 10), time(2, 30), "America/New_York")

    def test_fall_back_uses_first_occurrence(self) -> None:
        result = TimezoneService.local_to_utc(date(2024, 11, 3), time(1, 30), "America/New_York")
        assert result == datetime(2024, 11, 3, 5, 30, tzinfo=timezone.utc)

    def test_unknown_zone_falls_back_to_calendar_default(self) -> None:
        assert TimezoneService.get_timezone("Nowhere/Else").zone == "UTC"

    def test_round_trip_to_local(self) -> None:
        local = TimezoneService.utc_to_local(
            datetime(2024, 7, 1, 12, 0, tzinfo=timezone.utc), "Europe/Berlin"
        )
        assert (local.hour, local.minute) == (14, 0)
