"""Tests for recurring action payload parsing."""

from datetime import date

import pytest

from cadence.core.enums import Frequency
from cadence.core.exceptions import UnknownFrequencyException, ValidationException
from cadence.schemas.action import parse_action_payload
from cadence.schemas.scheduling import ReservationRequest, WeeklyWindowIn, parse_model


@pytest.mark.unit
class TestParseActionPayload:
    def test_frequency_is_coerced_and_days_sorted(self) -> None:
        data = parse_action_payload(
            {"description": " Run ", "frequency": "weekly", "assigned_days": [5, 1, 1]}
        )
        assert data.frequency is Frequency.WEEKLY
        assert data.assigned_days == [1, 5]
        assert data.description == "Run"

    def test_unknown_frequency_is_reported_as_such(self) -> None:
        with pytest.raises(UnknownFrequencyException) as exc_info:
            parse_action_payload({"description": "Run", "frequency": "fortnightly"})
        assert exc_info.value.details == {"value": "fortnightly"}

    def test_missing_frequency_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationException) as exc_info:
            parse_action_payload({"description": "Run"})
        assert exc_info.value.code == "INVALID_ACTION_PAYLOAD"

    def test_bad_weekday_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationException) as exc_info:
            parse_action_payload(
                {"description": "Run", "frequency": "BIWEEKLY", "assigned_days": [9]}
            )
        assert exc_info.value.code == "INVALID_ACTION_PAYLOAD"

    def test_one_time_keeps_specific_date(self) -> None:
        data = parse_action_payload(
            {"description": "Call", "frequency": "ONE_TIME", "specific_date": "2024-02-01"}
        )
        assert data.specific_date == date(2024, 2, 1)
        assert data.assigned_days == []

    def test_unexpected_fields_are_rejected(self) -> None:
        with pytest.raises(ValidationException):
            parse_action_payload({"description": "Run", "frequency": "DAILY", "extra": 1})


def window(start: str, end: str) -> dict:
    return {"day_of_week": 1, "start_time": start, "end_time": end}


@pytest.mark.unit
class TestSchedulingSchemas:
    def test_window_requires_ordered_hhmm(self) -> None:
        ok = parse_model(WeeklyWindowIn, window("09:00", "11:00"))
        assert ok.start_time == "09:00"
        with pytest.raises(ValidationException):
            parse_model(WeeklyWindowIn, window("11:00", "09:00"))
        with pytest.raises(ValidationException):
            parse_model(WeeklyWindowIn, window("9:00", "11:00"))

    def test_reservation_requires_aware_instant(self) -> None:
        with pytest.raises(ValidationException) as exc_info:
            parse_model(
                ReservationRequest,
                {
                    "participant_id": "p",
                    "mentor_id": "m",
                    "scheduled_at": "2024-01-08T09:00:00",
                    "call_type": "MENTORSHIP",
                },
            )
        assert exc_info.value.code == "INVALID_PAYLOAD"
