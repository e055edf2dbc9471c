"""Tests for mentor availability templates and free slot computation."""

from datetime import date, datetime, timedelta, timezone

import pytest

from cadence.core.enums import CallType
from cadence.core.exceptions import NotFoundException, ValidationException
from cadence.models.availability import AvailabilityWindow
from cadence.services.availability_service import AvailabilityService, walk_window
from tests.helpers.scheduling import MENTOR_ID, NEXT_MONDAY

MONDAY_INDEX = 1


@pytest.fixture
def service(db, clock) -> AvailabilityService:
    return AvailabilityService(db, clock)


@pytest.mark.unit
class TestWalkWindow:
    def test_last_slot_must_fit(self) -> None:
        assert walk_window("09:00", "10:50", 30) == ["09:00", "09:30", "10:00"]

    def test_window_shorter_than_step(self) -> None:
        assert walk_window("09:00", "09:10", 15) == []

    def test_non_positive_granularity(self) -> None:
        with pytest.raises(ValidationException):
            walk_window("09:00", "10:00", 0)


class TestFreeTemplateSlots:
    def test_discipline_steps_in_quarter_hours(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.DISCIPLINE)
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE) == [
            "09:00",
            "09:15",
            "09:30",
            "09:45",
        ]

    def test_explicit_granularity(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "11:00", CallType.MENTORSHIP)
        assert service.free_template_slots(
            MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP, slot_granularity_minutes=30
        ) == ["09:00", "09:30", "10:00", "10:30"]

    def test_no_window_for_weekday(self, service, make_window) -> None:
        make_window(MONDAY_INDEX + 1, "09:00", "11:00", CallType.MENTORSHIP)
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == []

    def test_call_types_have_separate_templates(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "11:00", CallType.MENTORSHIP)
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE) == []

    def test_multiple_windows_are_merged(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "14:00", "15:00", CallType.MENTORSHIP)
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == [
            "09:00",
            "14:00",
        ]

    def test_exception_blocks_mentorship_only(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)
        make_window(MONDAY_INDEX, "09:00", "09:30", CallType.DISCIPLINE)
        service.add_exception(
            MENTOR_ID,
            {"start_date": NEXT_MONDAY, "end_date": NEXT_MONDAY + timedelta(days=2)},
        )

        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == []
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE) == [
            "09:00",
            "09:15",
        ]

    def test_past_day_has_no_slots(self, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)
        last_monday = NEXT_MONDAY - timedelta(days=7)
        assert service.free_template_slots(MENTOR_ID, last_monday, CallType.MENTORSHIP) == []

    def test_today_only_keeps_future_slots(self, service, clock, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.DISCIPLINE)
        clock.set(datetime(2024, 1, 8, 9, 15, tzinfo=timezone.utc))
        # 09:15 starts exactly now, so it is no longer offered
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE) == [
            "09:30",
            "09:45",
        ]

    def test_mentor_timezone_drives_today(self, service, clock, make_window) -> None:
        service.upsert_mentor_profile(MENTOR_ID, timezone="America/New_York")
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)
        # 2024-01-08 13:30 UTC is 08:30 in New York, before the window opens
        clock.set(datetime(2024, 1, 8, 13, 30, tzinfo=timezone.utc))
        assert service.free_template_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == [
            "09:00"
        ]
        assert service.slot_instant(MENTOR_ID, NEXT_MONDAY, "09:00") == datetime(
            2024, 1, 8, 14, 0, tzinfo=timezone.utc
        )

    def test_spring_forward_gap_is_skipped(self, service, clock, make_window) -> None:
        service.upsert_mentor_profile(MENTOR_ID, timezone="America/New_York")
        make_window(0, "01:00", "04:00", CallType.MENTORSHIP)  # Sundays
        clock.set(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))
        assert service.free_template_slots(
            MENTOR_ID, date(2024, 3, 10), CallType.MENTORSHIP
        ) == ["01:00", "03:00"]


class TestTemplateManagement:
    def test_replace_weekly_windows(self, db, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)

        created = service.replace_weekly_windows(
            MENTOR_ID,
            CallType.MENTORSHIP,
            [
                {"day_of_week": 2, "start_time": "10:00", "end_time": "12:00"},
                {"day_of_week": 2, "start_time": "12:00", "end_time": "13:00"},
            ],
        )

        assert len(created) == 2
        stored = db.query(AvailabilityWindow).filter_by(mentor_id=MENTOR_ID).all()
        assert sorted(w.start_time for w in stored) == ["10:00", "12:00"]

    def test_overlapping_windows_are_rejected(self, db, service, make_window) -> None:
        make_window(MONDAY_INDEX, "09:00", "10:00", CallType.MENTORSHIP)

        with pytest.raises(ValidationException) as exc_info:
            service.replace_weekly_windows(
                MENTOR_ID,
                CallType.MENTORSHIP,
                [
                    {"day_of_week": 2, "start_time": "10:00", "end_time": "12:00"},
                    {"day_of_week": 2, "start_time": "11:00", "end_time": "13:00"},
                ],
            )

        assert exc_info.value.code == "AVAILABILITY_OVERLAP"
        assert db.query(AvailabilityWindow).filter_by(mentor_id=MENTOR_ID).count() == 1

    def test_remove_exception_checks_owner(self, service) -> None:
        exception = service.add_exception(
            MENTOR_ID, {"start_date": NEXT_MONDAY, "end_date": NEXT_MONDAY}
        )
        with pytest.raises(NotFoundException):
            service.remove_exception("someone-else", exception.id)
        service.remove_exception(MENTOR_ID, exception.id)
        assert service.exception_repository.list_for_mentor(MENTOR_ID) == []

    def test_exception_range_must_be_ordered(self, service) -> None:
        with pytest.raises(ValidationException):
            service.add_exception(
                MENTOR_ID,
                {"start_date": NEXT_MONDAY, "end_date": NEXT_MONDAY - timedelta(days=1)},
            )

    def test_profile_validation(self, service) -> None:
        with pytest.raises(ValidationException):
            service.upsert_mentor_profile(MENTOR_ID, timezone="Mars/Olympus")
        with pytest.raises(ValidationException):
            service.upsert_mentor_profile(MENTOR_ID, commission_pct=120)
