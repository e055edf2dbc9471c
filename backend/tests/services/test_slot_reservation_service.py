"""Tests for slot availability and reservation."""

from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from cadence.core.enums import (
    BookingStatus,
    CallType,
    EnrollmentStatus,
    HeldFundsStatus,
    MentorshipRequestStatus,
)
from cadence.core.exceptions import (
    EnrollmentNotActiveException,
    InvalidTransitionException,
    NotFoundException,
    PersistenceFailure,
    ReservationLockTimeoutException,
    SameWeekdayNotAllowedException,
    SlotAlreadyTakenException,
    ValidationException,
    WeeklyLimitReachedException,
)
from cadence.models.booking import HeldFunds
from cadence.models.calendar import CalendarClaim
from cadence.models.event_outbox import EventOutbox
from cadence.monitoring.prometheus_metrics import REGISTRY
from cadence.services import slot_reservation_service
from cadence.services.slot_reservation_service import SlotReservationService
from tests.helpers.scheduling import (
    MENTOR_ID,
    NEXT_MONDAY,
    OTHER_PARTICIPANT_ID,
    PARTICIPANT_ID,
    at,
)

TUESDAY = NEXT_MONDAY + timedelta(days=1)
WEDNESDAY = NEXT_MONDAY + timedelta(days=2)


@pytest.fixture
def service(db, clock) -> SlotReservationService:
    return SlotReservationService(db, clock)


@pytest.fixture
def calendar(make_window):
    for weekday in (1, 2, 3):
        make_window(weekday, "09:00", "10:00", CallType.DISCIPLINE)
    make_window(1, "09:00", "11:00", CallType.MENTORSHIP)


@pytest.fixture
def enrollment(make_enrollment):
    return make_enrollment()


def reservations(call_type: str, outcome: str) -> float:
    value = REGISTRY.get_sample_value(
        "cadence_reservations_total", {"call_type": call_type, "outcome": outcome}
    )
    return value or 0.0


class TestAvailableSlots:
    def test_existing_booking_removes_its_slot(self, service, make_window, make_booking) -> None:
        make_window(1, "09:00", "11:00", CallType.MENTORSHIP)
        make_booking(at(NEXT_MONDAY, 9), CallType.MENTORSHIP)

        assert service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == ["10:00"]

    def test_claims_of_other_call_type_block_overlapping_slots(
        self, service, calendar, make_booking
    ) -> None:
        make_booking(at(NEXT_MONDAY, 10, 15), CallType.DISCIPLINE)
        assert service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == ["09:00"]

    def test_mentorship_claim_blocks_discipline_quarters(
        self, service, calendar, make_booking
    ) -> None:
        make_booking(at(NEXT_MONDAY, 9), CallType.MENTORSHIP)
        assert service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE) == []


class TestReserve:
    def test_reserve_discipline_call(self, db, service, calendar, enrollment) -> None:
        booking = service.reserve(
            PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9, 15), CallType.DISCIPLINE
        )

        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.enrollment_id == enrollment.id
        assert booking.duration_minutes == 15
        assert db.query(CalendarClaim).filter_by(id=booking.claim_id).one().released_at is None
        assert "09:15" not in service.available_slots(
            MENTOR_ID, NEXT_MONDAY, CallType.DISCIPLINE
        )

    def test_slot_taken_by_another_participant(
        self, service, calendar, enrollment, make_enrollment
    ) -> None:
        make_enrollment(participant_id=OTHER_PARTICIPANT_ID)
        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE)
        before = reservations("DISCIPLINE", "SLOT_ALREADY_TAKEN")

        with pytest.raises(SlotAlreadyTakenException):
            service.reserve(
                OTHER_PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE
            )

        assert reservations("DISCIPLINE", "SLOT_ALREADY_TAKEN") == before + 1

    def test_overlapping_claim_of_other_type_is_taken(
        self, service, calendar, enrollment, make_booking
    ) -> None:
        make_booking(
            at(NEXT_MONDAY, 9), CallType.MENTORSHIP, participant_id=OTHER_PARTICIPANT_ID
        )
        # 09:30 is still a template slot, but the 60 minute claim covers it
        with pytest.raises(SlotAlreadyTakenException):
            service.reserve(
                PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9, 30), CallType.DISCIPLINE
            )

    def test_same_weekday_is_rejected(self, service, calendar, enrollment) -> None:
        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE)
        with pytest.raises(SameWeekdayNotAllowedException) as exc_info:
            service.reserve(
                PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9, 30), CallType.DISCIPLINE
            )
        assert exc_info.value.details == {"weekday": 1}

    def test_weekly_limit(self, service, calendar, enrollment) -> None:
        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE)
        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(TUESDAY, 9), CallType.DISCIPLINE)

        with pytest.raises(WeeklyLimitReachedException) as exc_info:
            service.reserve(PARTICIPANT_ID, MENTOR_ID, at(WEDNESDAY, 9), CallType.DISCIPLINE)
        assert exc_info.value.details["week_start"] == NEXT_MONDAY.isoformat()

        # The following week has its own quota
        next_week = NEXT_MONDAY + timedelta(days=7)
        booking = service.reserve(
            PARTICIPANT_ID, MENTOR_ID, at(next_week, 9), CallType.DISCIPLINE
        )
        assert booking.scheduled_at == at(next_week, 9)

    def test_cancelled_booking_frees_slot_and_quota(
        self, service, calendar, enrollment, make_enrollment
    ) -> None:
        first = service.reserve(
            PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE
        )
        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(TUESDAY, 9), CallType.DISCIPLINE)
        service.cancel_booking(first.id, PARTICIPANT_ID, reason="conflict")

        make_enrollment(participant_id=OTHER_PARTICIPANT_ID)
        taken = service.reserve(
            OTHER_PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE
        )
        third = service.reserve(
            PARTICIPANT_ID, MENTOR_ID, at(WEDNESDAY, 9), CallType.DISCIPLINE
        )

        assert taken.scheduled_at == at(NEXT_MONDAY, 9)
        assert third.status == BookingStatus.CONFIRMED.value

        with pytest.raises(InvalidTransitionException):
            service.cancel_booking(first.id, PARTICIPANT_ID)

    def test_past_slot(self, service, calendar, enrollment) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.reserve(
                PARTICIPANT_ID,
                MENTOR_ID,
                at(NEXT_MONDAY - timedelta(days=7), 9),
                CallType.DISCIPLINE,
            )
        assert exc_info.value.code == "SLOT_IN_PAST"

    def test_slot_must_be_offered(self, service, calendar, enrollment) -> None:
        with pytest.raises(ValidationException) as exc_info:
            service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9, 5), CallType.DISCIPLINE)
        assert exc_info.value.code == "SLOT_NOT_OFFERED"

    def test_discipline_requires_enrollment(self, service, calendar) -> None:
        with pytest.raises(NotFoundException):
            service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE)

    def test_suspended_enrollment_cannot_book(self, service, calendar, make_enrollment) -> None:
        make_enrollment(status=EnrollmentStatus.SUSPENDED.value)
        with pytest.raises(EnrollmentNotActiveException):
            service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9), CallType.DISCIPLINE)

    def test_mentorship_holds_funds(self, db, service, calendar) -> None:
        booking = service.reserve(
            PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 10), CallType.MENTORSHIP
        )

        funds = db.query(HeldFunds).filter_by(booking_id=booking.id).one()
        assert booking.enrollment_id is None
        assert booking.price == 1000
        assert (funds.amount, funds.platform_fee, funds.mentor_earnings) == (1000, 300, 700)
        assert funds.status == HeldFundsStatus.HELD.value

        service.cancel_booking(booking.id, PARTICIPANT_ID)
        db.refresh(funds)
        assert funds.status == HeldFundsStatus.RELEASED.value

    def test_naive_datetime_is_rejected(self, service, calendar, enrollment) -> None:
        with pytest.raises(ValidationException):
            service.reserve(
                PARTICIPANT_ID,
                MENTOR_ID,
                at(NEXT_MONDAY, 9).replace(tzinfo=None),
                CallType.DISCIPLINE,
            )


class TestReservationFailures:
    def test_lock_timeout_is_reported_without_retry(self) -> None:
        failure = PersistenceFailure("Database operation failed")
        failure.__cause__ = OperationalError("BEGIN IMMEDIATE", {}, Exception("database is locked"))

        mapped = SlotReservationService._reservation_failure(failure)

        assert isinstance(mapped, ReservationLockTimeoutException)
        assert mapped.retryable is False

    def test_other_failures_are_never_retryable(self) -> None:
        mapped = SlotReservationService._reservation_failure(PersistenceFailure("disk full"))
        assert mapped.retryable is False
        assert mapped.code == "PERSISTENCE_FAILURE"


class TestMentorshipRequests:
    def _request(self, service, hour: int = 10):
        return service.request_mentorship(
            {
                "participant_id": PARTICIPANT_ID,
                "mentor_id": MENTOR_ID,
                "requested_date": NEXT_MONDAY,
                "requested_at": at(NEXT_MONDAY, hour),
                "topic": "Career plan",
            }
        )

    def test_request_claims_slot_and_notifies_mentor(self, db, service, calendar) -> None:
        request = self._request(service)

        assert request.status == MentorshipRequestStatus.PENDING.value
        assert service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == ["09:00"]
        event = db.query(EventOutbox).filter_by(recipient_id=MENTOR_ID).one()
        assert event.event_type == "mentorship.requested"

    def test_request_and_booking_share_the_calendar(self, service, calendar) -> None:
        self._request(service)
        with pytest.raises(SlotAlreadyTakenException):
            service.reserve(
                OTHER_PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 10), CallType.MENTORSHIP
            )

    def test_reject_releases_slot(self, service, calendar) -> None:
        request = self._request(service)
        service.reject_request(request.id, MENTOR_ID, note="Fully booked")

        assert service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP) == [
            "09:00",
            "10:00",
        ]
        with pytest.raises(InvalidTransitionException):
            service.confirm_request(request.id, MENTOR_ID)

    def test_confirm_then_cancel(self, db, service, calendar) -> None:
        request = self._request(service)
        confirmed = service.confirm_request(request.id, MENTOR_ID)
        assert confirmed.status == MentorshipRequestStatus.CONFIRMED.value
        assert "10:00" not in service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP)

        service.cancel_request(request.id, PARTICIPANT_ID)
        assert "10:00" in service.available_slots(MENTOR_ID, NEXT_MONDAY, CallType.MENTORSHIP)
        responses = db.query(EventOutbox).filter_by(event_type="mentorship.responded").all()
        assert {e.recipient_id for e in responses} == {PARTICIPANT_ID, MENTOR_ID}

    def test_only_the_mentor_can_respond(self, service, calendar) -> None:
        request = self._request(service)
        with pytest.raises(NotFoundException):
            service.confirm_request(request.id, "another-mentor")


class TestReservationLocking:
    def test_reserve_locks_the_participant_before_counting(
        self, service, calendar, enrollment, monkeypatch
    ) -> None:
        locked = []
        monkeypatch.setattr(
            slot_reservation_service,
            "lock_participant_reservations",
            lambda session, participant_id: locked.append(participant_id),
        )

        service.reserve(PARTICIPANT_ID, MENTOR_ID, at(NEXT_MONDAY, 9, 15), CallType.DISCIPLINE)

        assert locked == [PARTICIPANT_ID]
