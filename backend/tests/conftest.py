# backend/tests/conftest.py
"""
Pytest configuration for the scheduling engine.

Every test gets a fresh in-memory SQLite database built from the model
metadata and a frozen clock, so "now"-dependent rules are deterministic.
"""

from datetime import date, datetime, timedelta
import os

# Keep a developer .env from leaking into the test settings
os.environ.setdefault("CI", "1")

import pytest
from sqlalchemy.orm import sessionmaker

from cadence.core.clock import FrozenClock
from cadence.core.enums import (
    AttendanceStatus,
    BookingStatus,
    CallType,
    ClaimSource,
    Frequency,
)
from cadence.database import Base, build_engine
import cadence.models  # noqa: F401  registers every table
from cadence.models.action import RecurringAction
from cadence.models.availability import AvailabilityWindow
from cadence.models.booking import Booking
from cadence.models.calendar import CalendarClaim
from cadence.models.enrollment import Enrollment
from tests.helpers.scheduling import FROZEN_NOW, MENTOR_ID, PARTICIPANT_ID


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def make_action(db):
    def _make(
        frequency: Frequency = Frequency.DAILY,
        assigned_days=None,
        participant_id: str = PARTICIPANT_ID,
        **kwargs,
    ) -> RecurringAction:
        action = RecurringAction(
            participant_id=participant_id,
            description=kwargs.pop("description", "Exercise"),
            frequency=frequency.value,
            assigned_days=list(assigned_days or []),
            **kwargs,
        )
        db.add(action)
        db.commit()
        return action

    return _make


@pytest.fixture
def make_enrollment(db):
    def _make(
        participant_id: str = PARTICIPANT_ID,
        mentor_id: str = MENTOR_ID,
        start: date = date(2024, 1, 1),
        days: int = 100,
        **kwargs,
    ) -> Enrollment:
        enrollment = Enrollment(
            participant_id=participant_id,
            mentor_id=mentor_id,
            cycle_start_date=start,
            cycle_end_date=start + timedelta(days=days),
            **kwargs,
        )
        db.add(enrollment)
        db.commit()
        return enrollment

    return _make


@pytest.fixture
def make_window(db):
    def _make(
        day_of_week: int,
        start_time: str,
        end_time: str,
        call_type: CallType = CallType.MENTORSHIP,
        mentor_id: str = MENTOR_ID,
    ) -> AvailabilityWindow:
        window = AvailabilityWindow(
            mentor_id=mentor_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            call_type=call_type.value,
            is_active=True,
        )
        db.add(window)
        db.commit()
        return window

    return _make


@pytest.fixture
def make_booking(db):
    """Insert a booking and its calendar claim directly, bypassing reservation rules."""

    def _make(
        scheduled_at: datetime,
        call_type: CallType = CallType.DISCIPLINE,
        enrollment: Enrollment = None,
        participant_id: str = PARTICIPANT_ID,
        mentor_id: str = MENTOR_ID,
        status: BookingStatus = BookingStatus.CONFIRMED,
    ) -> Booking:
        duration = 60 if call_type == CallType.MENTORSHIP else 15
        claim = CalendarClaim(
            mentor_id=mentor_id,
            participant_id=participant_id,
            scheduled_at=scheduled_at,
            duration_minutes=duration,
            call_type=call_type.value,
            source=ClaimSource.BOOKING.value,
        )
        db.add(claim)
        db.flush()
        booking = Booking(
            claim_id=claim.id,
            enrollment_id=enrollment.id if enrollment else None,
            mentor_id=mentor_id,
            participant_id=participant_id,
            scheduled_at=scheduled_at,
            duration_minutes=duration,
            call_type=call_type.value,
            status=status.value,
            attendance_status=AttendanceStatus.PENDING.value,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make
