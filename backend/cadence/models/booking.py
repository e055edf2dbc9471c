# backend/cadence/models/booking.py
"""
Call bookings, mentorship requests and the funds held against paid calls.

A booking never owns the calendar slot directly; it points at the
CalendarClaim that does. Unscheduled misses recorded by a mentor create a
MISSED booking without a claim.
"""

from datetime import date
from typing import Any

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.sql import func

from ..core.enums import (
    AttendanceStatus,
    BookingStatus,
    CallType,
    HeldFundsStatus,
    MentorshipRequestStatus,
)
from ..database import Base
from .types import UTCDateTime, new_ulid, now_utc


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=new_ulid)
    claim_id = Column(
        String(26),
        ForeignKey("calendar_claims.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    enrollment_id = Column(String(26), ForeignKey("enrollments.id"), nullable=True, index=True)
    mentor_id = Column(String(64), nullable=False, index=True)
    participant_id = Column(String(64), nullable=False, index=True)
    scheduled_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    call_type = Column(String(20), nullable=False, default=CallType.DISCIPLINE.value)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    attendance_status = Column(String(20), nullable=False, default=AttendanceStatus.PENDING.value)
    price = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'CANCELLED', 'MISSED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_bookings_price_non_negative"),
        Index("ix_bookings_participant_time", "participant_id", "scheduled_at"),
    )

    def is_cancellable(self) -> bool:
        return self.status in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

    def local_date(self, tz: Any) -> date:
        return self.scheduled_at.astimezone(tz).date()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mentor_id": self.mentor_id,
            "participant_id": self.participant_id,
            "scheduled_at": self.scheduled_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "call_type": self.call_type,
            "status": self.status,
        }

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.mentor_id} {self.scheduled_at} {self.status}>"


class HeldFunds(Base):
    """Money held for a MENTORSHIP booking until the call happens."""

    __tablename__ = "held_funds"

    id = Column(String(26), primary_key=True, default=new_ulid)
    booking_id = Column(
        String(26),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    participant_id = Column(String(64), nullable=False)
    mentor_id = Column(String(64), nullable=False)
    amount = Column(Integer, nullable=False)
    base_price = Column(Integer, nullable=False)
    multiplier = Column(String(8), nullable=False)
    commission_pct = Column(Integer, nullable=False)
    platform_fee = Column(Integer, nullable=False)
    mentor_earnings = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=HeldFundsStatus.HELD.value)
    released_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_held_funds_amount_non_negative"),
        CheckConstraint(
            "status IN ('HELD', 'RELEASED', 'CAPTURED')",
            name="ck_held_funds_status",
        ),
    )

    def release(self, when) -> None:
        self.status = HeldFundsStatus.RELEASED.value
        self.released_at = when


class MentorshipRequest(Base):
    """
    Participant-initiated request for a mentorship session.

    When the participant proposes an explicit time the request claims that
    slot right away (while PENDING or CONFIRMED), exactly like a booking.
    """

    __tablename__ = "mentorship_requests"

    id = Column(String(26), primary_key=True, default=new_ulid)
    participant_id = Column(String(64), nullable=False, index=True)
    mentor_id = Column(String(64), nullable=False, index=True)
    requested_date = Column(Date, nullable=False)
    requested_at = Column(UTCDateTime, nullable=True)
    topic = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=MentorshipRequestStatus.PENDING.value)
    claim_id = Column(
        String(26),
        ForeignKey("calendar_claims.id", ondelete="SET NULL"),
        nullable=True,
    )
    mentor_note = Column(Text, nullable=True)
    responded_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'REJECTED', 'CANCELLED')",
            name="ck_mentorship_requests_status",
        ),
    )

    @property
    def claims_slot(self) -> bool:
        return self.requested_at is not None and self.status in (
            MentorshipRequestStatus.PENDING.value,
            MentorshipRequestStatus.CONFIRMED.value,
        )
