# backend/cadence/models/calendar.py
"""
Calendar claims.

Every reservation path (direct call bookings and mentorship requests with an
explicit time) writes exactly one CalendarClaim. The partial unique index on
(mentor_id, scheduled_at) over unreleased claims is the only thing that
prevents double-booking a mentor.
"""

from datetime import datetime, timedelta

from sqlalchemy import CheckConstraint, Column, Index, Integer, String, text
from sqlalchemy.sql import func

from ..core.enums import CallType, ClaimSource
from ..database import Base
from .types import UTCDateTime, new_ulid, now_utc


class CalendarClaim(Base):
    __tablename__ = "calendar_claims"

    id = Column(String(26), primary_key=True, default=new_ulid)
    mentor_id = Column(String(64), nullable=False)
    participant_id = Column(String(64), nullable=False)
    scheduled_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    call_type = Column(String(20), nullable=False, default=CallType.DISCIPLINE.value)
    source = Column(String(30), nullable=False, default=ClaimSource.BOOKING.value)
    released_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_calendar_claims_duration_positive"),
        Index(
            "uq_calendar_claims_active_slot",
            "mentor_id",
            "scheduled_at",
            unique=True,
            sqlite_where=text("released_at IS NULL"),
            postgresql_where=text("released_at IS NULL"),
        ),
        Index("ix_calendar_claims_mentor_time", "mentor_id", "scheduled_at"),
    )

    @property
    def ends_at(self) -> datetime:
        return self.scheduled_at + timedelta(minutes=self.duration_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.scheduled_at < end and start < self.ends_at

    def __repr__(self) -> str:
        return f"<CalendarClaim {self.mentor_id} {self.scheduled_at} {self.source}>"
