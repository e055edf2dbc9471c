# backend/cadence/models/availability.py
"""
Mentor availability templates.

Windows are weekly wall-clock ranges in the mentor's own timezone, one
calendar per call type. Exceptions are closed date ranges (vacations) that
block MENTORSHIP slots only.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, Index, Integer, String, Text
from sqlalchemy.sql import func

from ..core.enums import CallType
from ..database import Base
from .types import UTCDateTime, new_ulid, now_utc


class AvailabilityWindow(Base):
    __tablename__ = "availability_windows"

    id = Column(String(26), primary_key=True, default=new_ulid)
    mentor_id = Column(String(64), nullable=False)
    # 0 = Sunday ... 6 = Saturday
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    call_type = Column(String(20), nullable=False, default=CallType.DISCIPLINE.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_windows_weekday"),
        CheckConstraint("start_time < end_time", name="ck_availability_windows_order"),
        Index("ix_availability_windows_lookup", "mentor_id", "call_type", "day_of_week"),
    )

    @property
    def minutes(self) -> int:
        sh, sm = (int(p) for p in self.start_time.split(":"))
        eh, em = (int(p) for p in self.end_time.split(":"))
        return (eh * 60 + em) - (sh * 60 + sm)

    def __repr__(self) -> str:
        return (
            f"<AvailabilityWindow {self.mentor_id} {self.call_type} "
            f"dow={self.day_of_week} {self.start_time}-{self.end_time}>"
        )


class AvailabilityException(Base):
    __tablename__ = "availability_exceptions"

    id = Column(String(26), primary_key=True, default=new_ulid)
    mentor_id = Column(String(64), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_availability_exceptions_order"),
    )

    def covers(self, day) -> bool:
        return self.start_date <= day <= self.end_date

    def __repr__(self) -> str:
        return f"<AvailabilityException {self.mentor_id} {self.start_date}..{self.end_date}>"
