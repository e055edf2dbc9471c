# backend/cadence/models/enrollment.py
"""
Enrollment and group cycle (vision) models.

An enrollment is a participant's commitment program with a mentor. It owns
the cycle window over which recurring actions are materialized and the
strike counter used by the accountability state machine.
"""

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.enums import CycleType, EnrollmentStatus
from ..database import Base
from .types import UTCDateTime, new_ulid, now_utc


class Vision(Base):
    """A group cycle with shared start and end dates."""

    __tablename__ = "visions"

    id = Column(String(26), primary_key=True, default=new_ulid)
    name = Column(String(200), nullable=False)
    mentor_id = Column(String(64), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    enrollments = relationship("Enrollment", back_populates="vision")

    __table_args__ = (CheckConstraint("start_date <= end_date", name="ck_visions_order"),)


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(String(26), primary_key=True, default=new_ulid)
    participant_id = Column(String(64), nullable=False, index=True)
    mentor_id = Column(String(64), nullable=False, index=True)
    vision_id = Column(String(26), ForeignKey("visions.id"), nullable=True)
    cycle_type = Column(String(20), nullable=False, default=CycleType.SOLO.value)
    cycle_start_date = Column(Date, nullable=False)
    cycle_end_date = Column(Date, nullable=False)
    # Last date already expanded into task instances
    generated_through = Column(Date, nullable=True)
    total_weeks = Column(Integer, nullable=False, default=15)
    missed_calls_count = Column(Integer, nullable=False, default=0)
    max_missed_allowed = Column(Integer, nullable=False, default=3)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value)
    drop_reason = Column(Text, nullable=True)
    suspended_at = Column(UTCDateTime, nullable=True)
    dropped_at = Column(UTCDateTime, nullable=True)
    deserted_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    vision = relationship("Vision", back_populates="enrollments")

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'SUSPENDED', 'COMPLETED', 'DROPPED', 'DESERTER')",
            name="ck_enrollments_status",
        ),
        CheckConstraint("missed_calls_count >= 0", name="ck_enrollments_missed_non_negative"),
        CheckConstraint("max_missed_allowed > 0", name="ck_enrollments_threshold_positive"),
        CheckConstraint("cycle_start_date <= cycle_end_date", name="ck_enrollments_cycle_order"),
        # One ACTIVE program per participant
        Index(
            "uq_enrollments_active_participant",
            "participant_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE.value

    def snapshot(self) -> dict:
        """State captured into audit rows."""
        return {
            "status": self.status,
            "missed_calls_count": self.missed_calls_count,
            "max_missed_allowed": self.max_missed_allowed,
            "cycle_start_date": self.cycle_start_date.isoformat(),
            "cycle_end_date": self.cycle_end_date.isoformat(),
            "drop_reason": self.drop_reason,
        }

    def __repr__(self) -> str:
        return f"<Enrollment {self.id} {self.participant_id} {self.status}>"
