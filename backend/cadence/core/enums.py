# backend/cadence/core/enums.py
"""Closed value sets shared by models, schemas and services."""

from enum import Enum


class Frequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    ONE_TIME = "ONE_TIME"


class CallType(str, Enum):
    """Each mentor keeps one independent calendar per call type."""

    DISCIPLINE = "DISCIPLINE"
    MENTORSHIP = "MENTORSHIP"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    MISSED = "MISSED"

    @classmethod
    def upcoming(cls) -> tuple["BookingStatus", ...]:
        return (cls.PENDING, cls.CONFIRMED)


class AttendanceStatus(str, Enum):
    PENDING = "PENDING"
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class EnrollmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"
    DESERTER = "DESERTER"


class CycleType(str, Enum):
    SOLO = "SOLO"
    VISION = "VISION"


class MentorshipRequestStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class HeldFundsStatus(str, Enum):
    HELD = "HELD"
    RELEASED = "RELEASED"
    CAPTURED = "CAPTURED"


class ClaimSource(str, Enum):
    """Which reservation path owns a calendar claim."""

    BOOKING = "BOOKING"
    MENTORSHIP_REQUEST = "MENTORSHIP_REQUEST"
