# backend/cadence/models/__init__.py
"""
SQLAlchemy models for the scheduling engine.

Importing this package registers every table on ``Base.metadata``.
"""

from .action import RecurringAction, TaskInstance
from .audit_log import AuditLog
from .availability import AvailabilityException, AvailabilityWindow
from .booking import Booking, HeldFunds, MentorshipRequest
from .calendar import CalendarClaim
from .enrollment import Enrollment, Vision
from .event_outbox import EventOutbox, EventOutboxStatus
from .mentor import MentorProfile

__all__ = [
    "AuditLog",
    "AvailabilityException",
    "AvailabilityWindow",
    "Booking",
    "CalendarClaim",
    "Enrollment",
    "EventOutbox",
    "EventOutboxStatus",
    "HeldFunds",
    "MentorProfile",
    "MentorshipRequest",
    "RecurringAction",
    "TaskInstance",
    "Vision",
]
