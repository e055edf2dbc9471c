# backend/cadence/repositories/factory.py
"""
Repository Factory.

Centralizes repository creation so services never construct repositories
with ad-hoc arguments, and so tests can swap one in one place.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .action_repository import RecurringActionRepository, TaskInstanceRepository
    from .availability_repository import (
        AvailabilityExceptionRepository,
        AvailabilityWindowRepository,
        MentorProfileRepository,
    )
    from .booking_repository import (
        BookingRepository,
        HeldFundsRepository,
        MentorshipRequestRepository,
    )
    from .calendar_repository import CalendarClaimRepository
    from .enrollment_repository import EnrollmentRepository, VisionRepository
    from .event_repository import AuditLogRepository, EventOutboxRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_action_repository(db: Session) -> "RecurringActionRepository":
        from .action_repository import RecurringActionRepository

        return RecurringActionRepository(db)

    @staticmethod
    def create_task_instance_repository(db: Session) -> "TaskInstanceRepository":
        from .action_repository import TaskInstanceRepository

        return TaskInstanceRepository(db)

    @staticmethod
    def create_availability_window_repository(db: Session) -> "AvailabilityWindowRepository":
        from .availability_repository import AvailabilityWindowRepository

        return AvailabilityWindowRepository(db)

    @staticmethod
    def create_availability_exception_repository(
        db: Session,
    ) -> "AvailabilityExceptionRepository":
        from .availability_repository import AvailabilityExceptionRepository

        return AvailabilityExceptionRepository(db)

    @staticmethod
    def create_mentor_profile_repository(db: Session) -> "MentorProfileRepository":
        from .availability_repository import MentorProfileRepository

        return MentorProfileRepository(db)

    @staticmethod
    def create_calendar_claim_repository(db: Session) -> "CalendarClaimRepository":
        from .calendar_repository import CalendarClaimRepository

        return CalendarClaimRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_held_funds_repository(db: Session) -> "HeldFundsRepository":
        from .booking_repository import HeldFundsRepository

        return HeldFundsRepository(db)

    @staticmethod
    def create_mentorship_request_repository(db: Session) -> "MentorshipRequestRepository":
        from .booking_repository import MentorshipRequestRepository

        return MentorshipRequestRepository(db)

    @staticmethod
    def create_enrollment_repository(db: Session) -> "EnrollmentRepository":
        from .enrollment_repository import EnrollmentRepository

        return EnrollmentRepository(db)

    @staticmethod
    def create_vision_repository(db: Session) -> "VisionRepository":
        from .enrollment_repository import VisionRepository

        return VisionRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_repository import EventOutboxRepository

        return EventOutboxRepository(db)

    @staticmethod
    def create_audit_log_repository(db: Session) -> "AuditLogRepository":
        from .event_repository import AuditLogRepository

        return AuditLogRepository(db)
