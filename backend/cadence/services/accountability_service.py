# backend/cadence/services/accountability_service.py
"""
Accountability state machine per enrollment.

ACTIVE -> SUSPENDED when the strike counter reaches the enrollment's
threshold (manual reset only), ACTIVE -> COMPLETED when the program ends,
ACTIVE -> DROPPED / DESERTER on administrative or voluntary exit.

Incrementing the counter and the suspension cascade share one transaction:
either the enrollment is SUSPENDED and its future bookings are gone, or
neither change is visible.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import AttendanceStatus, BookingStatus, CallType, EnrollmentStatus
from ..core.exceptions import (
    EnrollmentNotActiveException,
    InvalidConfirmationException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from ..models.audit_log import AuditLog
from ..models.booking import Booking
from ..models.enrollment import Enrollment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .notification_service import NotificationEvents, NotificationService


class AccountabilityService(BaseService):
    """Strikes, suspension cascade and program exits."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.notifications = notification_service or NotificationService(db)
        self.enrollment_repository = RepositoryFactory.create_enrollment_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.held_funds_repository = RepositoryFactory.create_held_funds_repository(db)
        self.claim_repository = RepositoryFactory.create_calendar_claim_repository(db)
        self.task_repository = RepositoryFactory.create_task_instance_repository(db)
        self.audit_repository = RepositoryFactory.create_audit_log_repository(db)

    # Helpers

    def _get_enrollment(self, enrollment_id: str) -> Enrollment:
        enrollment = self.enrollment_repository.get_for_update(enrollment_id)
        if enrollment is None:
            raise NotFoundException(
                "Enrollment not found", details={"enrollment_id": enrollment_id}
            )
        return enrollment

    def _get_mentor_booking(self, booking_id: str, mentor_id: str) -> Booking:
        booking = self.booking_repository.get_for_update(booking_id)
        if booking is None or booking.mentor_id != mentor_id:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        if booking.status not in {s.value for s in BookingStatus.upcoming()}:
            raise InvalidTransitionException(
                "booking", booking.id, booking.status, "attendance recorded"
            )
        if booking.scheduled_at > self.now():
            raise ValidationException(
                "Attendance can only be recorded once the call has started",
                code="CALL_NOT_STARTED",
                details={"booking_id": booking.id},
            )
        return booking

    def _audit(
        self,
        enrollment: Enrollment,
        action: str,
        actor_id: str,
        actor_role: str,
        before: Dict[str, Any],
        *,
        reason: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        after = enrollment.snapshot()
        if extra:
            after.update(extra)
        self.audit_repository.add(
            AuditLog.from_change(
                "enrollment",
                enrollment.id,
                action,
                actor_id=actor_id,
                actor_role=actor_role,
                before=before,
                after=after,
                reason=reason,
                occurred_at=self.now(),
            )
        )

    def _void_future_bookings(self, enrollment: Enrollment) -> List[str]:
        """Delete upcoming bookings of the enrollment, releasing funds and claims."""
        now = self.now()
        bookings = self.booking_repository.future_upcoming_for_enrollment(enrollment.id, now)
        booking_ids = [b.id for b in bookings]
        if not booking_ids:
            return []

        for funds in self.held_funds_repository.held_for_bookings(booking_ids):
            funds.release(now)

        claim_ids = [b.claim_id for b in bookings if b.claim_id]
        self.booking_repository.delete_many(booking_ids)
        self.claim_repository.delete_many(claim_ids)
        for booking in bookings:
            self.db.expunge(booking)
        return booking_ids

    def _apply_strike(self, enrollment: Enrollment, actor_id: str) -> Enrollment:
        before = enrollment.snapshot()
        enrollment.missed_calls_count = (enrollment.missed_calls_count or 0) + 1

        if enrollment.missed_calls_count < enrollment.max_missed_allowed:
            prometheus_metrics.inc_strike("counted")
            return enrollment

        enrollment.status = EnrollmentStatus.SUSPENDED.value
        enrollment.suspended_at = self.now()
        voided = self._void_future_bookings(enrollment)
        # Numbered so a suspension after a reset notifies again
        suspension = (
            self.audit_repository.count(
                entity_type="enrollment", entity_id=enrollment.id, action="suspend"
            )
            + 1
        )

        payload = {
            "enrollment_id": enrollment.id,
            "participant_id": enrollment.participant_id,
            "missed_calls_count": enrollment.missed_calls_count,
        }
        for recipient_id in (enrollment.participant_id, enrollment.mentor_id):
            self.notifications.notify(
                recipient_id,
                NotificationEvents.ENROLLMENT_SUSPENDED,
                payload,
                aggregate_id=enrollment.id,
                idempotency_key=(
                    f"{NotificationEvents.ENROLLMENT_SUSPENDED}:{enrollment.id}:"
                    f"{recipient_id}:{suspension}"
                ),
            )
        if voided:
            self.notifications.notify(
                enrollment.participant_id,
                NotificationEvents.BOOKINGS_VOIDED,
                {"enrollment_id": enrollment.id, "booking_ids": voided},
                aggregate_id=enrollment.id,
                idempotency_key=(
                    f"{NotificationEvents.BOOKINGS_VOIDED}:{enrollment.id}:{suspension}"
                ),
            )

        self._audit(
            enrollment,
            "suspend",
            actor_id,
            "mentor",
            before,
            extra={"voided_booking_ids": voided},
        )
        prometheus_metrics.inc_strike("suspended")
        self.logger.warning(
            f"Enrollment {enrollment.id} suspended after {enrollment.missed_calls_count} misses",
            extra={"enrollment_id": enrollment.id, "voided_bookings": len(voided)},
        )
        return enrollment

    # Check-in outcomes

    @BaseService.measure_operation("record_attendance")
    def record_attendance(self, booking_id: str, mentor_id: str) -> Booking:
        with self.transaction():
            booking = self._get_mentor_booking(booking_id, mentor_id)
            booking.status = BookingStatus.COMPLETED.value
            booking.attendance_status = AttendanceStatus.PRESENT.value
        self.log_operation("record_attendance", booking_id=booking.id)
        return booking

    @BaseService.measure_operation("record_miss")
    def record_miss(self, booking_id: str, mentor_id: str) -> Enrollment:
        """
        Mark the booking MISSED and count a strike on its enrollment.

        Returns the enrollment, which is SUSPENDED when the threshold was hit.
        """
        with self.transaction():
            booking = self._get_mentor_booking(booking_id, mentor_id)
            if booking.enrollment_id is None:
                raise ValidationException(
                    "Booking is not tied to an enrollment",
                    code="BOOKING_WITHOUT_ENROLLMENT",
                    details={"booking_id": booking.id},
                )
            enrollment = self._get_enrollment(booking.enrollment_id)
            if not enrollment.is_active:
                raise EnrollmentNotActiveException(enrollment.id, enrollment.status)

            booking.status = BookingStatus.MISSED.value
            booking.attendance_status = AttendanceStatus.ABSENT.value
            self._apply_strike(enrollment, mentor_id)

        self.log_operation(
            "record_miss",
            booking_id=booking_id,
            enrollment_id=enrollment.id,
            missed_calls_count=enrollment.missed_calls_count,
            status=enrollment.status,
        )
        return enrollment

    @BaseService.measure_operation("record_unscheduled_miss")
    def record_unscheduled_miss(
        self, enrollment_id: str, mentor_id: str, reason: Optional[str] = None
    ) -> Enrollment:
        """Count a strike for a check-in that was never booked."""
        with self.transaction():
            enrollment = self._get_enrollment(enrollment_id)
            if enrollment.mentor_id != mentor_id:
                raise NotFoundException(
                    "Enrollment not found", details={"enrollment_id": enrollment_id}
                )
            if not enrollment.is_active:
                raise EnrollmentNotActiveException(enrollment.id, enrollment.status)

            self.booking_repository.create(
                enrollment_id=enrollment.id,
                mentor_id=mentor_id,
                participant_id=enrollment.participant_id,
                scheduled_at=self.now(),
                duration_minutes=settings.discipline_slot_minutes,
                call_type=CallType.DISCIPLINE.value,
                status=BookingStatus.MISSED.value,
                attendance_status=AttendanceStatus.ABSENT.value,
                notes=reason,
            )
            self._apply_strike(enrollment, mentor_id)
        return enrollment

    # Supervisor and lifecycle transitions

    @BaseService.measure_operation("reset_strikes")
    def reset_strikes(self, enrollment_id: str, supervisor_id: str) -> Enrollment:
        """
        Clear the strike counter and reactivate a suspended enrollment.

        Voided bookings are not restored.
        """
        with self.transaction():
            enrollment = self._get_enrollment(enrollment_id)
            allowed = (EnrollmentStatus.ACTIVE.value, EnrollmentStatus.SUSPENDED.value)
            if enrollment.status not in allowed:
                raise InvalidTransitionException(
                    "enrollment", enrollment.id, enrollment.status, EnrollmentStatus.ACTIVE.value
                )
            before = enrollment.snapshot()
            enrollment.missed_calls_count = 0
            enrollment.status = EnrollmentStatus.ACTIVE.value
            enrollment.suspended_at = None
            self._audit(enrollment, "reset", supervisor_id, "supervisor", before)
        return enrollment

    @BaseService.measure_operation("complete_program")
    def complete_program(self, enrollment_id: str, actor_id: str) -> Enrollment:
        with self.transaction():
            enrollment = self._get_enrollment(enrollment_id)
            if not enrollment.is_active:
                raise InvalidTransitionException(
                    "enrollment",
                    enrollment.id,
                    enrollment.status,
                    EnrollmentStatus.COMPLETED.value,
                )
            before = enrollment.snapshot()
            enrollment.status = EnrollmentStatus.COMPLETED.value
            enrollment.completed_at = self.now()
            self._audit(enrollment, "complete", actor_id, "mentor", before)
        return enrollment

    def _exit(
        self,
        enrollment: Enrollment,
        target: EnrollmentStatus,
        actor_id: str,
        actor_role: str,
        reason: Optional[str],
    ) -> int:
        if not enrollment.is_active:
            raise InvalidTransitionException(
                "enrollment", enrollment.id, enrollment.status, target.value
            )
        before = enrollment.snapshot()
        now = self.now()
        enrollment.status = target.value
        if target is EnrollmentStatus.DROPPED:
            enrollment.dropped_at = now
            enrollment.drop_reason = reason
        else:
            enrollment.deserted_at = now
        cancelled = self.task_repository.cancel_pending_for_participant(
            enrollment.participant_id, now
        )
        self._audit(
            enrollment,
            target.value.lower(),
            actor_id,
            actor_role,
            before,
            reason=reason,
            extra={"cancelled_task_instances": cancelled},
        )
        return cancelled

    @BaseService.measure_operation("drop")
    def drop(self, enrollment_id: str, admin_id: str, reason: str) -> Enrollment:
        """Administrative exit. PENDING tasks are cancelled, never deleted."""
        if not reason or not reason.strip():
            raise ValidationException("A reason is required", code="REASON_REQUIRED")
        with self.transaction():
            enrollment = self._get_enrollment(enrollment_id)
            cancelled = self._exit(
                enrollment, EnrollmentStatus.DROPPED, admin_id, "admin", reason.strip()
            )
        self.log_operation("drop", enrollment_id=enrollment.id, cancelled_tasks=cancelled)
        return enrollment

    @BaseService.measure_operation("desert")
    def desert(self, enrollment_id: str, participant_id: str, confirmation: str) -> Enrollment:
        """Voluntary exit, confirmed by typing the configured token."""
        if (confirmation or "").strip() != settings.desertion_confirmation_token:
            raise InvalidConfirmationException()
        with self.transaction():
            enrollment = self._get_enrollment(enrollment_id)
            if enrollment.participant_id != participant_id:
                raise NotFoundException(
                    "Enrollment not found", details={"enrollment_id": enrollment_id}
                )
            cancelled = self._exit(
                enrollment, EnrollmentStatus.DESERTER, participant_id, "participant", None
            )
        self.log_operation("desert", enrollment_id=enrollment.id, cancelled_tasks=cancelled)
        return enrollment
