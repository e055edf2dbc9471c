# backend/cadence/services/cycle_window_service.py
"""
Commitment cycle windows.

A SOLO cycle runs ``solo_cycle_days`` from its start; a VISION cycle shares
the start and end dates of its group. Extending a cycle only ever moves the
end date forward and reports the date range that still needs expanding,
``generated_through + 1 .. new_end``, so completed or cancelled history is
left alone.
"""

from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, today_in
from ..core.config import settings
from ..core.enums import CycleType, EnrollmentStatus
from ..core.exceptions import (
    ActiveCycleExistsException,
    EnrollmentNotActiveException,
    InvalidExtensionException,
    NotFoundException,
    ValidationException,
)
from ..models.audit_log import AuditLog
from ..models.enrollment import Enrollment, Vision
from ..repositories.base_repository import UniqueViolation
from ..repositories.factory import RepositoryFactory
from ..schemas.scheduling import CycleStats, CycleWindow, ExtensionResult
from .base import BaseService
from .notification_service import NotificationEvents, NotificationService


class CycleWindowService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.notifications = notification_service or NotificationService(db)
        self.enrollment_repository = RepositoryFactory.create_enrollment_repository(db)
        self.vision_repository = RepositoryFactory.create_vision_repository(db)
        self.task_repository = RepositoryFactory.create_task_instance_repository(db)
        self.audit_repository = RepositoryFactory.create_audit_log_repository(db)

    def today(self) -> date:
        return today_in(self.clock, settings.calendar_timezone)

    def _get_vision(self, vision_id: Optional[str]) -> Vision:
        vision = self.vision_repository.get_by_id(vision_id) if vision_id else None
        if vision is None:
            raise NotFoundException("Vision not found", details={"vision_id": vision_id})
        return vision

    def _get_enrollment(self, enrollment_id: str) -> Enrollment:
        enrollment = self.enrollment_repository.get_for_update(enrollment_id)
        if enrollment is None:
            raise NotFoundException(
                "Enrollment not found", details={"enrollment_id": enrollment_id}
            )
        return enrollment

    def compute_window(
        self,
        cycle_type: CycleType,
        *,
        vision_id: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> CycleWindow:
        if cycle_type == CycleType.VISION:
            vision = self._get_vision(vision_id)
            return CycleWindow(start_date=vision.start_date, end_date=vision.end_date)
        start = start_date or self.today()
        end = start + timedelta(days=settings.solo_cycle_days)
        return CycleWindow(start_date=start, end_date=end)

    @BaseService.measure_operation("resolve_window")
    def resolve_window(
        self,
        participant_id: str,
        cycle_type: Optional[CycleType] = None,
        *,
        vision_id: Optional[str] = None,
    ) -> CycleWindow:
        """
        The participant's active (start, end) window.

        Without an active enrollment the window a new cycle of ``cycle_type``
        would get is returned instead (SOLO when unspecified).
        """
        enrollment = self.enrollment_repository.get_active_for_participant(participant_id)
        if enrollment is not None and (
            cycle_type is None or enrollment.cycle_type == cycle_type.value
        ):
            return CycleWindow(
                start_date=enrollment.cycle_start_date, end_date=enrollment.cycle_end_date
            )
        return self.compute_window(cycle_type or CycleType.SOLO, vision_id=vision_id)

    @BaseService.measure_operation("start_cycle")
    def start_cycle(
        self,
        participant_id: str,
        mentor_id: str,
        cycle_type: CycleType = CycleType.SOLO,
        *,
        vision_id: Optional[str] = None,
        start_date: Optional[date] = None,
        max_missed_allowed: Optional[int] = None,
        total_weeks: Optional[int] = None,
    ) -> Enrollment:
        if max_missed_allowed is not None and max_missed_allowed < 1:
            raise ValidationException(
                "Strike threshold must be at least 1", code="INVALID_THRESHOLD"
            )

        with self.transaction():
            if self.enrollment_repository.get_active_for_participant(participant_id):
                raise ActiveCycleExistsException(participant_id)

            window = self.compute_window(cycle_type, vision_id=vision_id, start_date=start_date)
            try:
                enrollment = self.enrollment_repository.create(
                    participant_id=participant_id,
                    mentor_id=mentor_id,
                    vision_id=vision_id if cycle_type == CycleType.VISION else None,
                    cycle_type=cycle_type.value,
                    cycle_start_date=window.start_date,
                    cycle_end_date=window.end_date,
                    generated_through=None,
                    total_weeks=total_weeks or settings.default_total_weeks,
                    missed_calls_count=0,
                    max_missed_allowed=max_missed_allowed or settings.default_max_missed_allowed,
                    status=EnrollmentStatus.ACTIVE.value,
                )
            except UniqueViolation as exc:
                raise ActiveCycleExistsException(participant_id) from exc

        self.log_operation(
            "start_cycle",
            enrollment_id=enrollment.id,
            participant_id=participant_id,
            cycle_type=cycle_type.value,
        )
        return enrollment

    def _extend(self, enrollment: Enrollment, new_end_date: date) -> ExtensionResult:
        if not enrollment.is_active:
            raise EnrollmentNotActiveException(enrollment.id, enrollment.status)
        current_end = enrollment.cycle_end_date
        if new_end_date <= current_end:
            raise InvalidExtensionException(current_end, new_end_date)

        last_generated = enrollment.generated_through
        regenerate_from = (
            last_generated + timedelta(days=1)
            if last_generated is not None
            else enrollment.cycle_start_date
        )
        enrollment.cycle_end_date = new_end_date
        result = ExtensionResult(
            entity_id=enrollment.id,
            previous_end_date=current_end,
            new_end_date=new_end_date,
            additional_days=(new_end_date - current_end).days,
            regenerate_from=regenerate_from,
            regenerate_to=new_end_date,
        )

        self.audit_repository.add(
            AuditLog.from_change(
                "enrollment",
                enrollment.id,
                "extend",
                actor_id=None,
                actor_role="system",
                before={"cycle_end_date": current_end.isoformat()},
                after={"cycle_end_date": new_end_date.isoformat()},
                occurred_at=self.now(),
            )
        )
        self.notifications.notify(
            enrollment.participant_id,
            NotificationEvents.CYCLE_EXTENDED,
            {
                "enrollment_id": enrollment.id,
                "new_end_date": new_end_date.isoformat(),
                "additional_days": result.additional_days,
            },
            aggregate_id=enrollment.id,
            idempotency_key=(
                f"{NotificationEvents.CYCLE_EXTENDED}:{enrollment.id}:{new_end_date.isoformat()}"
            ),
        )
        return result

    @BaseService.measure_operation("extend_cycle")
    def extend_cycle(self, enrollment_id: str, new_end_date: date) -> ExtensionResult:
        """
        Move an enrollment's end date forward.

        Raises:
            InvalidExtensionException: ``new_end_date`` is not after the current end
            EnrollmentNotActiveException: the enrollment is not ACTIVE
        """
        with self.transaction():
            result = self._extend(self._get_enrollment(enrollment_id), new_end_date)

        self.log_operation(
            "extend_cycle",
            enrollment_id=enrollment_id,
            additional_days=result.additional_days,
        )
        return result

    @BaseService.measure_operation("extend_vision")
    def extend_vision(self, vision_id: str, new_end_date: date) -> List[ExtensionResult]:
        """Extend a group cycle and every ACTIVE enrollment bound to it."""
        with self.transaction():
            vision = self._get_vision(vision_id)
            if new_end_date <= vision.end_date:
                raise InvalidExtensionException(vision.end_date, new_end_date)
            vision.end_date = new_end_date
            results = [
                self._extend(enrollment, new_end_date)
                for enrollment in self.enrollment_repository.active_for_vision(vision_id)
                if enrollment.cycle_end_date < new_end_date
            ]

        self.log_operation("extend_vision", vision_id=vision_id, enrollments=len(results))
        return results

    @BaseService.measure_operation("cycle_stats")
    def cycle_stats(self, participant_id: str) -> CycleStats:
        enrollment = self.enrollment_repository.get_active_for_participant(participant_id)
        if enrollment is None:
            raise NotFoundException(
                "No active cycle", details={"participant_id": participant_id}
            )
        start, end = enrollment.cycle_start_date, enrollment.cycle_end_date
        total = max((end - start).days, 0)
        elapsed = min(max((self.today() - start).days, 0), total)
        return CycleStats(
            start_date=start,
            end_date=end,
            total_days=total,
            elapsed_days=elapsed,
            remaining_days=total - elapsed,
            progress_pct=round(elapsed / total * 100, 1) if total else 100.0,
        )

    @BaseService.measure_operation("restart_cycle")
    def restart_cycle(self, participant_id: str, admin_id: str, reason: str) -> Enrollment:
        """
        Administrative reset: every task instance of the participant is
        deleted and the active enrollment's window starts over from today.
        """
        if not reason or not reason.strip():
            raise ValidationException("A reason is required", code="REASON_REQUIRED")

        with self.transaction():
            enrollment = self.enrollment_repository.get_active_for_participant(participant_id)
            if enrollment is None:
                raise NotFoundException(
                    "No active cycle", details={"participant_id": participant_id}
                )
            before = enrollment.snapshot()
            window = self.compute_window(
                CycleType(enrollment.cycle_type), vision_id=enrollment.vision_id
            )
            deleted = self.task_repository.delete_for_participant(participant_id)
            enrollment.cycle_start_date = window.start_date
            enrollment.cycle_end_date = window.end_date
            enrollment.generated_through = None
            self.audit_repository.add(
                AuditLog.from_change(
                    "enrollment",
                    enrollment.id,
                    "restart",
                    actor_id=admin_id,
                    actor_role="admin",
                    before=before,
                    after={**enrollment.snapshot(), "deleted_task_instances": deleted},
                    reason=reason.strip(),
                    occurred_at=self.now(),
                )
            )

        self.log_operation(
            "restart_cycle", enrollment_id=enrollment.id, deleted_task_instances=deleted
        )
        return enrollment
