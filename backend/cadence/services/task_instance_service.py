# backend/cadence/services/task_instance_service.py
"""
Task instance materialization.

Persists the dates produced by the recurrence expander as TaskInstance
rows. Materialization is idempotent: a date already represented for the
action (due on it, or originally due on it, in any status) is skipped, so
re-running any operation here never duplicates work and never touches
completed or cancelled history.

Each action is one all-or-nothing batch. Sweeps over many actions or
enrollments keep going when one of them fails and report it individually.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock, today_in
from ..core.config import settings
from ..core.enums import Frequency, TaskStatus
from ..core.exceptions import (
    ConflictException,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
    PersistenceFailure,
    ValidationException,
)
from ..database import with_db_retry
from ..domain.recurrence import DEFAULT_PARITY, WeekParityPolicy, expand, is_silent_noop
from ..models.action import RecurringAction, TaskInstance
from ..models.enrollment import Enrollment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import UniqueViolation
from ..repositories.factory import RepositoryFactory
from ..schemas.action import MaterializationResult, RegenerationFailure, RegenerationReport
from ..schemas.scheduling import ExtensionResult
from .base import BaseService
from .notification_service import NotificationEvents, NotificationService

MAX_POSTPONE_DAYS = 30


def _deadline_for(action: RecurringAction, due: date) -> Optional[datetime]:
    if not action.deadline_hours:
        return None
    start_of_day = datetime.combine(due, time(0, 0), tzinfo=timezone.utc)
    return start_of_day + timedelta(hours=action.deadline_hours)


class TaskInstanceService(BaseService):
    """Idempotent store of dated task instances."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        notification_service: Optional[NotificationService] = None,
        parity: WeekParityPolicy = DEFAULT_PARITY,
    ):
        super().__init__(db, clock)
        self.parity = parity
        self.notifications = notification_service or NotificationService(db)
        self.action_repository = RepositoryFactory.create_action_repository(db)
        self.task_repository = RepositoryFactory.create_task_instance_repository(db)
        self.enrollment_repository = RepositoryFactory.create_enrollment_repository(db)

    def today(self) -> date:
        return today_in(self.clock, settings.calendar_timezone)

    # Materialization

    def _insert_missing(
        self, action: RecurringAction, dates: Iterable[date]
    ) -> MaterializationResult:
        wanted = sorted(set(dates))
        # A one-time action is materialized once; later windows never add another
        if (
            wanted
            and action.frequency == Frequency.ONE_TIME.value
            and self.task_repository.has_live_instance(action.id)
        ):
            return MaterializationResult(action_id=action.id, skipped=len(wanted))
        taken = self.task_repository.occupied_dates(action.id, wanted)
        fresh = [
            TaskInstance(
                participant_id=action.participant_id,
                action_id=action.id,
                due_date=d,
                original_due_date=d,
                status=TaskStatus.PENDING.value,
                postpone_count=0,
                deadline_at=_deadline_for(action, d),
            )
            for d in wanted
            if d not in taken
        ]
        try:
            self.task_repository.add_all(fresh)
        except UniqueViolation as exc:
            # A concurrent materializer got there first; re-running will skip its rows
            raise PersistenceFailure(
                "Task instances were created concurrently",
                code="MATERIALIZATION_CONFLICT",
                details={"action_id": action.id},
                retryable=True,
            ) from exc
        return MaterializationResult(
            action_id=action.id, created=len(fresh), skipped=len(wanted) - len(fresh)
        )

    @BaseService.measure_operation("materialize")
    def materialize(self, action: RecurringAction, dates: Iterable[date]) -> MaterializationResult:
        """Create a PENDING instance for every date not already represented."""
        with self.transaction():
            result = self._insert_missing(action, dates)
        prometheus_metrics.inc_materialized(action.frequency, result.created)
        return result

    def _expand(self, action: RecurringAction, from_date: date, to_date: date) -> tuple:
        dates = expand(action, from_date, to_date, self.parity)
        warnings: List[str] = []
        if not dates and from_date <= to_date:
            if is_silent_noop(action):
                message = (
                    f"Action {action.id} is {action.frequency} with no assigned days; "
                    "no task instances were generated"
                )
            else:
                message = (
                    f"Action {action.id} produced no task instances between "
                    f"{from_date.isoformat()} and {to_date.isoformat()}"
                )
            warnings.append(message)
            prometheus_metrics.inc_empty_expansion(action.frequency)
            self.logger.warning(message, extra={"action_id": action.id})
        return dates, warnings

    @BaseService.measure_operation("expand_and_materialize")
    def expand_and_materialize(
        self, action: RecurringAction, from_date: date, to_date: date
    ) -> MaterializationResult:
        """Expand ``action`` over the range and materialize the result."""
        dates, warnings = self._expand(action, from_date, to_date)
        result = self.materialize(action, dates) if dates else MaterializationResult(
            action_id=action.id
        )
        result.warnings.extend(warnings)
        return result

    @BaseService.measure_operation("regenerate")
    def regenerate(
        self, action: RecurringAction, from_date: date, to_date: date
    ) -> MaterializationResult:
        """
        Drop PENDING instances due today or later and rebuild them.

        COMPLETED, CANCELLED and EXPIRED instances and anything due before
        today are never touched.
        """
        today = self.today()
        start = max(from_date, today)
        dates, warnings = self._expand(action, start, to_date)

        with self.transaction():
            removed = self.task_repository.delete_pending_from(action.id, today)
            result = self._insert_missing(action, dates)

        result.removed = removed
        result.warnings.extend(warnings)
        prometheus_metrics.inc_materialized(action.frequency, result.created)
        self.log_operation(
            "regenerate",
            action_id=action.id,
            removed=removed,
            created_count=result.created,
        )
        return result

    def _sweep_actions(
        self, actions: List[RecurringAction], run: Any, op_name: str
    ) -> RegenerationReport:
        report = RegenerationReport()
        for action in actions:
            try:
                report.results.append(with_db_retry(f"{op_name}:{action.id}", lambda: run(action)))
            except DomainException as exc:
                self.logger.error(
                    f"{op_name} failed for action {action.id}: {exc.message}",
                    extra={"action_id": action.id, "code": exc.code},
                )
                report.failures.append(
                    RegenerationFailure(action_id=action.id, code=exc.code, message=exc.message)
                )
        return report

    @BaseService.measure_operation("regenerate_all")
    def regenerate_all(
        self, participant_id: str, from_date: date, to_date: date
    ) -> RegenerationReport:
        """Regenerate every active action of a participant, one batch per action."""
        actions = self.action_repository.list_active_for_participant(participant_id)
        return self._sweep_actions(
            actions, lambda a: self.regenerate(a, from_date, to_date), "regenerate"
        )

    def _materialize_window(
        self, enrollment: Enrollment, from_date: date, to_date: date
    ) -> RegenerationReport:
        actions = self.action_repository.list_active_for_participant(enrollment.participant_id)
        report = self._sweep_actions(
            actions,
            lambda a: self.expand_and_materialize(a, from_date, to_date),
            "materialize",
        )
        if not report.failures:
            with self.transaction():
                current = self.enrollment_repository.get_for_update(enrollment.id)
                if current.generated_through is None or current.generated_through < to_date:
                    current.generated_through = to_date
        return report

    @BaseService.measure_operation("generate_for_enrollment")
    def generate_for_enrollment(self, enrollment_id: str) -> RegenerationReport:
        """Expand every active action of the participant over the enrollment's cycle."""
        enrollment = self.enrollment_repository.get_by_id(enrollment_id)
        if enrollment is None:
            raise NotFoundException(
                "Enrollment not found", details={"enrollment_id": enrollment_id}
            )
        return self._materialize_window(
            enrollment, enrollment.cycle_start_date, enrollment.cycle_end_date
        )

    @BaseService.measure_operation("apply_extension")
    def apply_extension(self, extension: ExtensionResult) -> RegenerationReport:
        """Materialize only the newly added part of an extended cycle."""
        enrollment = self.enrollment_repository.get_by_id(extension.entity_id)
        if enrollment is None:
            raise NotFoundException(
                "Enrollment not found", details={"enrollment_id": extension.entity_id}
            )
        return self._materialize_window(
            enrollment, extension.regenerate_from, extension.regenerate_to
        )

    @BaseService.measure_operation("sweep_extensions")
    def sweep_extensions(self) -> Dict[str, int]:
        """
        Periodic: fill ``generated_through + 1 .. cycle_end`` for every ACTIVE
        enrollment that was extended. Safe to re-run at any point.
        """
        summary = {"enrollments": 0, "created_count": 0, "failures": 0}
        for enrollment in self.enrollment_repository.active_behind_cycle_end():
            report = self._materialize_window(
                enrollment,
                enrollment.generated_through + timedelta(days=1),
                enrollment.cycle_end_date,
            )
            summary["enrollments"] += 1
            summary["created_count"] += report.created
            summary["failures"] += len(report.failures)
        self.log_operation("sweep_extensions", **summary)
        return summary

    # Lifecycle of single instances

    @BaseService.measure_operation("cascade_cancel")
    def cascade_cancel(self, participant_id: str) -> int:
        """Cancel (never delete) every PENDING instance of a participant."""
        with self.transaction():
            count = self.task_repository.cancel_pending_for_participant(participant_id, self.now())
        self.log_operation("cascade_cancel", participant_id=participant_id, cancelled=count)
        return count

    def _get_owned_pending(self, task_id: str, participant_id: str, target: str) -> TaskInstance:
        task = self.task_repository.get_for_update(task_id)
        if task is None or task.participant_id != participant_id:
            raise NotFoundException("Task not found", details={"task_id": task_id})
        if task.status != TaskStatus.PENDING.value:
            raise InvalidTransitionException("task_instance", task.id, task.status, target)
        return task

    @BaseService.measure_operation("postpone")
    def postpone(self, task_id: str, participant_id: str, days: int = 1) -> TaskInstance:
        """
        Move a PENDING task forward by ``days``. ``original_due_date`` is kept,
        and the mentor is notified once a task has been postponed more than
        ``postpone_alert_threshold`` times.
        """
        if not 1 <= days <= MAX_POSTPONE_DAYS:
            raise ValidationException(
                f"Days must be between 1 and {MAX_POSTPONE_DAYS}",
                code="INVALID_POSTPONE_DAYS",
                details={"days": days},
            )

        with self.transaction():
            task = self._get_owned_pending(task_id, participant_id, TaskStatus.PENDING.value)
            target = task.due_date + timedelta(days=days)
            if self.task_repository.pending_on(task.action_id, target) is not None:
                raise ConflictException(
                    "Another pending task of this action is already due on that date",
                    code="TASK_DATE_TAKEN",
                    details={"task_id": task.id, "due_date": target.isoformat()},
                )
            task.postpone(days)
            task.updated_at = self.now()

            if task.postpone_count > settings.postpone_alert_threshold:
                enrollment = self.enrollment_repository.get_active_for_participant(participant_id)
                if enrollment is not None:
                    self.notifications.notify(
                        enrollment.mentor_id,
                        NotificationEvents.TASK_POSTPONED_REPEATEDLY,
                        {
                            "task_id": task.id,
                            "participant_id": participant_id,
                            "postpone_count": task.postpone_count,
                            "original_due_date": task.original_due_date.isoformat(),
                        },
                        aggregate_id=task.id,
                        idempotency_key=(
                            f"{NotificationEvents.TASK_POSTPONED_REPEATEDLY}:"
                            f"{task.id}:{task.postpone_count}"
                        ),
                    )

        return task

    @BaseService.measure_operation("complete")
    def complete(self, task_id: str, participant_id: str) -> TaskInstance:
        with self.transaction():
            task = self._get_owned_pending(task_id, participant_id, TaskStatus.COMPLETED.value)
            now = self.now()
            task.status = TaskStatus.COMPLETED.value
            task.completed_at = now
            task.updated_at = now
        return task

    # Periodic sweeps

    @BaseService.measure_operation("expire_overdue")
    def expire_overdue(self) -> int:
        """Mark PENDING instances whose deadline has passed as EXPIRED."""

        def _run() -> int:
            with self.transaction():
                return self.task_repository.expire_past_deadline(self.now())

        count = with_db_retry("expire_overdue", _run)
        self.log_operation("expire_overdue", expired=count)
        return count

    @BaseService.measure_operation("alert_overdue")
    def alert_overdue(self) -> int:
        """Notify mentors once per task whose original due date drifted past the limit."""

        def _run() -> int:
            cutoff = self.today() - timedelta(days=settings.overdue_alert_days)
            alerted = 0
            with self.transaction():
                for task in self.task_repository.find_overdue_unalerted(cutoff):
                    enrollment = self.enrollment_repository.get_active_for_participant(
                        task.participant_id
                    )
                    if enrollment is None:
                        continue
                    self.notifications.notify(
                        enrollment.mentor_id,
                        NotificationEvents.TASK_OVERDUE,
                        {
                            "task_id": task.id,
                            "participant_id": task.participant_id,
                            "original_due_date": task.original_due_date.isoformat(),
                        },
                        aggregate_id=task.id,
                    )
                    task.overdue_alerted_at = self.now()
                    alerted += 1
            return alerted

        count = with_db_retry("alert_overdue", _run)
        self.log_operation("alert_overdue", alerted=count)
        return count
