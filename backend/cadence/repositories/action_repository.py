# backend/cadence/repositories/action_repository.py
from datetime import date, datetime
from typing import Iterable, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.enums import TaskStatus
from ..models.action import RecurringAction, TaskInstance
from .base_repository import BaseRepository


class RecurringActionRepository(BaseRepository[RecurringAction]):
    def __init__(self, db: Session):
        super().__init__(db, RecurringAction)

    def list_active_for_participant(self, participant_id: str) -> List[RecurringAction]:
        return (
            self.db.query(RecurringAction)
            .filter(
                RecurringAction.participant_id == participant_id,
                RecurringAction.is_active.is_(True),
            )
            .order_by(RecurringAction.created_at, RecurringAction.id)
            .all()
        )


class TaskInstanceRepository(BaseRepository[TaskInstance]):
    """Data access for task instances. Never commits."""

    def __init__(self, db: Session):
        super().__init__(db, TaskInstance)

    def occupied_dates(self, action_id: str, dates: Iterable[date]) -> Set[date]:
        """
        Dates among ``dates`` already represented for the action.

        A date counts as taken if a non-cancelled instance is due on it or was
        originally due on it, so postponed and completed history blocks
        re-creation.
        """
        wanted = list(dates)
        if not wanted:
            return set()
        rows = (
            self.db.query(TaskInstance.due_date, TaskInstance.original_due_date)
            .filter(
                TaskInstance.action_id == action_id,
                TaskInstance.status != TaskStatus.CANCELLED.value,
                or_(
                    TaskInstance.due_date.in_(wanted),
                    TaskInstance.original_due_date.in_(wanted),
                ),
            )
            .all()
        )
        taken: Set[date] = set()
        for due, original in rows:
            taken.add(due)
            taken.add(original)
        return taken.intersection(wanted)

    def pending_on(self, action_id: str, due_date: date) -> Optional[TaskInstance]:
        return (
            self.db.query(TaskInstance)
            .filter(
                TaskInstance.action_id == action_id,
                TaskInstance.due_date == due_date,
                TaskInstance.status == TaskStatus.PENDING.value,
            )
            .first()
        )

    def delete_pending_from(self, action_id: str, from_date: date) -> int:
        return (
            self.db.query(TaskInstance)
            .filter(
                TaskInstance.action_id == action_id,
                TaskInstance.status == TaskStatus.PENDING.value,
                TaskInstance.due_date >= from_date,
            )
            .delete(synchronize_session=False)
        )

    def cancel_pending_for_participant(self, participant_id: str, when: datetime) -> int:
        return (
            self.db.query(TaskInstance)
            .filter(
                TaskInstance.participant_id == participant_id,
                TaskInstance.status == TaskStatus.PENDING.value,
            )
            .update(
                {TaskInstance.status: TaskStatus.CANCELLED.value, TaskInstance.updated_at: when},
                synchronize_session=False,
            )
        )

    def delete_for_participant(self, participant_id: str) -> int:
        return (
            self.db.query(TaskInstance)
            .filter(TaskInstance.participant_id == participant_id)
            .delete(synchronize_session=False)
        )

    def expire_past_deadline(self, now: datetime) -> int:
        return (
            self.db.query(TaskInstance)
            .filter(
                TaskInstance.status == TaskStatus.PENDING.value,
                TaskInstance.deadline_at.isnot(None),
                TaskInstance.deadline_at < now,
            )
            .update(
                {TaskInstance.status: TaskStatus.EXPIRED.value, TaskInstance.updated_at: now},
                synchronize_session=False,
            )
        )

    def find_overdue_unalerted(self, cutoff: date) -> List[TaskInstance]:
        """PENDING instances first due before ``cutoff`` that have not been alerted yet."""
        return (
            self.db.query(TaskInstance)
            .filter(
                TaskInstance.status == TaskStatus.PENDING.value,
                TaskInstance.original_due_date < cutoff,
                TaskInstance.overdue_alerted_at.is_(None),
            )
            .order_by(TaskInstance.original_due_date, TaskInstance.id)
            .all()
        )

    def has_live_instance(self, action_id: str) -> bool:
        """True if any non-cancelled instance of the action exists, whatever its date."""
        return (
            self.db.query(TaskInstance.id)
            .filter(
                TaskInstance.action_id == action_id,
                TaskInstance.status != TaskStatus.CANCELLED.value,
            )
            .first()
            is not None
        )
