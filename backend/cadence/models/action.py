# backend/cadence/models/action.py
"""
Recurring actions and their materialized task instances.

A RecurringAction is the rule ("run on Mon and Thu"); a TaskInstance is one
dated occurrence of it. Instances are created by the task instance store and
are never duplicated for the same (action, due date) while PENDING.
"""

from datetime import timedelta

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from ..core.enums import Frequency, TaskStatus
from ..database import Base
from .types import JSONType, UTCDateTime, new_ulid, now_utc


class RecurringAction(Base):
    """A participant's recurring commitment."""

    __tablename__ = "recurring_actions"

    id = Column(String(26), primary_key=True, default=new_ulid)
    participant_id = Column(String(64), nullable=False, index=True)
    goal_id = Column(String(64), nullable=True)
    description = Column(Text, nullable=False)
    frequency = Column(String(20), nullable=False, default=Frequency.DAILY.value)
    assigned_days = Column(JSONType, nullable=False, default=list)
    specific_date = Column(Date, nullable=True)
    requires_evidence = Column(Boolean, nullable=False, default=False)
    # Hours after the start of the due date (UTC) by which the task must be done
    deadline_hours = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "frequency IN ('DAILY', 'WEEKLY', 'BIWEEKLY', 'MONTHLY', 'ONE_TIME')",
            name="ck_recurring_actions_frequency",
        ),
        CheckConstraint(
            "deadline_hours IS NULL OR deadline_hours > 0",
            name="ck_recurring_actions_deadline_positive",
        ),
    )

    @property
    def frequency_enum(self) -> Frequency:
        return Frequency(self.frequency)

    def __repr__(self) -> str:
        return f"<RecurringAction {self.id} {self.frequency} {self.assigned_days}>"


class TaskInstance(Base):
    """One concrete occurrence of a RecurringAction on one date."""

    __tablename__ = "task_instances"

    id = Column(String(26), primary_key=True, default=new_ulid)
    participant_id = Column(String(64), nullable=False, index=True)
    action_id = Column(
        String(26),
        ForeignKey("recurring_actions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    due_date = Column(Date, nullable=False)
    # First date ever assigned; never changes when the task is postponed
    original_due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=TaskStatus.PENDING.value)
    postpone_count = Column(Integer, nullable=False, default=0)
    deadline_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    overdue_alerted_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'CANCELLED', 'EXPIRED')",
            name="ck_task_instances_status",
        ),
        CheckConstraint("postpone_count >= 0", name="ck_task_instances_postpone_non_negative"),
        Index(
            "uq_task_instances_pending_action_due",
            "action_id",
            "due_date",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
        Index("ix_task_instances_participant_due", "participant_id", "due_date"),
    )

    @property
    def days_overdue(self) -> int:
        """Drift measured from the first assigned date, not the current one."""
        return (self.due_date - self.original_due_date).days

    def postpone(self, days: int) -> None:
        self.due_date = self.due_date + timedelta(days=days)
        if self.deadline_at is not None:
            self.deadline_at = self.deadline_at + timedelta(days=days)
        self.postpone_count = (self.postpone_count or 0) + 1

    def __repr__(self) -> str:
        return f"<TaskInstance {self.action_id} {self.due_date} {self.status}>"
