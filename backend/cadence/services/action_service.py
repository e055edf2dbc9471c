# backend/cadence/services/action_service.py
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.exceptions import NotFoundException
from ..models.action import RecurringAction
from ..repositories.factory import RepositoryFactory
from ..schemas.action import parse_action_payload
from .base import BaseService


class ActionService(BaseService):
    """Registers recurring actions from loosely-typed payloads."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.action_repository = RepositoryFactory.create_action_repository(db)

    @BaseService.measure_operation("register_action")
    def register_action(self, participant_id: str, payload: Any) -> RecurringAction:
        """
        Validate ``payload`` and persist the action.

        Raises:
            UnknownFrequencyException: frequency is not one of the known values
            ValidationException: any other malformed field
        """
        data = parse_action_payload(payload)
        with self.transaction():
            action = self.action_repository.create(
                participant_id=participant_id,
                goal_id=data.goal_id,
                description=data.description,
                frequency=data.frequency.value,
                assigned_days=list(data.assigned_days),
                specific_date=data.specific_date,
                requires_evidence=data.requires_evidence,
                deadline_hours=data.deadline_hours,
                is_active=True,
            )
        self.log_operation(
            "register_action",
            action_id=action.id,
            participant_id=participant_id,
            frequency=action.frequency,
        )
        return action

    @BaseService.measure_operation("deactivate_action")
    def deactivate_action(self, participant_id: str, action_id: str) -> RecurringAction:
        with self.transaction():
            action = self.action_repository.get_by_id(action_id)
            if action is None or action.participant_id != participant_id:
                raise NotFoundException("Action not found", details={"action_id": action_id})
            action.is_active = False
        return action

    def list_actions(self, participant_id: str) -> List[RecurringAction]:
        return self.action_repository.list_active_for_participant(participant_id)
