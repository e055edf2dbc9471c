# backend/cadence/repositories/event_repository.py
from typing import List

from sqlalchemy.orm import Session

from ..models.audit_log import AuditLog
from ..models.event_outbox import EventOutbox
from .base_repository import BaseRepository


class EventOutboxRepository(BaseRepository[EventOutbox]):
    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)

    def has_key(self, idempotency_key: str) -> bool:
        return self.exists(idempotency_key=idempotency_key)

    def list_for_recipient(self, recipient_id: str) -> List[EventOutbox]:
        return (
            self.db.query(EventOutbox)
            .filter(EventOutbox.recipient_id == recipient_id)
            .order_by(EventOutbox.created_at, EventOutbox.id)
            .all()
        )


class AuditLogRepository(BaseRepository[AuditLog]):
    def __init__(self, db: Session):
        super().__init__(db, AuditLog)

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.occurred_at, AuditLog.id)
            .all()
        )
