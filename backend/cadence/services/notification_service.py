# backend/cadence/services/notification_service.py
"""
Notification intents.

The engine never delivers anything; it records ``notify(recipient, event,
payload)`` intents in the event outbox as part of the caller's transaction.
If that transaction rolls back the intent disappears with it, and the
idempotency key keeps a re-run from writing the same intent twice.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..models.event_outbox import EventOutbox
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)


class NotificationEvents:
    ENROLLMENT_SUSPENDED = "enrollment.suspended"
    BOOKINGS_VOIDED = "bookings.voided"
    CYCLE_EXTENDED = "cycle.extended"
    TASK_POSTPONED_REPEATEDLY = "task.postponed_repeatedly"
    TASK_OVERDUE = "task.overdue"
    MENTORSHIP_REQUESTED = "mentorship.requested"
    MENTORSHIP_RESPONDED = "mentorship.responded"


class NotificationService:
    """Writes notify intents to the transactional outbox. Never commits."""

    def __init__(self, db: Session):
        self.db = db
        self.outbox = RepositoryFactory.create_event_outbox_repository(db)

    def notify(
        self,
        recipient_id: str,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        aggregate_id: str,
        idempotency_key: Optional[str] = None,
    ) -> Optional[EventOutbox]:
        """
        Record a notification intent.

        Returns the outbox row, or None when an intent with the same
        idempotency key was already recorded.
        """
        key = idempotency_key or f"{event_type}:{aggregate_id}:{recipient_id}"
        if self.outbox.has_key(key):
            logger.debug("Notification already enqueued", extra={"idempotency_key": key})
            return None

        event = self.outbox.create(
            event_type=event_type,
            recipient_id=recipient_id,
            aggregate_id=aggregate_id,
            idempotency_key=key,
            payload=dict(payload or {}),
        )
        prometheus_metrics.inc_notification(event_type)
        logger.info(
            f"Enqueued {event_type} for {recipient_id}",
            extra={"event_type": event_type, "aggregate_id": aggregate_id},
        )
        return event
