# backend/cadence/tasks/scheduling.py
"""
Celery tasks for the periodic scheduling sweeps.

Each task opens its own session and delegates to TaskInstanceService; the
services are idempotent, so a duplicated or retried run does no harm.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from ..database.sessions import get_db_session
from ..services.task_instance_service import TaskInstanceService
from .celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="scheduling.expire_task_instances", bind=True)
def expire_task_instances(self: Any) -> Dict[str, int]:
    """Mark PENDING task instances past their deadline as EXPIRED."""
    with get_db_session() as db:
        expired = TaskInstanceService(db).expire_overdue()
    logger.info("Task instance expiry completed", extra={"expired": expired})
    return {"expired": expired}


@celery_app.task(name="scheduling.regenerate_extended_cycles", bind=True)
def regenerate_extended_cycles(self: Any) -> Dict[str, int]:
    """Materialize the days added to extended enrollments."""
    with get_db_session() as db:
        summary = TaskInstanceService(db).sweep_extensions()
    logger.info("Extended cycle regeneration completed", extra=summary)
    return summary


@celery_app.task(name="scheduling.alert_overdue_tasks", bind=True)
def alert_overdue_tasks(self: Any) -> Dict[str, int]:
    with get_db_session() as db:
        alerted = TaskInstanceService(db).alert_overdue()
    logger.info("Overdue task alerts enqueued", extra={"alerted": alerted})
    return {"alerted": alerted}
