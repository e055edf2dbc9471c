# backend/cadence/tasks/celery_app.py
"""
Celery application configuration for the scheduling sweeps.

Redis is the broker; results are not stored because every sweep logs its
own counts and is safe to re-run.
"""

import logging
import os
from typing import Any, Dict, Type, cast

from celery import Celery, Task
from celery.signals import setup_logging

from ..core.config import settings
from ..core.exceptions import PersistenceFailure


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    # Priority: CELERY_BROKER_URL -> REDIS_URL -> settings.redis_url
    broker_url = os.getenv("CELERY_BROKER_URL") or os.getenv("REDIS_URL") or settings.redis_url
    if not any(broker_url.endswith(f"/{i}") for i in range(16)):
        broker_url = f"{broker_url}/0"

    celery_app = Celery("cadence", broker=broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": settings.calendar_timezone,
            "enable_utc": True,
            "task_ignore_result": True,
            "worker_prefetch_multiplier": 1,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 300,
            "task_time_limit": 600,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "task_default_retry_delay": 60,
            "task_max_retries": 3,
            "beat_schedule_filename": "celerybeat-schedule",
            "worker_hijack_root_logger": False,
            "broker_transport_options": {
                "visibility_timeout": 3600,
                "polling_interval": 10.0,
            },
        }
    )

    celery_app.conf.imports = ("cadence.tasks.scheduling",)
    celery_app.conf.task_routes = {"scheduling.*": {"queue": "scheduling"}}

    from .beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule()

    return celery_app


@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()


class BaseTask(Task):  # type: ignore[misc]
    """Base task that retries transient storage failures and logs outcomes."""

    autoretry_for = (PersistenceFailure,)
    retry_kwargs = {"max_retries": 3, "countdown": 60}
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True

    def on_failure(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger = logging.getLogger(__name__)
        logger.error(
            f"Task {self.name}[{task_id}] failed with exception: {exc}",
            exc_info=True,
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc: Exception, task_id: str, args: Any, kwargs: Any, einfo: Any) -> None:
        logger = logging.getLogger(__name__)
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries} due to: {exc}",
            extra={
                "task_id": task_id,
                "task_name": self.name,
                "retry_count": self.request.retries,
            },
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app.Task = cast(Type[Task], BaseTask)


@celery_app.task(name="scheduling.health_check")  # type: ignore[misc]
def health_check() -> Dict[str, str]:
    from datetime import datetime, timezone

    current_task = celery_app.current_task
    return {
        "status": "healthy",
        "worker": current_task.request.hostname if current_task else "unknown",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
