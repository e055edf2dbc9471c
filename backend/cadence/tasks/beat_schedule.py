# backend/cadence/tasks/beat_schedule.py
"""Periodic schedule for the scheduling sweeps."""

from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Deadline expiry - hourly, on the hour
    "expire-task-instances": {
        "task": "scheduling.expire_task_instances",
        "schedule": crontab(minute=0),
        "options": {"queue": "scheduling", "priority": 5},
    },
    # Materialize days added by cycle extensions - hourly, offset from expiry
    "regenerate-extended-cycles": {
        "task": "scheduling.regenerate_extended_cycles",
        "schedule": crontab(minute=15),
        "options": {"queue": "scheduling", "priority": 4},
    },
    # Overdue alerts to mentors - daily at 07:00 calendar time
    "alert-overdue-tasks": {
        "task": "scheduling.alert_overdue_tasks",
        "schedule": crontab(hour=7, minute=0),
        "options": {"queue": "scheduling", "priority": 3},
    },
}


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    return dict(CELERYBEAT_SCHEDULE)
