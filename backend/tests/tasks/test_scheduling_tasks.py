"""
Celery sweep tasks, run eagerly against the test database.

The tasks open their own session through ``get_db_session``; here that is
swapped for the test session and the services are bound to the frozen clock.
"""

from contextlib import contextmanager
from datetime import date
from functools import partial

import pytest

from cadence.core.enums import Frequency, TaskStatus
from cadence.models.action import TaskInstance
from cadence.models.event_outbox import EventOutbox
from cadence.services.task_instance_service import TaskInstanceService
from cadence.tasks import scheduling
from cadence.tasks.beat_schedule import CELERYBEAT_SCHEDULE
from cadence.tasks.celery_app import celery_app, health_check
from tests.helpers.scheduling import MENTOR_ID, NEXT_MONDAY


@pytest.fixture(autouse=True)
def task_session(db, clock, monkeypatch):
    @contextmanager
    def _session_scope():
        yield db
        db.commit()

    monkeypatch.setattr(scheduling, "get_db_session", _session_scope)
    monkeypatch.setattr(
        scheduling, "TaskInstanceService", partial(TaskInstanceService, clock=clock)
    )
    return db


@pytest.fixture
def daily_action(make_action):
    return make_action(Frequency.DAILY)


def test_expire_task_instances(db, clock, daily_action) -> None:
    TaskInstanceService(db, clock).materialize(
        daily_action, [date(2024, 1, 3), date(2024, 1, 5), NEXT_MONDAY]
    )

    assert scheduling.expire_task_instances() == {"expired": 1}

    db.expire_all()
    statuses = {t.due_date: t.status for t in db.query(TaskInstance)}
    assert statuses[date(2024, 1, 3)] == TaskStatus.EXPIRED.value
    assert statuses[NEXT_MONDAY] == TaskStatus.PENDING.value


def test_regenerate_extended_cycles(db, make_enrollment, daily_action) -> None:
    enrollment = make_enrollment(days=40, generated_through=date(2024, 1, 31))

    summary = scheduling.regenerate_extended_cycles()

    assert summary["enrollments"] == 1
    assert summary["failures"] == 0
    assert summary["created_count"] == 10
    db.refresh(enrollment)
    assert enrollment.generated_through == enrollment.cycle_end_date

    assert scheduling.regenerate_extended_cycles()["enrollments"] == 0


def test_alert_overdue_tasks_once(db, clock, make_enrollment, daily_action) -> None:
    make_enrollment()
    TaskInstanceService(db, clock).materialize(daily_action, [date(2024, 1, 1)])

    assert scheduling.alert_overdue_tasks() == {"alerted": 1}
    assert scheduling.alert_overdue_tasks() == {"alerted": 0}

    alert = db.query(EventOutbox).filter_by(event_type="task.overdue").one()
    assert alert.recipient_id == MENTOR_ID


def test_beat_schedule_is_registered() -> None:
    scheduled = {entry["task"] for entry in CELERYBEAT_SCHEDULE.values()}
    assert scheduled == {
        "scheduling.expire_task_instances",
        "scheduling.regenerate_extended_cycles",
        "scheduling.alert_overdue_tasks",
    }
    assert celery_app.conf.beat_schedule.keys() == CELERYBEAT_SCHEDULE.keys()
    assert celery_app.conf.task_routes["scheduling.*"] == {"queue": "scheduling"}


def test_health_check_task() -> None:
    assert health_check()["status"] == "healthy"
