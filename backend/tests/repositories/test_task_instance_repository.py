"""Tests for task instance queries and the pending-date uniqueness guard."""

from datetime import date, timedelta

import pytest

from cadence.core.enums import TaskStatus
from cadence.models.action import TaskInstance
from cadence.repositories.base_repository import UniqueViolation
from cadence.repositories.factory import RepositoryFactory
from tests.helpers.scheduling import NEXT_MONDAY, PARTICIPANT_ID

TUESDAY = NEXT_MONDAY + timedelta(days=1)
WEDNESDAY = NEXT_MONDAY + timedelta(days=2)


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_task_instance_repository(db)


@pytest.fixture
def action(make_action):
    return make_action()


def add_instance(repository, action, due: date, original: date = None, status=None):
    task = repository.create(
        participant_id=PARTICIPANT_ID,
        action_id=action.id,
        due_date=due,
        original_due_date=original or due,
        status=(status or TaskStatus.PENDING).value,
    )
    repository.db.commit()
    return task


def test_postponed_instance_occupies_both_dates(repository, action) -> None:
    add_instance(repository, action, WEDNESDAY, original=NEXT_MONDAY)

    taken = repository.occupied_dates(action.id, [NEXT_MONDAY, TUESDAY, WEDNESDAY])

    assert taken == {NEXT_MONDAY, WEDNESDAY}


def test_completed_history_occupies_its_date(repository, action) -> None:
    add_instance(repository, action, NEXT_MONDAY, status=TaskStatus.COMPLETED)
    assert repository.occupied_dates(action.id, [NEXT_MONDAY]) == {NEXT_MONDAY}


def test_cancelled_instances_free_their_date(repository, action) -> None:
    add_instance(repository, action, NEXT_MONDAY, status=TaskStatus.CANCELLED)
    assert repository.occupied_dates(action.id, [NEXT_MONDAY]) == set()


def test_second_pending_instance_on_a_date_is_rejected(db, repository, action) -> None:
    add_instance(repository, action, NEXT_MONDAY)

    with pytest.raises(UniqueViolation):
        repository.add(
            TaskInstance(
                participant_id=PARTICIPANT_ID,
                action_id=action.id,
                due_date=NEXT_MONDAY,
                original_due_date=NEXT_MONDAY,
                status=TaskStatus.PENDING.value,
            )
        )
    db.rollback()


def test_completed_and_pending_may_share_a_date(repository, action) -> None:
    add_instance(repository, action, NEXT_MONDAY, status=TaskStatus.COMPLETED)
    add_instance(repository, action, NEXT_MONDAY, original=date(2024, 1, 7))

    assert repository.pending_on(action.id, NEXT_MONDAY).original_due_date == date(2024, 1, 7)


def test_delete_pending_from_keeps_history(db, repository, action) -> None:
    add_instance(repository, action, date(2024, 1, 4))
    add_instance(repository, action, NEXT_MONDAY, status=TaskStatus.COMPLETED)
    add_instance(repository, action, TUESDAY)

    assert repository.delete_pending_from(action.id, NEXT_MONDAY) == 1
    db.commit()

    remaining = {(t.due_date, t.status) for t in repository.find_by(action_id=action.id)}
    assert remaining == {
        (date(2024, 1, 4), TaskStatus.PENDING.value),
        (NEXT_MONDAY, TaskStatus.COMPLETED.value),
    }


def test_live_instance_ignores_cancelled_rows(repository, action) -> None:
    assert repository.has_live_instance(action.id) is False
    add_instance(repository, action, NEXT_MONDAY, status=TaskStatus.CANCELLED)
    assert repository.has_live_instance(action.id) is False
    add_instance(repository, action, TUESDAY, status=TaskStatus.COMPLETED)
    assert repository.has_live_instance(action.id) is True
