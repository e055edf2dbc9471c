"""Tests for the calendar claim overlap query."""

from datetime import timedelta

import pytest

from cadence.core.enums import CallType, ClaimSource
from cadence.repositories.factory import RepositoryFactory
from tests.helpers.scheduling import FROZEN_NOW, MENTOR_ID, NEXT_MONDAY, PARTICIPANT_ID, at


@pytest.fixture
def repository(db):
    return RepositoryFactory.create_calendar_claim_repository(db)


def claim(repository, when, minutes=60, call_type=CallType.MENTORSHIP, mentor_id=MENTOR_ID):
    return repository.claim(
        mentor_id=mentor_id,
        participant_id=PARTICIPANT_ID,
        scheduled_at=when,
        duration_minutes=minutes,
        call_type=call_type,
        source=ClaimSource.BOOKING,
    )


def test_claim_running_into_range_is_returned(repository) -> None:
    earlier = claim(repository, at(NEXT_MONDAY, 9))
    claim(repository, at(NEXT_MONDAY, 11))

    found = repository.active_between(MENTOR_ID, at(NEXT_MONDAY, 9, 30), at(NEXT_MONDAY, 10))

    assert [c.id for c in found] == [earlier.id]


def test_released_and_foreign_claims_are_ignored(repository) -> None:
    released = claim(repository, at(NEXT_MONDAY, 9))
    claim(repository, at(NEXT_MONDAY, 9), mentor_id="mentor-2")
    assert repository.release(released.id, FROZEN_NOW) is True
    assert repository.release(released.id, FROZEN_NOW) is False

    found = repository.active_between(
        MENTOR_ID, at(NEXT_MONDAY, 9), at(NEXT_MONDAY, 9) + timedelta(minutes=15)
    )

    assert found == []


def test_delete_many_skips_missing_ids(db, repository) -> None:
    kept = claim(repository, at(NEXT_MONDAY, 9), 15, CallType.DISCIPLINE)
    gone = claim(repository, at(NEXT_MONDAY, 10), 15, CallType.DISCIPLINE)

    assert repository.delete_many([gone.id, None]) == 1
    db.expire_all()
    assert repository.get_by_id(kept.id) is not None
    assert repository.get_by_id(gone.id) is None
