# backend/cadence/repositories/calendar_repository.py
"""
Calendar claim data access.

``claim`` is the single write path onto a mentor's calendar. It relies on the
partial unique index over unreleased claims and reports a lost race as
UniqueViolation; it never checks first and inserts second.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.enums import CallType, ClaimSource
from ..models.calendar import CalendarClaim
from .base_repository import BaseRepository


class CalendarClaimRepository(BaseRepository[CalendarClaim]):
    def __init__(self, db: Session):
        super().__init__(db, CalendarClaim)

    def claim(
        self,
        *,
        mentor_id: str,
        participant_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        call_type: CallType,
        source: ClaimSource,
    ) -> CalendarClaim:
        return self.create(
            mentor_id=mentor_id,
            participant_id=participant_id,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            call_type=call_type.value,
            source=source.value,
        )

    def active_between(
        self,
        mentor_id: str,
        start: datetime,
        end: datetime,
        *,
        max_duration_minutes: int = 24 * 60,
    ) -> List[CalendarClaim]:
        """
        Unreleased claims that may overlap ``[start, end)``.

        The lower bound is widened by the longest possible call so a claim that
        started before ``start`` but runs into it is still returned.
        """
        return (
            self.db.query(CalendarClaim)
            .filter(
                CalendarClaim.mentor_id == mentor_id,
                CalendarClaim.released_at.is_(None),
                CalendarClaim.scheduled_at < end,
                CalendarClaim.scheduled_at > start - timedelta(minutes=max_duration_minutes),
            )
            .order_by(CalendarClaim.scheduled_at)
            .all()
        )

    def release(self, claim_id: Optional[str], when: datetime) -> bool:
        if not claim_id:
            return False
        claim = self.get_by_id(claim_id)
        if claim is None or claim.released_at is not None:
            return False
        claim.released_at = when
        self.db.flush()
        return True

    def delete_many(self, claim_ids: Iterable[str]) -> int:
        ids = [cid for cid in claim_ids if cid]
        if not ids:
            return 0
        return (
            self.db.query(CalendarClaim)
            .filter(CalendarClaim.id.in_(ids))
            .delete(synchronize_session=False)
        )
