# backend/cadence/repositories/availability_repository.py
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import CallType
from ..models.availability import AvailabilityException, AvailabilityWindow
from ..models.mentor import MentorProfile
from .base_repository import BaseRepository


class AvailabilityWindowRepository(BaseRepository[AvailabilityWindow]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityWindow)

    def active_windows(
        self, mentor_id: str, call_type: CallType, day_of_week: Optional[int] = None
    ) -> List[AvailabilityWindow]:
        query = self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.mentor_id == mentor_id,
            AvailabilityWindow.call_type == call_type.value,
            AvailabilityWindow.is_active.is_(True),
        )
        if day_of_week is not None:
            query = query.filter(AvailabilityWindow.day_of_week == day_of_week)
        return query.order_by(AvailabilityWindow.day_of_week, AvailabilityWindow.start_time).all()

    def delete_for_mentor(self, mentor_id: str, call_type: CallType) -> int:
        return (
            self.db.query(AvailabilityWindow)
            .filter(
                AvailabilityWindow.mentor_id == mentor_id,
                AvailabilityWindow.call_type == call_type.value,
            )
            .delete(synchronize_session=False)
        )


class AvailabilityExceptionRepository(BaseRepository[AvailabilityException]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityException)

    def covering(self, mentor_id: str, day: date) -> Optional[AvailabilityException]:
        return (
            self.db.query(AvailabilityException)
            .filter(
                AvailabilityException.mentor_id == mentor_id,
                AvailabilityException.start_date <= day,
                AvailabilityException.end_date >= day,
            )
            .first()
        )

    def list_for_mentor(self, mentor_id: str) -> List[AvailabilityException]:
        return (
            self.db.query(AvailabilityException)
            .filter(AvailabilityException.mentor_id == mentor_id)
            .order_by(AvailabilityException.start_date)
            .all()
        )


class MentorProfileRepository(BaseRepository[MentorProfile]):
    def __init__(self, db: Session):
        super().__init__(db, MentorProfile)

    def get_by_mentor(self, mentor_id: str) -> Optional[MentorProfile]:
        return self.db.query(MentorProfile).filter(MentorProfile.mentor_id == mentor_id).first()
