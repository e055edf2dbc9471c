# backend/cadence/repositories/booking_repository.py
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from ..core.enums import BookingStatus, CallType, HeldFundsStatus
from ..models.booking import Booking, HeldFunds, MentorshipRequest
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def non_cancelled_between(
        self, participant_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """Participant bookings in ``[start, end)`` that still count toward the weekly quota."""
        return (
            self.db.query(Booking)
            .filter(
                Booking.participant_id == participant_id,
                Booking.status != BookingStatus.CANCELLED.value,
                Booking.scheduled_at >= start,
                Booking.scheduled_at < end,
            )
            .order_by(Booking.scheduled_at)
            .all()
        )

    def count_mentor_bookings_between(
        self, mentor_id: str, call_type: CallType, start: datetime, end: datetime
    ) -> int:
        return (
            self.db.query(Booking)
            .filter(
                Booking.mentor_id == mentor_id,
                Booking.call_type == call_type.value,
                Booking.status != BookingStatus.CANCELLED.value,
                Booking.scheduled_at >= start,
                Booking.scheduled_at < end,
            )
            .count()
        )

    def future_upcoming_for_enrollment(self, enrollment_id: str, now: datetime) -> List[Booking]:
        return (
            self.db.query(Booking)
            .filter(
                Booking.enrollment_id == enrollment_id,
                Booking.status.in_([s.value for s in BookingStatus.upcoming()]),
                Booking.scheduled_at > now,
            )
            .order_by(Booking.scheduled_at)
            .all()
        )

    def delete_many(self, booking_ids: List[str]) -> int:
        if not booking_ids:
            return 0
        return (
            self.db.query(Booking)
            .filter(Booking.id.in_(booking_ids))
            .delete(synchronize_session=False)
        )


class HeldFundsRepository(BaseRepository[HeldFunds]):
    def __init__(self, db: Session):
        super().__init__(db, HeldFunds)

    def held_for_bookings(self, booking_ids: List[str]) -> List[HeldFunds]:
        if not booking_ids:
            return []
        return (
            self.db.query(HeldFunds)
            .filter(
                HeldFunds.booking_id.in_(booking_ids),
                HeldFunds.status == HeldFundsStatus.HELD.value,
            )
            .all()
        )


class MentorshipRequestRepository(BaseRepository[MentorshipRequest]):
    def __init__(self, db: Session):
        super().__init__(db, MentorshipRequest)
