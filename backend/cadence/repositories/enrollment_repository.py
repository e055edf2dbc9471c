# backend/cadence/repositories/enrollment_repository.py
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.enums import EnrollmentStatus
from ..models.enrollment import Enrollment, Vision
from .base_repository import BaseRepository


class EnrollmentRepository(BaseRepository[Enrollment]):
    def __init__(self, db: Session):
        super().__init__(db, Enrollment)

    def get_active_for_participant(self, participant_id: str) -> Optional[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.participant_id == participant_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .first()
        )

    def get_latest_for_participant(self, participant_id: str) -> Optional[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(Enrollment.participant_id == participant_id)
            .order_by(Enrollment.created_at.desc(), Enrollment.id.desc())
            .first()
        )

    def active_for_vision(self, vision_id: str) -> List[Enrollment]:
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.vision_id == vision_id,
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
            )
            .all()
        )

    def active_behind_cycle_end(self) -> List[Enrollment]:
        """ACTIVE enrollments whose task instances do not yet reach the cycle end."""
        return (
            self.db.query(Enrollment)
            .filter(
                Enrollment.status == EnrollmentStatus.ACTIVE.value,
                Enrollment.generated_through.isnot(None),
                Enrollment.generated_through < Enrollment.cycle_end_date,
            )
            .order_by(Enrollment.id)
            .all()
        )


class VisionRepository(BaseRepository[Vision]):
    def __init__(self, db: Session):
        super().__init__(db, Vision)
