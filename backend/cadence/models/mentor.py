# backend/cadence/models/mentor.py
from sqlalchemy import CheckConstraint, Column, Integer, String
from sqlalchemy.sql import func

from ..database import Base
from .types import UTCDateTime, new_ulid, now_utc


class MentorProfile(Base):
    """Per-mentor calendar and pricing settings."""

    __tablename__ = "mentor_profiles"

    id = Column(String(26), primary_key=True, default=new_ulid)
    mentor_id = Column(String(64), nullable=False, unique=True)
    timezone = Column(String(64), nullable=True)
    base_price = Column(Integer, nullable=True)
    commission_pct = Column(Integer, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())

    __table_args__ = (
        CheckConstraint("base_price IS NULL OR base_price >= 0", name="ck_mentor_base_price"),
        CheckConstraint(
            "commission_pct IS NULL OR (commission_pct >= 0 AND commission_pct <= 100)",
            name="ck_mentor_commission_range",
        ),
    )
