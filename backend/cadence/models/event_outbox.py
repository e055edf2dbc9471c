# backend/cadence/models/event_outbox.py
"""
Event outbox persistence model.

Notification intents are written here inside the same transaction as the
state change that caused them, so an intent exists if and only if the change
committed. Delivery is someone else's job.
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, String, Text, UniqueConstraint
from sqlalchemy.sql import func

from ..database import Base
from .types import JSONType, UTCDateTime, new_ulid, now_utc


class EventOutboxStatus:
    """Lifecycle states for an outbox event."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EventOutbox(Base):
    """Transactional outbox entry pending delivery."""

    __tablename__ = "event_outbox"

    id = Column(String(26), primary_key=True, default=new_ulid)
    event_type = Column(String(100), nullable=False, index=True)
    recipient_id = Column(String(64), nullable=False, index=True)
    aggregate_id = Column(String(64), nullable=False, index=True)
    idempotency_key = Column(String(255), nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=EventOutboxStatus.PENDING, index=True)
    attempt_count = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=func.now())

    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_event_outbox_idempotency_key"),)
