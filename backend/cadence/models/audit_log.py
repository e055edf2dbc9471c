# backend/cadence/models/audit_log.py
"""
Immutable audit trail for administrative and participant-initiated exits,
suspensions, resets and cycle restarts.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import Column, String, Text
from sqlalchemy.sql import func

from ..database import Base
from .types import JSONType, UTCDateTime, new_ulid, now_utc


class AuditLog(Base):
    """Persistence model for audit trail entries."""

    __tablename__ = "audit_log"

    id = Column(String(26), primary_key=True, default=new_ulid)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    action = Column(String(30), nullable=False)
    actor_id = Column(String(64), nullable=True)
    actor_role = Column(String(30), nullable=True)
    reason = Column(Text, nullable=True)
    occurred_at = Column(
        UTCDateTime,
        nullable=False,
        default=now_utc,
        server_default=func.now(),
    )
    before = Column(JSONType, nullable=True)
    after = Column(JSONType, nullable=True)

    @classmethod
    def from_change(
        cls,
        entity_type: str,
        entity_id: str,
        action: str,
        actor_id: str | None,
        actor_role: str | None,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
        *,
        reason: str | None = None,
        occurred_at: Any | None = None,
    ) -> "AuditLog":
        """Factory helper to build an AuditLog instance from change metadata."""
        row = cls(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            actor_role=actor_role,
            reason=reason,
            before=dict(before) if before is not None else None,
            after=dict(after) if after is not None else None,
        )
        if occurred_at is not None:
            row.occurred_at = occurred_at
        return row
