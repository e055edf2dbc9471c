"""
Helpers for working with SQLAlchemy sessions in a dialect-agnostic way.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, UnboundExecutionError
from sqlalchemy.orm import Session

_LOCK_ERROR_SNIPPETS = (
    "database is locked",
    "lock timeout",
    "canceling statement due to lock timeout",
    "could not obtain lock",
)


def resolve_session_bind(session: Session) -> Optional[Connection | Engine]:
    """Return the engine/connection bound to a session without direct .bind access."""
    try:
        return session.get_bind()
    except UnboundExecutionError:
        return None


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Return SQLAlchemy dialect name without touching Session.bind directly.

    Falls back to ``default`` when the bound engine cannot be resolved.
    """
    bind = resolve_session_bind(session)
    if bind is None:
        return default
    dialect = getattr(bind, "dialect", None)
    name = getattr(dialect, "name", None)
    return name or default


def is_lock_timeout(exc: OperationalError) -> bool:
    """True when the driver gave up waiting for a lock."""
    message = str(exc).lower()
    return any(snippet in message for snippet in _LOCK_ERROR_SNIPPETS)
