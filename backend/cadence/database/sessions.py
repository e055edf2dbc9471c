"""Session helpers for code that runs outside a request (sweeps, scripts)."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.orm import Session

from . import SessionLocal
from .session_utils import get_dialect_name


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def apply_lock_timeout(session: Session, timeout_ms: int) -> None:
    """
    Bound how long the current transaction waits for row/table locks.

    PostgreSQL gets ``SET LOCAL lock_timeout``; SQLite bounds the wait through
    the driver busy timeout configured on the engine, so nothing is issued.
    """
    if get_dialect_name(session) == "postgresql":
        session.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'"))


def lock_participant_reservations(session: Session, participant_id: str) -> None:
    """
    Serialize reservation writes of one participant until the transaction ends.

    The weekly quota and distinct-weekday checks read before they insert, so
    two reservations of the same participant must not interleave. PostgreSQL
    takes a transaction-scoped advisory lock keyed on the participant; SQLite
    already holds the database write lock from BEGIN IMMEDIATE.
    """
    if get_dialect_name(session) == "postgresql":
        session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"reservation:participant:{participant_id}"},
        )
