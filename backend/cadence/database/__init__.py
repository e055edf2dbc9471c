"""
Database engine, session factory, and metadata shared across the engine.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cadence.core.config import settings
from cadence.core.exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


def _enable_sqlite_write_locking(engine: Engine) -> None:
    """
    Make every SQLite transaction take the database write lock up front.

    pysqlite defers BEGIN until the first write, which lets two readers both
    pass their checks before either writes. BEGIN IMMEDIATE serializes writers
    and the driver's busy timeout bounds how long a writer waits.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(db_url: str, **kwargs: Any) -> Engine:
    """Create an engine for ``db_url`` with the locking behaviour the engine relies on."""
    kwargs.setdefault("echo", settings.database_echo)
    if db_url.startswith("sqlite"):
        connect_args = kwargs.setdefault("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", settings.reservation_lock_timeout_ms / 1000)
        if ":memory:" in db_url or db_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs.setdefault("poolclass", StaticPool)
        engine = create_engine(db_url, **kwargs)
        _enable_sqlite_write_locking(engine)
    else:
        kwargs.setdefault("pool_pre_ping", True)
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)
        engine = create_engine(db_url, **kwargs)

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        logger.debug("Database connection established")

    return engine


engine: Engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


T = TypeVar("T")


def _retry_delay(attempt: int) -> float:
    base = 0.1 * (2 ** (attempt - 1))
    return base + random.uniform(0, 0.05 * attempt)


def with_db_retry(op_name: str, func: Callable[[], T], *, max_attempts: int | None = None) -> T:
    """
    Run an idempotent operation, retrying retryable persistence failures.

    Only use this for operations that are safe to repeat (materialization,
    regeneration, sweeps). Reservations must never go through here.
    """

    attempts = max_attempts or settings.persistence_retry_attempts
    attempt = 1
    while True:
        try:
            return func()
        except PersistenceFailure as exc:
            if attempt >= attempts or not exc.retryable:
                raise

            delay = _retry_delay(attempt)
            logger.warning(
                "Transient persistence failure detected, retrying",
                extra={
                    "event": "db_retry",
                    "op": op_name,
                    "attempt": attempt,
                    "delay": delay,
                    "error": exc.message,
                },
            )
            time.sleep(delay)
            attempt += 1


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "engine",
    "with_db_retry",
]
