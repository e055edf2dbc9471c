# backend/cadence/services/base.py
"""
Base Service Pattern for the scheduling engine.

Provides common functionality for all service classes including:
- Transaction management
- Logging
- Clock injection
- Performance monitoring
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.clock import Clock, SystemClock
from ..core.exceptions import PersistenceFailure, RepositoryException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Services own the unit of work: repositories flush, services commit or
    roll back through ``transaction()``.
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        """
        Initialize base service.

        Args:
            db: Database session
            clock: Source of "now"; defaults to the system clock
        """
        self.db = db
        self.clock: Clock = clock or SystemClock()
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self):
        return self.clock.now()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Storage errors surface as PersistenceFailure; domain errors raised
        inside the block roll back and propagate unchanged.

        Usage:
            with self.transaction():
                self.db.add(entity)
        """
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self.db.rollback()
            raise self._persistence_failure(e) from e
        except RepositoryException as e:
            self.logger.error(f"Repository failure in transaction: {str(e)}")
            self.db.rollback()
            raise PersistenceFailure(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _persistence_failure(exc: SQLAlchemyError) -> PersistenceFailure:
        retryable = isinstance(exc, OperationalError) or (
            isinstance(exc, DBAPIError) and exc.connection_invalidated
        )
        return PersistenceFailure(
            f"Database operation failed: {exc.__class__.__name__}",
            details={"error": str(getattr(exc, "orig", exc))},
            retryable=retryable,
        )

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("reserve")
            def reserve(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.perf_counter()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - start_time

                    # Only log if it's actually slow
                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            wrapper._is_measured = True  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log service operation with context.

        Args:
            operation: Operation name
            **context: Additional context to log
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
