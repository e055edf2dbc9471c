# backend/cadence/core/exceptions.py
"""
Domain-specific exceptions for the scheduling engine.

Every error carries a stable machine-readable ``code`` plus a human-readable
message, and can be converted to an HTTPException by whatever transport layer
exposes these operations.
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class ValidationException(DomainException):
    """Raised when input is malformed. Rejected before anything is persisted."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Expected, user-facing conflicts. Never retried automatically."""

    status_code = status.HTTP_409_CONFLICT


class StateException(DomainException):
    """Raised when an operation is invoked against an entity in the wrong state."""

    status_code = HTTP_422_UNPROCESSABLE


class PersistenceFailure(DomainException):
    """
    Storage engine unavailable or transaction aborted by infrastructure.

    Only instances with ``retryable=True`` may be retried, and only by
    idempotent operations (materialization, regeneration).
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, code=code or "PERSISTENCE_FAILURE", details=details)
        self.retryable = retryable


# Validation


class UnknownFrequencyException(ValidationException):
    def __init__(self, value: Any):
        super().__init__(
            message=f"Unknown frequency: {value!r}",
            code="UNKNOWN_FREQUENCY",
            details={"value": str(value)},
        )


class InvalidConfirmationException(ValidationException):
    """Raised when a participant's typed confirmation does not match."""

    def __init__(self) -> None:
        super().__init__(
            message="Confirmation text does not match",
            code="INVALID_CONFIRMATION",
        )


# Conflicts


class SlotAlreadyTakenException(ConflictException):
    """Raised when another reservation already holds the slot."""

    def __init__(self, mentor_id: str, scheduled_at: Any):
        super().__init__(
            message="This time slot is already taken",
            code="SLOT_ALREADY_TAKEN",
            details={"mentor_id": mentor_id, "scheduled_at": str(scheduled_at)},
        )


class SameWeekdayNotAllowedException(ConflictException):
    def __init__(self, weekday: int):
        super().__init__(
            message="Both weekly calls must fall on different days",
            code="SAME_WEEKDAY_NOT_ALLOWED",
            details={"weekday": weekday},
        )


class WeeklyLimitReachedException(ConflictException):
    def __init__(self, limit: int, week_start: date):
        super().__init__(
            message=f"You already have {limit} calls booked this week",
            code="WEEKLY_LIMIT_REACHED",
            details={"limit": limit, "week_start": week_start.isoformat()},
        )


class ActiveCycleExistsException(ConflictException):
    def __init__(self, participant_id: str):
        super().__init__(
            message="Participant already has an active cycle",
            code="ACTIVE_CYCLE_EXISTS",
            details={"participant_id": participant_id},
        )


# State


class InvalidExtensionException(StateException):
    """Raised when a new cycle end date is not strictly after the current one."""

    def __init__(self, current_end: date, requested_end: date):
        super().__init__(
            message="New end date must be after the current end date",
            code="INVALID_EXTENSION",
            details={
                "current_end_date": current_end.isoformat(),
                "requested_end_date": requested_end.isoformat(),
            },
        )


class EnrollmentNotActiveException(StateException):
    def __init__(self, enrollment_id: str, current_status: str):
        super().__init__(
            message=f"Enrollment is {current_status}, expected ACTIVE",
            code="ENROLLMENT_NOT_ACTIVE",
            details={"enrollment_id": enrollment_id, "status": current_status},
        )


class InvalidTransitionException(StateException):
    def __init__(self, entity: str, entity_id: str, current: str, target: str):
        super().__init__(
            message=f"Cannot move {entity} from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"entity": entity, "id": entity_id, "from": current, "to": target},
        )


# Persistence


class ReservationLockTimeoutException(PersistenceFailure):
    """The reservation lock could not be acquired in time. Never retried."""

    def __init__(self, timeout_ms: int):
        super().__init__(
            message="Could not acquire the reservation lock in time",
            code="RESERVATION_LOCK_TIMEOUT",
            details={"timeout_ms": timeout_ms},
            retryable=False,
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations. Services translate it into a domain error.
    """
