# backend/cadence/services/slot_reservation_service.py
"""
Slot reservation.

Read path: free template slots minus every unreleased calendar claim of the
mentor that overlaps the slot. Direct bookings and mentorship requests with
an explicit time both hold claims, so one subtraction covers both paths.

Write path: ``reserve`` runs the whole claim in a single transaction:
weekly quota, distinct-day rule, claim insert under the partial unique
index, pricing and held funds for MENTORSHIP, commit. A lost race on the
index is reported as SlotAlreadyTaken; nothing here is ever retried.
"""

from datetime import date, datetime, time, timedelta
import logging
from typing import Any, List, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from ..core.clock import Clock, ensure_utc
from ..core.config import settings
from ..core.enums import (
    AttendanceStatus,
    BookingStatus,
    CallType,
    ClaimSource,
    EnrollmentStatus,
    HeldFundsStatus,
    MentorshipRequestStatus,
)
from ..core.exceptions import (
    DomainException,
    EnrollmentNotActiveException,
    InvalidTransitionException,
    NotFoundException,
    PersistenceFailure,
    ReservationLockTimeoutException,
    SameWeekdayNotAllowedException,
    SlotAlreadyTakenException,
    ValidationException,
    WeeklyLimitReachedException,
)
from ..database.session_utils import is_lock_timeout
from ..database.sessions import apply_lock_timeout, lock_participant_reservations
from ..models.booking import Booking, MentorshipRequest
from ..models.enrollment import Enrollment
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import UniqueViolation
from ..repositories.factory import RepositoryFactory
from ..schemas.scheduling import MentorshipRequestIn, ReservationRequest, parse_model
from .availability_service import AvailabilityService, slot_minutes_for
from .base import BaseService
from .notification_service import NotificationEvents, NotificationService
from .pricing_service import PricingService, split_funds
from .timezone_service import TimezoneService

logger = logging.getLogger(__name__)


class SlotReservationService(BaseService):
    """Free slots and race-free reservation of a mentor's calendar."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        availability_service: Optional[AvailabilityService] = None,
        pricing_service: Optional[PricingService] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        super().__init__(db, clock)
        self.availability = availability_service or AvailabilityService(db, self.clock)
        self.pricing = pricing_service or PricingService(db, self.clock)
        self.notifications = notification_service or NotificationService(db)
        self.claim_repository = RepositoryFactory.create_calendar_claim_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.held_funds_repository = RepositoryFactory.create_held_funds_repository(db)
        self.enrollment_repository = RepositoryFactory.create_enrollment_repository(db)
        self.request_repository = RepositoryFactory.create_mentorship_request_repository(db)

    # Read path

    @BaseService.measure_operation("available_slots")
    def available_slots(self, mentor_id: str, day: date, call_type: CallType) -> List[str]:
        """Template slots for the day that no active claim overlaps ("HH:MM", ascending)."""
        granularity = slot_minutes_for(call_type)
        template = self.availability.free_template_slots(mentor_id, day, call_type, granularity)
        if not template:
            return []

        step = timedelta(minutes=granularity)
        instants = [(s, self.availability.slot_instant(mentor_id, day, s)) for s in template]
        claims = self.claim_repository.active_between(
            mentor_id, instants[0][1], instants[-1][1] + step
        )
        return [
            slot
            for slot, start in instants
            if not any(claim.overlaps(start, start + step) for claim in claims)
        ]

    # Write path

    @BaseService.measure_operation("reserve")
    def reserve(
        self,
        participant_id: str,
        mentor_id: str,
        scheduled_at: datetime,
        call_type: CallType,
        *,
        enrollment_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Claim one slot for a participant.

        Raises:
            WeeklyLimitReachedException: the ISO week already holds the quota
            SameWeekdayNotAllowedException: another booking that week is on the same weekday
            SlotAlreadyTakenException: another reservation holds the slot
            ReservationLockTimeoutException: the write lock was not acquired in time
        """
        request = parse_model(
            ReservationRequest,
            {
                "participant_id": participant_id,
                "mentor_id": mentor_id,
                "scheduled_at": scheduled_at,
                "call_type": call_type,
                "enrollment_id": enrollment_id,
                "notes": notes,
            },
        )
        when = ensure_utc(request.scheduled_at)
        call_type = request.call_type

        try:
            with self.transaction():
                apply_lock_timeout(self.db, settings.reservation_lock_timeout_ms)
                booking = self._reserve_locked(request, when, call_type)
        except DomainException as exc:
            prometheus_metrics.inc_reservation(call_type.value, exc.code)
            if isinstance(exc, PersistenceFailure):
                raise self._reservation_failure(exc) from exc
            raise

        prometheus_metrics.inc_reservation(call_type.value, "reserved")
        self.log_operation(
            "reserve",
            booking_id=booking.id,
            mentor_id=mentor_id,
            participant_id=participant_id,
            scheduled_at=when.isoformat(),
            call_type=call_type.value,
        )
        return booking

    def _reserve_locked(
        self, request: ReservationRequest, when: datetime, call_type: CallType
    ) -> Booking:
        mentor_id = request.mentor_id
        participant_id = request.participant_id
        tz_name = self.availability.mentor_timezone(mentor_id)
        local = TimezoneService.utc_to_local(when, tz_name)

        if when <= self.now():
            raise ValidationException(
                "Cannot reserve a slot in the past",
                code="SLOT_IN_PAST",
                details={"scheduled_at": when.isoformat()},
            )
        offered = self.availability.free_template_slots(mentor_id, local.date(), call_type)
        if local.strftime("%H:%M") not in offered or local.second or local.microsecond:
            raise ValidationException(
                "The mentor does not offer this slot",
                code="SLOT_NOT_OFFERED",
                details={"scheduled_at": when.isoformat(), "call_type": call_type.value},
            )

        enrollment = self._resolve_enrollment(participant_id, request.enrollment_id, call_type)

        lock_participant_reservations(self.db, participant_id)
        # Weekly quota over the Monday-Sunday week in the mentor's calendar
        week_start = local.date() - timedelta(days=local.weekday())
        start = TimezoneService.local_to_utc(week_start, time(0, 0), tz_name)
        end = TimezoneService.local_to_utc(week_start + timedelta(days=7), time(0, 0), tz_name)
        existing = self.booking_repository.non_cancelled_between(participant_id, start, end)

        if len(existing) >= settings.weekly_booking_limit:
            raise WeeklyLimitReachedException(settings.weekly_booking_limit, week_start)
        for other in existing:
            other_local = TimezoneService.utc_to_local(other.scheduled_at, tz_name)
            if other_local.weekday() == local.weekday():
                raise SameWeekdayNotAllowedException(weekday=local.isoweekday() % 7)

        duration = slot_minutes_for(call_type)
        claim = self._claim_slot(
            mentor_id, participant_id, when, duration, call_type, ClaimSource.BOOKING
        )

        booking = self.booking_repository.create(
            claim_id=claim.id,
            enrollment_id=enrollment.id if enrollment else None,
            mentor_id=mentor_id,
            participant_id=participant_id,
            scheduled_at=when,
            duration_minutes=duration,
            call_type=call_type.value,
            status=BookingStatus.CONFIRMED.value,
            attendance_status=AttendanceStatus.PENDING.value,
            notes=request.notes,
        )

        if call_type == CallType.MENTORSHIP:
            # Priced inside this transaction so the quote sees the state we commit against
            quote = self.pricing.price(mentor_id)
            split = split_funds(quote.final_price, self.pricing.commission_for(mentor_id))
            booking.price = quote.final_price
            self.held_funds_repository.create(
                booking_id=booking.id,
                participant_id=participant_id,
                mentor_id=mentor_id,
                amount=split.amount,
                base_price=quote.base_price,
                multiplier=str(quote.multiplier),
                commission_pct=split.commission_pct,
                platform_fee=split.platform_fee,
                mentor_earnings=split.mentor_earnings,
                status=HeldFundsStatus.HELD.value,
            )

        return booking

    def _claim_slot(
        self,
        mentor_id: str,
        participant_id: str,
        when: datetime,
        duration: int,
        call_type: CallType,
        source: ClaimSource,
    ):
        # Claims of either call type share one physical calendar
        slot_end = when + timedelta(minutes=duration)
        nearby = self.claim_repository.active_between(mentor_id, when, slot_end)
        if any(c.overlaps(when, slot_end) for c in nearby):
            raise SlotAlreadyTakenException(mentor_id, when)
        try:
            return self.claim_repository.claim(
                mentor_id=mentor_id,
                participant_id=participant_id,
                scheduled_at=when,
                duration_minutes=duration,
                call_type=call_type,
                source=source,
            )
        except UniqueViolation as exc:
            raise SlotAlreadyTakenException(mentor_id, when) from exc

    def _resolve_enrollment(
        self, participant_id: str, enrollment_id: Optional[str], call_type: CallType
    ) -> Optional[Enrollment]:
        if enrollment_id:
            enrollment = self.enrollment_repository.get_by_id(enrollment_id)
            if enrollment is None or enrollment.participant_id != participant_id:
                raise NotFoundException(
                    "Enrollment not found", details={"enrollment_id": enrollment_id}
                )
        else:
            enrollment = self.enrollment_repository.get_active_for_participant(participant_id)
            if enrollment is None and call_type == CallType.DISCIPLINE:
                enrollment = self.enrollment_repository.get_latest_for_participant(participant_id)
                if enrollment is None:
                    raise NotFoundException(
                        "Discipline calls require an enrollment",
                        details={"participant_id": participant_id},
                    )

        if enrollment is not None and enrollment.status != EnrollmentStatus.ACTIVE.value:
            raise EnrollmentNotActiveException(enrollment.id, enrollment.status)
        return enrollment

    @staticmethod
    def _reservation_failure(exc: PersistenceFailure) -> PersistenceFailure:
        cause = exc.__cause__
        if isinstance(cause, OperationalError) and is_lock_timeout(cause):
            return ReservationLockTimeoutException(settings.reservation_lock_timeout_ms)
        # Never let a caller retry a reservation blindly
        return PersistenceFailure(exc.message, code=exc.code, details=exc.details, retryable=False)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, actor_id: str, reason: Optional[str] = None
    ) -> Booking:
        """Cancel a PENDING/CONFIRMED booking, freeing its slot and releasing held funds."""
        with self.transaction():
            booking = self.booking_repository.get_for_update(booking_id)
            if booking is None:
                raise NotFoundException("Booking not found", details={"booking_id": booking_id})
            if not booking.is_cancellable():
                raise InvalidTransitionException(
                    "booking", booking.id, booking.status, BookingStatus.CANCELLED.value
                )

            now = self.now()
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = now
            booking.cancelled_by = actor_id
            booking.cancellation_reason = reason
            self.claim_repository.release(booking.claim_id, now)
            for funds in self.held_funds_repository.held_for_bookings([booking.id]):
                funds.release(now)

        self.log_operation("cancel_booking", booking_id=booking_id, actor_id=actor_id)
        return booking

    # Mentorship requests (second reservation path, same calendar claims)

    @BaseService.measure_operation("request_mentorship")
    def request_mentorship(self, payload: Any) -> MentorshipRequest:
        data = parse_model(MentorshipRequestIn, payload)
        requested_at = ensure_utc(data.requested_at) if data.requested_at else None
        if requested_at is not None and requested_at <= self.now():
            raise ValidationException(
                "Cannot request a session in the past",
                code="SLOT_IN_PAST",
                details={"requested_at": requested_at.isoformat()},
            )

        try:
            with self.transaction():
                apply_lock_timeout(self.db, settings.reservation_lock_timeout_ms)
                claim_id = None
                if requested_at is not None:
                    claim = self._claim_slot(
                        data.mentor_id,
                        data.participant_id,
                        requested_at,
                        settings.mentorship_slot_minutes,
                        CallType.MENTORSHIP,
                        ClaimSource.MENTORSHIP_REQUEST,
                    )
                    claim_id = claim.id

                request = self.request_repository.create(
                    participant_id=data.participant_id,
                    mentor_id=data.mentor_id,
                    requested_date=data.requested_date,
                    requested_at=requested_at,
                    topic=data.topic,
                    status=MentorshipRequestStatus.PENDING.value,
                    claim_id=claim_id,
                )
                self.notifications.notify(
                    data.mentor_id,
                    NotificationEvents.MENTORSHIP_REQUESTED,
                    {"request_id": request.id, "participant_id": data.participant_id},
                    aggregate_id=request.id,
                )
        except PersistenceFailure as exc:
            raise self._reservation_failure(exc) from exc

        self.log_operation("request_mentorship", request_id=request.id, mentor_id=data.mentor_id)
        return request

    def _get_request(self, request_id: str) -> MentorshipRequest:
        request = self.request_repository.get_for_update(request_id)
        if request is None:
            raise NotFoundException(
                "Mentorship request not found", details={"request_id": request_id}
            )
        return request

    def _respond(
        self,
        request_id: str,
        actor_id: str,
        target: MentorshipRequestStatus,
        allowed_from: tuple,
        note: Optional[str],
        *,
        actor_is_mentor: bool,
    ) -> MentorshipRequest:
        with self.transaction():
            request = self._get_request(request_id)
            owner = request.mentor_id if actor_is_mentor else request.participant_id
            if owner != actor_id:
                raise NotFoundException(
                    "Mentorship request not found", details={"request_id": request_id}
                )
            if request.status not in [s.value for s in allowed_from]:
                raise InvalidTransitionException(
                    "mentorship_request", request.id, request.status, target.value
                )

            now = self.now()
            request.status = target.value
            request.responded_at = now
            if note is not None:
                request.mentor_note = note
            if not request.claims_slot:
                self.claim_repository.release(request.claim_id, now)

            recipient = request.participant_id if actor_is_mentor else request.mentor_id
            self.notifications.notify(
                recipient,
                NotificationEvents.MENTORSHIP_RESPONDED,
                {"request_id": request.id, "status": target.value},
                aggregate_id=request.id,
                idempotency_key=(
                    f"{NotificationEvents.MENTORSHIP_RESPONDED}:{request.id}:{target.value}"
                ),
            )
        return request

    @BaseService.measure_operation("confirm_request")
    def confirm_request(
        self, request_id: str, mentor_id: str, note: Optional[str] = None
    ) -> MentorshipRequest:
        return self._respond(
            request_id,
            mentor_id,
            MentorshipRequestStatus.CONFIRMED,
            (MentorshipRequestStatus.PENDING,),
            note,
            actor_is_mentor=True,
        )

    @BaseService.measure_operation("reject_request")
    def reject_request(
        self, request_id: str, mentor_id: str, note: Optional[str] = None
    ) -> MentorshipRequest:
        return self._respond(
            request_id,
            mentor_id,
            MentorshipRequestStatus.REJECTED,
            (MentorshipRequestStatus.PENDING,),
            note,
            actor_is_mentor=True,
        )

    @BaseService.measure_operation("cancel_request")
    def cancel_request(self, request_id: str, participant_id: str) -> MentorshipRequest:
        return self._respond(
            request_id,
            participant_id,
            MentorshipRequestStatus.CANCELLED,
            (MentorshipRequestStatus.PENDING, MentorshipRequestStatus.CONFIRMED),
            None,
            actor_is_mentor=False,
        )
