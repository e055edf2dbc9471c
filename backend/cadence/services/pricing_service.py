# backend/cadence/services/pricing_service.py
"""
Occupancy-based pricing for MENTORSHIP calls.

The multiplier is a pure function of how full the mentor's mentorship
calendar is over the next ``pricing_horizon_days``. Quotes are recomputed on
every call and are never cached: a reservation must price against the
booking state visible inside its own transaction.
"""

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.enums import CallType
from ..schemas.scheduling import FundsSplit, PriceQuote
from ..repositories.factory import RepositoryFactory
from .base import BaseService

# (upper bound inclusive, multiplier, tier)
MULTIPLIER_TIERS = (
    (Decimal("0.40"), Decimal("1.0"), "standard"),
    (Decimal("0.70"), Decimal("1.2"), "high_demand"),
    (Decimal("0.90"), Decimal("1.5"), "last_spots"),
)
TOP_TIER = (Decimal("2.0"), "premium")


def _tier_for(rate: float) -> tuple[Decimal, str]:
    value = Decimal(str(rate))
    for upper, multiplier, tier in MULTIPLIER_TIERS:
        if value <= upper:
            return multiplier, tier
    return TOP_TIER


def occupancy_multiplier(rate: float) -> Decimal:
    """
    Price multiplier for an occupancy rate.

    rate <= 0.40 -> 1.0, <= 0.70 -> 1.2, <= 0.90 -> 1.5, above -> 2.0
    """
    return _tier_for(rate)[0]


def final_price(base_price: int, multiplier: Decimal) -> int:
    """Round half up to whole currency units."""
    return int((Decimal(base_price) * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_funds(amount: int, commission_pct: int) -> FundsSplit:
    fee = int(
        (Decimal(amount) * Decimal(commission_pct) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    )
    return FundsSplit(
        amount=amount,
        commission_pct=commission_pct,
        platform_fee=fee,
        mentor_earnings=amount - fee,
    )


class PricingService(BaseService):
    """Quotes MENTORSHIP calls from live occupancy."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.window_repository = RepositoryFactory.create_availability_window_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.profile_repository = RepositoryFactory.create_mentor_profile_repository(db)

    def weekly_capacity_hours(self, mentor_id: str) -> float:
        windows = self.window_repository.active_windows(mentor_id, CallType.MENTORSHIP)
        return sum(w.minutes for w in windows) / 60.0

    def monthly_capacity(self, mentor_id: str) -> float:
        return self.weekly_capacity_hours(mentor_id) * settings.pricing_weeks_per_month

    def base_price_for(self, mentor_id: str) -> int:
        profile = self.profile_repository.get_by_mentor(mentor_id)
        if profile is not None and profile.base_price is not None:
            return int(profile.base_price)
        return settings.pricing_default_base_price

    def commission_for(self, mentor_id: str) -> int:
        profile = self.profile_repository.get_by_mentor(mentor_id)
        if profile is not None and profile.commission_pct is not None:
            return int(profile.commission_pct)
        return settings.pricing_default_commission_pct

    @BaseService.measure_operation("price")
    def price(self, mentor_id: str) -> PriceQuote:
        """Current (basePrice, multiplier, finalPrice) for a mentor plus the inputs used."""
        now = self.now()
        capacity = self.monthly_capacity(mentor_id)
        booked = self.booking_repository.count_mentor_bookings_between(
            mentor_id,
            CallType.MENTORSHIP,
            now,
            now + timedelta(days=settings.pricing_horizon_days),
        )
        rate = booked / max(capacity, settings.pricing_floor_capacity)
        multiplier, tier = _tier_for(rate)
        base = self.base_price_for(mentor_id)

        return PriceQuote(
            mentor_id=mentor_id,
            base_price=base,
            multiplier=multiplier,
            final_price=final_price(base, multiplier),
            occupancy_rate=round(rate, 4),
            capacity=round(capacity, 2),
            booked_count=booked,
            tier=tier,
        )
