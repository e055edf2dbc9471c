# backend/cadence/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    """Runtime configuration, read from the environment (or backend/.env)."""

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "staging", "production"] = "development"

    # Storage
    database_url: str = Field(
        default="sqlite:///./cadence.db",
        description="SQLAlchemy URL of the transactional store",
    )
    database_echo: bool = False
    redis_url: str = Field(default="redis://localhost:6379", description="Celery broker")

    # Calendar
    calendar_timezone: str = Field(
        default="UTC",
        description="Fallback timezone for mentors without an explicit timezone",
    )
    weekly_booking_limit: int = Field(default=2, ge=1)
    discipline_slot_minutes: int = Field(default=15, gt=0)
    mentorship_slot_minutes: int = Field(default=60, gt=0)
    reservation_lock_timeout_ms: int = Field(
        default=5000,
        gt=0,
        description="Upper bound on waiting for the reservation write lock",
    )

    # Cycles and accountability
    solo_cycle_days: int = Field(default=100, gt=0)
    default_total_weeks: int = Field(default=15, gt=0)
    default_max_missed_allowed: int = Field(default=3, ge=1)
    desertion_confirmation_token: str = "DESERT"
    postpone_alert_threshold: int = Field(default=2, ge=0)
    overdue_alert_days: int = Field(default=3, ge=1)

    # Pricing
    pricing_default_base_price: int = Field(default=1000, ge=0)
    pricing_default_commission_pct: int = Field(default=30, ge=0, le=100)
    pricing_floor_capacity: float = Field(default=20.0, gt=0)
    pricing_weeks_per_month: float = Field(default=4.2, gt=0)
    pricing_horizon_days: int = Field(default=30, gt=0)

    # Retries (idempotent operations only)
    persistence_retry_attempts: int = Field(default=3, ge=1)

    @field_validator("calendar_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
