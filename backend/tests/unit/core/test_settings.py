import pytest
from pydantic import ValidationError

from cadence.core.config import Settings


@pytest.mark.unit
def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.weekly_booking_limit == 2
    assert settings.solo_cycle_days == 100
    assert settings.desertion_confirmation_token == "DESERT"
    assert settings.pricing_weeks_per_month == 4.2


@pytest.mark.unit
def test_env_prefix(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CADENCE_WEEKLY_BOOKING_LIMIT", "3")
    monkeypatch.setenv("CADENCE_DATABASE_URL", "sqlite://")
    settings = Settings()
    assert settings.weekly_booking_limit == 3
    assert settings.is_sqlite


@pytest.mark.unit
def test_unknown_timezone_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CADENCE_CALENDAR_TIMEZONE", "Mars/Olympus")
    with pytest.raises(ValidationError):
        Settings()
