"""Shared constants for scheduling tests."""

from datetime import date, datetime, timezone

# Friday 2024-01-05 12:00 UTC. The Monday after (2024-01-08) falls in an
# even epoch week, so BIWEEKLY actions are "on" that week.
FROZEN_NOW = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)
NEXT_MONDAY = date(2024, 1, 8)

MENTOR_ID = "mentor-1"
PARTICIPANT_ID = "participant-1"
OTHER_PARTICIPANT_ID = "participant-2"


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on ``day``; the default calendar timezone is UTC."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)
