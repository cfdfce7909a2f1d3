"""
Time provider abstraction

Delegation status is a pure function of stored dates and "now", so every
component reads "now" from an injectable provider. Tests move the clock
forward instead of writing to the store.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Allows tests to freeze, set and advance the clock.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = ensure_utc(
            initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)
        )

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = ensure_utc(dt)

    def advance_seconds(self, seconds: int) -> None:
        self._current_time += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current_time += timedelta(days=days)


def ensure_utc(value: datetime | date | str) -> datetime:
    """
    Normalise a datetime-like value to an aware UTC datetime

    Naive datetimes are interpreted as UTC; plain dates become midnight UTC;
    strings are parsed as ISO 8601.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

