"""
Injectable clock.

Timestamps on records and the board's notion of "today" come from a Clock
handed in through the SessionContext, so tests can pin time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime."""
        ...

    def today(self, utc_offset_hours: float = 0) -> date:
        """Calendar date at the given fixed UTC offset."""
        tz = timezone(timedelta(hours=utc_offset_hours))
        return self.now().astimezone(tz).date()


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """Clock with controlled time for tests.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``.
    """

    def __init__(self, fixed_time: datetime | None = None) -> None:
        self._time = fixed_time or datetime(2024, 1, 1, tzinfo=UTC)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=UTC)

    def now(self) -> datetime:
        return self._time

    def advance(self, seconds: float = 1) -> datetime:
        self._time = self._time + timedelta(seconds=seconds)
        return self._time

    def set_time(self, new_time: datetime) -> None:
        if new_time.tzinfo is None:
            new_time = new_time.replace(tzinfo=UTC)
        self._time = new_time
