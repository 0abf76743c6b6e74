"""
Clock -- the only source of "now" inside the kernel.

Services and selectors receive a Clock by constructor injection and never
call ``datetime.now()`` or ``date.today()``.  Daily spend caps, schedule
guards and forecasts all use ``clock.today()``, the UTC calendar date.

Architecture position:
    Kernel > Domain.  SystemClock is the single place real time enters.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

DEFAULT_TEST_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def now(self) -> datetime:
        return self.now_utc()

    def today(self) -> date:
        """The UTC date: the boundary of every daily spend window."""
        return self.now_utc().date()


class SystemClock(Clock):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Starts at 2024-01-01 12:00 UTC unless given a start; an aware start in
    another zone is converted, so ``today()`` is always the UTC date.
    """

    def __init__(self, start: datetime | None = None):
        self._current = ensure_utc(start) if start is not None else DEFAULT_TEST_START

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = ensure_utc(value)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Treat naive datetimes as UTC and convert aware ones to UTC.

    SQLite hands back naive values for DateTime(timezone=True) columns, so
    timestamps read from the store pass through here before comparison.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
