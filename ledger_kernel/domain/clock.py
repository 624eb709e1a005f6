"""
Clock: source of default posting dates.

The orchestrator and the reversal service take a Clock so that an entry
posted without an explicit date lands on a reproducible day in tests.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Payroll days are Indian calendar days.
IST = timezone(timedelta(hours=5, minutes=30), "IST")


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current timezone-aware instant."""

    def today(self, tz: timezone = IST) -> date:
        """Calendar date of ``now()`` in ``tz``; the default posting date."""
        return self.now().astimezone(tz).date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock pinned to one instant, 2024-06-15 12:00 UTC unless given.

    ``advance(days=...)`` moves it forward, e.g. to post a disbursement the
    day after its accrual.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._now = fixed_time or datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

    @classmethod
    def on(cls, day: date) -> "DeterministicClock":
        return cls(datetime(day.year, day.month, day.day, 6, 30, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._now

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        self._now += timedelta(days=days, seconds=seconds)
