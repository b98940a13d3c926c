"""
Injectable time source.

Domain and service code never read the wall clock themselves: transition
timestamps, purchase-day checks and the sweep's cut-off all come from the
Clock handed to them.

Invariants enforced:
    - ``today()`` is the UTC calendar day of ``now_utc()``.  A purchase
      scheduled for day D may be submitted only while ``today() == D``, and
      its deadline passes at the first instant of D + 1 (UTC).
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

# Monday; weekday index 1 when Sunday is 0
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of the current instant, always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime: ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        return self.now_utc().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock for tests and replays.  Time only moves when told to.

    ``set_time`` jumps to an absolute instant; ``advance`` and
    ``advance_days`` move relative to the current one.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = self._aware(fixed_time or DEFAULT_TEST_TIME)

    @staticmethod
    def _aware(moment: datetime) -> datetime:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware datetime")
        return moment

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = self._aware(time)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
