"""
Clock -- injectable time source.

Responsibility:
    Services never call ``datetime.now()``.  Every ``createdAt`` /
    ``updatedAt`` stamp (epoch milliseconds), every default delivery or
    payment date, and every document-number year comes from a Clock.

Architecture position:
    Kernel > Domain.  ``SystemClock`` is the one place wall-clock time
    enters the core.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """
    Contract:
        ``now_utc()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now_utc(self) -> datetime:
        ...

    def now(self) -> datetime:
        return self.now_utc()

    def now_millis(self) -> int:
        """Current time in the stored timestamp form."""
        return epoch_millis(self.now_utc())

    def today_iso(self) -> str:
        return self.now_utc().date().isoformat()


class SystemClock(Clock):

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Repeated calls return the same instant, so documents created in one test
    step share a ``createdAt``; ``advance`` separates them.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _as_utc(fixed_time or _DEFAULT_TEST_TIME)

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = _as_utc(time)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Advance one second and return the new instant."""
        self.advance(1)
        return self._current


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def epoch_millis(moment: datetime) -> int:
    """Aware (or naive UTC) datetime to epoch milliseconds."""
    return int(_as_utc(moment).timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
