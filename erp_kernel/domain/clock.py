"""
Clock -- injectable time source.

Movement dates, payment dates, batch dates and summary cache expiry all read
time from a Clock handed in by ErpKernel, never from ``datetime.now()``.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Starts at 2024-01-01 12:00 UTC unless another start is given.  Tests use
    ``advance()`` to order payments and to push cache entries past their TTL.
    """

    START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int | float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
