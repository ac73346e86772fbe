"""
Injectable time sources.

Lock stamps, audit timestamps, transaction-date checks, "paid" stamps and
the upcoming/overdue payroll queries all read the time from a ``Clock``
handed to the manager, never from ``datetime.now()``.
"""

from abc import ABC, abstractmethod
from collections import deque
from datetime import UTC, datetime, timedelta

_DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Naive datetimes are taken to be UTC; aware ones pass through."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Clock(ABC):
    """Returns timezone-aware datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(UTC)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves when asked to: ``advance``/``advance_days``/``tick``
    step it forward, ``set_time`` jumps to an absolute instant.
    """

    def __init__(self, now: datetime | None = None):
        self._now = as_utc(now) or _DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._now

    def set_time(self, time: datetime) -> None:
        self._now = as_utc(time)

    def advance(self, seconds: int = 1) -> None:
        self._now += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._now += timedelta(days=days)

    def tick(self) -> datetime:
        """One second forward; returns the new time."""
        self.advance()
        return self._now


class SequentialClock(Clock):
    """Plays back ``times`` in order, then keeps returning the final one."""

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._pending = deque(times)

    def now(self) -> datetime:
        if len(self._pending) > 1:
            return self._pending.popleft()
        return self._pending[0]
