"""
Clock -- injectable source of the current time.

Donation timestamps, ledger rows and the time component of checkout
references all read the time from a Clock passed in by the caller, so a
test can pin every one of them.  SystemClock is the only place the wall
clock is read.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def epoch_millis(self) -> int:
        """Milliseconds since the epoch; the time part of a checkout reference."""
        return int(self.now().astimezone(timezone.utc).timestamp() * 1000)


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock pinned to ``fixed_time`` (default 2024-01-01 12:00 UTC).

    The value only moves when advance() or set_time() is called.
    """

    DEFAULT_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or self.DEFAULT_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, seconds: int = 1) -> datetime:
        self._current = self._current + timedelta(seconds=seconds)
        return self._current
