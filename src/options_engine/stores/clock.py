"""
Clock

Injectable time source so that daily resets, TTLs and dwell-time checks
can be driven deterministically in tests.
"""

from datetime import date, datetime, timedelta
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return date.today()


class FrozenClock:
    """
    Clock that only moves when told to.

    Example:
        >>> clock = FrozenClock(datetime(2026, 3, 2, 10, 0))
        >>> clock.advance(minutes=31)
        >>> clock.now()
        datetime.datetime(2026, 3, 2, 10, 31)
    """

    def __init__(self, current: datetime):
        self._current = current

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def advance(self, **delta) -> datetime:
        """Move forward by timedelta keyword arguments (seconds=, minutes=, days=, ...)."""
        self._current += timedelta(**delta)
        return self._current

    def set(self, current: datetime) -> None:
        self._current = current

    def __repr__(self) -> str:
        return f"FrozenClock({self._current.isoformat()})"
