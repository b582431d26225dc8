"""
Price History

Bounded ring buffer of (price, timestamp) observations used by the exit
rules to tell a first touch of a short strike from a bounce or a sustained
breach.

Tolerances are fractions of the level (0.01 = within 1% of the strike).
Single writer; not safe for concurrent mutation.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from options_engine.decisions.models import PriceTrend
from options_engine.stores.clock import Clock, SystemClock

DEFAULT_CAPACITY = 100
TREND_THRESHOLD_PCT = 0.5


@dataclass(frozen=True, slots=True)
class PricePoint:
    price: float
    timestamp: datetime


class PriceHistory:
    """
    Recent underlying prices, oldest first.

    Example:
        >>> history = PriceHistory(clock=FrozenClock(datetime(2026, 3, 2, 10, 0)))
        >>> history.add(574.0)
        >>> history.is_first_touch(575.0, tolerance=0.01)
        True
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, clock: Optional[Clock] = None):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.clock = clock or SystemClock()
        self._points: deque[PricePoint] = deque(maxlen=capacity)

    def add(self, price: float, timestamp: Optional[datetime] = None) -> None:
        self._points.append(PricePoint(price, timestamp or self.clock.now()))

    def clear(self) -> None:
        self._points.clear()

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> list[PricePoint]:
        return list(self._points)

    @property
    def latest(self) -> Optional[PricePoint]:
        return self._points[-1] if self._points else None

    @staticmethod
    def _at_level(price: float, level: float, tolerance: float) -> bool:
        return abs(price - level) <= level * tolerance

    def time_at_level(self, level: float, tolerance: float = 0.005) -> float:
        """Minutes between the first and the last observation within tolerance of level."""
        hits = [p for p in self._points if self._at_level(p.price, level, tolerance)]
        if not hits:
            return 0.0
        return (hits[-1].timestamp - hits[0].timestamp).total_seconds() / 60

    def is_first_touch(self, level: float, tolerance: float = 0.005) -> bool:
        """Newest of the last 5 points is at the level and none of the earlier ones were."""
        recent = list(self._points)[-5:]
        if not recent:
            return False
        *earlier, newest = recent
        return self._at_level(newest.price, level, tolerance) and not any(
            self._at_level(p.price, level, tolerance) for p in earlier
        )

    def has_bounced(self, level: float, tolerance: float = 0.005) -> bool:
        """One of the last 10 points touched the level and the newest is > 2x tolerance away."""
        recent = list(self._points)[-10:]
        if len(recent) < 3:
            return False
        touched = any(self._at_level(p.price, level, tolerance) for p in recent)
        moved_away = abs(recent[-1].price - level) > level * tolerance * 2
        return touched and moved_away

    def trend(self, window: int = 5) -> PriceTrend:
        if len(self._points) < window:
            return PriceTrend.UNKNOWN
        recent = list(self._points)[-window:]
        first, last = recent[0].price, recent[-1].price
        change = (last - first) / first * 100
        if change > TREND_THRESHOLD_PCT:
            return PriceTrend.UP
        if change < -TREND_THRESHOLD_PCT:
            return PriceTrend.DOWN
        return PriceTrend.SIDEWAYS

    def summary(self) -> dict:
        return {
            "points_tracked": len(self._points),
            "trend": self.trend().value,
            "latest_price": self._points[-1].price if self._points else None,
            "oldest_price": self._points[0].price if self._points else None,
        }

    def __repr__(self) -> str:
        return f"PriceHistory({len(self._points)}/{self.capacity} points)"
