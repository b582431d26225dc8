"""
Option Chain Cache

TTL cache of ChainSnapshot keyed by (symbol, expiration).
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from loguru import logger

from options_engine.models import ChainSnapshot
from options_engine.stores.clock import Clock, SystemClock

CacheKey = tuple[str, Optional[date]]


@dataclass(slots=True)
class _Entry:
    snapshot: ChainSnapshot
    stored_at: datetime


class OptionChainCache:
    """
    Time-based cache for option chains.

    Example:
        >>> cache = OptionChainCache(ttl_seconds=300)
        >>> cache.put(snapshot)
        >>> cache.get("SPY")
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or SystemClock()
        self._entries: dict[CacheKey, _Entry] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def _key(symbol: str, expiration: Optional[date]) -> CacheKey:
        return symbol.upper(), expiration

    def get(self, symbol: str, expiration: Optional[date] = None) -> Optional[ChainSnapshot]:
        key = self._key(symbol, expiration)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        age = (self.clock.now() - entry.stored_at).total_seconds()
        if age > self.ttl_seconds:
            del self._entries[key]
            self._misses += 1
            logger.debug(f"Chain cache expired for {key} ({age:.0f}s old)")
            return None

        self._hits += 1
        return entry.snapshot

    def put(self, snapshot: ChainSnapshot, expiration: Optional[date] = None) -> None:
        self._entries[self._key(snapshot.symbol, expiration)] = _Entry(snapshot, self.clock.now())

    def invalidate(self, symbol: Optional[str] = None) -> int:
        """Drop entries for one symbol (or everything). Returns how many were dropped."""
        if symbol is None:
            dropped = len(self._entries)
            self._entries.clear()
            return dropped
        keys = [k for k in self._entries if k[0] == symbol.upper()]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def stats(self) -> dict[str, float]:
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
            "ttl_seconds": self.ttl_seconds,
        }
