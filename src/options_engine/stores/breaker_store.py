"""
Circuit Breaker State Store

Persists {daily_pnl, last_reset_date, breakers_tripped, trades_today} in a
DocumentStore and rolls the daily counters over when the date changes.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

from loguru import logger

from options_engine.stores.clock import Clock, SystemClock
from options_engine.stores.documents import DocumentStore, InMemoryDocumentStore


@dataclass(slots=True)
class BreakerState:
    daily_pnl: float
    last_reset_date: str
    breakers_tripped: list[dict[str, Any]] = field(default_factory=list)
    trades_today: int = 0

    @classmethod
    def fresh(cls, today: date) -> "BreakerState":
        return cls(daily_pnl=0.0, last_reset_date=today.isoformat())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BreakerState":
        return cls(
            daily_pnl=float(data.get("daily_pnl", 0.0)),
            last_reset_date=str(data["last_reset_date"]),
            breakers_tripped=list(data.get("breakers_tripped", [])),
            trades_today=int(data.get("trades_today", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class BreakerStateStore:
    """
    Breaker state persisted through a DocumentStore.

    load() creates the initial state when the document is missing and resets
    the daily counters when the stored date differs from clock.today().
    """

    def __init__(self, store: Optional[DocumentStore] = None, clock: Optional[Clock] = None):
        self.store = store or InMemoryDocumentStore()
        self.clock = clock or SystemClock()

    def load(self) -> BreakerState:
        today = self.clock.today()
        document = self.store.load()
        if document is None:
            state = BreakerState.fresh(today)
            self.save(state)
            return state

        state = BreakerState.from_dict(document)
        if state.last_reset_date != today.isoformat():
            logger.info(f"New trading day {today}: resetting daily breaker counters")
            state = BreakerState.fresh(today)
            self.save(state)
        return state

    def save(self, state: BreakerState) -> None:
        self.store.save(state.to_dict())
