"""
Stores

Clock, document persistence, position tracking, breaker state and the
option chain cache.
"""

from options_engine.stores.breaker_store import BreakerState, BreakerStateStore
from options_engine.stores.chain_cache import OptionChainCache
from options_engine.stores.clock import Clock, FrozenClock, SystemClock
from options_engine.stores.documents import DocumentStore, InMemoryDocumentStore, JsonFileDocumentStore
from options_engine.stores.positions import (
    ExitSignal,
    ExitSignals,
    MonitoringReport,
    Position,
    PositionAlert,
    PositionMarketData,
    PositionPnL,
    PositionStore,
    calculate_position_pnl,
    generate_exit_signals,
)

__all__ = [
    "BreakerState",
    "BreakerStateStore",
    "Clock",
    "DocumentStore",
    "ExitSignal",
    "ExitSignals",
    "FrozenClock",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "MonitoringReport",
    "OptionChainCache",
    "Position",
    "PositionAlert",
    "PositionMarketData",
    "PositionPnL",
    "PositionStore",
    "SystemClock",
    "calculate_position_pnl",
    "generate_exit_signals",
]
