"""
Market Data Module

Provider protocol and price resolution.
"""

from options_engine.data.provider import (
    InMemoryMarketDataProvider,
    MarketDataProvider,
    resolve_underlying_price,
)

__all__ = [
    "InMemoryMarketDataProvider",
    "MarketDataProvider",
    "resolve_underlying_price",
]
