"""
Tests for PriceMonitor.

Tests cover:
- Single tick evaluation and callback delivery
- Start/stop lifecycle
- Error counting when the price is unavailable
- Async callbacks and chain caching
"""

import asyncio

import pytest

from options_engine.data.provider import InMemoryMarketDataProvider
from options_engine.decisions.models import ExitAction, ExitPosition
from options_engine.decisions.monitor import PriceMonitor
from options_engine.exceptions import MissingMarketDataError
from options_engine.stores.chain_cache import OptionChainCache
from tests.fixtures.chain_fixtures import NEAR_EXPIRY, SPOT


@pytest.fixture
def position():
    return ExitPosition(
        symbol="SPY", expiration=NEAR_EXPIRY, short_call=600.0, short_put=550.0, entry_credit=1.20
    )


@pytest.fixture
def provider(spy_chain, daily_bars):
    return InMemoryMarketDataProvider(
        chains={"SPY": spy_chain}, prices={"SPY": SPOT}, bars={"SPY": daily_bars}
    )


@pytest.mark.asyncio
async def test_tick_delivers_evaluation(position, provider, frozen_clock):
    received = []
    monitor = PriceMonitor(position, provider, received.append, interval=0.01, clock=frozen_clock)

    evaluation = await monitor.tick()

    assert evaluation.decision.action == ExitAction.HOLD
    assert evaluation.current_price == SPOT
    assert evaluation.call_probability is not None
    assert received == [evaluation]
    assert monitor.stats.ticks == 1
    assert len(monitor.history) == 1


@pytest.mark.asyncio
async def test_async_callback(position, provider, frozen_clock):
    received = []

    async def on_decision(evaluation):
        received.append(evaluation.decision.rule)

    monitor = PriceMonitor(position, provider, on_decision, clock=frozen_clock)
    await monitor.tick()

    assert received == ["normal_monitoring"]


@pytest.mark.asyncio
async def test_previous_close_fallback(position, spy_chain, frozen_clock):
    provider = InMemoryMarketDataProvider(chains={"SPY": spy_chain}, previous_closes={"SPY": 574.0})
    monitor = PriceMonitor(position, provider, lambda e: None, clock=frozen_clock)

    evaluation = await monitor.tick()
    assert evaluation.current_price == 574.0


@pytest.mark.asyncio
async def test_tick_without_price_raises(position, spy_chain, frozen_clock):
    provider = InMemoryMarketDataProvider(chains={"SPY": spy_chain})
    monitor = PriceMonitor(position, provider, lambda e: None, clock=frozen_clock)

    with pytest.raises(MissingMarketDataError):
        await monitor.tick()


@pytest.mark.asyncio
async def test_start_stop(position, provider, frozen_clock):
    received = []
    monitor = PriceMonitor(position, provider, received.append, interval=0.01, clock=frozen_clock)

    await monitor.start()
    assert monitor.is_running
    await asyncio.sleep(0.1)
    await monitor.stop()

    assert not monitor.is_running
    assert monitor.stats.ticks >= 1
    assert len(received) == monitor.stats.ticks


@pytest.mark.asyncio
async def test_loop_counts_errors(position, spy_chain, frozen_clock):
    provider = InMemoryMarketDataProvider(chains={"SPY": spy_chain})
    monitor = PriceMonitor(position, provider, lambda e: None, interval=0.01, clock=frozen_clock)

    await monitor.start()
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert monitor.stats.ticks == 0
    assert monitor.stats.errors >= 1
    assert "No price for SPY" in monitor.stats.last_error


@pytest.mark.asyncio
async def test_chain_cache_reused(position, provider, frozen_clock):
    cache = OptionChainCache(ttl_seconds=300, clock=frozen_clock)
    monitor = PriceMonitor(position, provider, lambda e: None, chain_cache=cache, clock=frozen_clock)

    await monitor.tick()
    await monitor.tick()

    assert cache.stats()["hits"] == 1
    assert cache.stats()["misses"] == 1
