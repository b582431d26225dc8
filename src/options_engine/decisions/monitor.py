"""
Price Monitor

Asyncio loop that polls the underlying price for one open position,
keeps its PriceHistory and delivers an exit evaluation every interval.

Key patterns:
- start()/stop() manage one asyncio.Task (cancel on stop)
- Provider calls are synchronous and run in a worker thread
- A failing tick is logged and the loop keeps going
- Callback may be a plain function or a coroutine function
"""

import asyncio
import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from loguru import logger

from options_engine.config import DecisionConfig
from options_engine.data.provider import MarketDataProvider, resolve_underlying_price
from options_engine.decisions.evaluator import DecisionEvaluator
from options_engine.decisions.models import ExitEvaluation, ExitPosition
from options_engine.decisions.price_history import PriceHistory
from options_engine.stores.chain_cache import OptionChainCache
from options_engine.stores.clock import Clock, SystemClock

BAR_LOOKBACK_DAYS = 30

DecisionCallback = Callable[[ExitEvaluation], Any]


@dataclass(slots=True)
class MonitorStats:
    ticks: int = 0
    errors: int = 0
    last_tick: Optional[datetime] = None
    last_error: Optional[str] = None


class PriceMonitor:
    """
    Periodic exit monitoring for one position.

    Example:
        >>> monitor = PriceMonitor(position, provider, on_decision, interval=60)
        >>> await monitor.start()
        >>> ...
        >>> await monitor.stop()
    """

    def __init__(
        self,
        position: ExitPosition,
        provider: MarketDataProvider,
        callback: DecisionCallback,
        interval: Optional[float] = None,
        evaluator: Optional[DecisionEvaluator] = None,
        history: Optional[PriceHistory] = None,
        chain_cache: Optional[OptionChainCache] = None,
        config: Optional[DecisionConfig] = None,
        clock: Optional[Clock] = None,
    ):
        cfg = config or DecisionConfig()
        self.position = position
        self.provider = provider
        self.callback = callback
        self.interval = interval if interval is not None else cfg.monitor_interval_secs
        self.clock = clock or SystemClock()
        self.evaluator = evaluator or DecisionEvaluator(cfg)
        self.history = history or PriceHistory(cfg.price_history_capacity, clock=self.clock)
        self.chain_cache = chain_cache
        self.stats = MonitorStats()

        self._task: Optional[asyncio.Task] = None
        self._is_running = False
        self._log = logger.bind(component="monitor", symbol=position.symbol)

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        if self._is_running:
            self._log.warning(f"PriceMonitor for {self.position.symbol} already running")
            return

        self._is_running = True
        self._task = asyncio.create_task(self._monitor_loop())
        self._log.info(f"✓ PriceMonitor started for {self.position.symbol} (interval: {self.interval}s)")

    async def stop(self) -> None:
        self._is_running = False

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._log.info(f"✓ PriceMonitor stopped for {self.position.symbol}")

    async def _monitor_loop(self) -> None:
        while self._is_running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.stats.errors += 1
                self.stats.last_error = str(e)
                self._log.error(f"Monitor tick failed for {self.position.symbol}: {e}")

            try:
                await asyncio.sleep(self.interval)
            except asyncio.CancelledError:
                break

    def _fetch_chain(self):
        symbol = self.position.symbol
        expiration = self.position.expiration
        if self.chain_cache is not None:
            cached = self.chain_cache.get(symbol, expiration)
            if cached is not None:
                return cached
        chain = self.provider.get_chain(symbol, expiration)
        if chain is not None and self.chain_cache is not None:
            self.chain_cache.put(chain, expiration)
        return chain

    async def tick(self) -> ExitEvaluation:
        """
        One monitoring step: fetch price, chain and bars, evaluate, deliver.

        Raises:
            MissingMarketDataError: No price from either freshness tier
        """
        symbol = self.position.symbol
        price = await asyncio.to_thread(resolve_underlying_price, self.provider, symbol)
        chain = await asyncio.to_thread(self._fetch_chain)
        bars = await asyncio.to_thread(self.provider.get_bars, symbol, BAR_LOOKBACK_DAYS)

        evaluation = self.evaluator.evaluate_exit(
            self.position,
            price,
            self.history,
            chain=chain,
            bars=bars,
            as_of=self.clock.today(),
        )
        self.stats.ticks += 1
        self.stats.last_tick = self.clock.now()

        result = self.callback(evaluation)
        if inspect.isawaitable(result):
            await result
        return evaluation
