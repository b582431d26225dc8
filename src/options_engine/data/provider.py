"""
Market Data Provider

Protocol for the market data source plus an in-memory implementation used
by tests and offline analysis. No network client ships with the engine.

Key patterns:
- Protocol for duck-typing (no inheritance required)
- Two-tier price freshness: real-time price, then previous close
- Both tiers failing is fatal for the request (MissingMarketDataError)
"""

from datetime import date
from typing import Optional, Protocol, Sequence, runtime_checkable

from loguru import logger

from options_engine.exceptions import MissingMarketDataError
from options_engine.models import Bar, ChainSnapshot, ExpirationChain


@runtime_checkable
class MarketDataProvider(Protocol):
    """
    Market data source.

    Methods return None (or an empty sequence) when data is unavailable
    and may raise on transport errors.
    """

    def get_chain(self, symbol: str, expiration: Optional[date] = None) -> Optional[ChainSnapshot]:
        ...

    def get_realtime_price(self, symbol: str) -> Optional[float]:
        ...

    def get_previous_close(self, symbol: str) -> Optional[float]:
        ...

    def get_bars(self, symbol: str, days: int) -> Sequence[Bar]:
        ...


def resolve_underlying_price(provider: MarketDataProvider, symbol: str) -> float:
    """
    Current underlying price: real-time first, previous close as fallback.

    Raises:
        MissingMarketDataError: Neither tier produced a positive price
    """
    for tier, fetch in (
        ("realtime", provider.get_realtime_price),
        ("previous_close", provider.get_previous_close),
    ):
        try:
            price = fetch(symbol)
        except Exception as e:
            logger.warning(f"{symbol}: {tier} price unavailable: {e}")
            continue
        if price is not None and price > 0:
            if tier != "realtime":
                logger.info(f"{symbol}: using {tier} price {price:.2f}")
            return float(price)
        logger.debug(f"{symbol}: no {tier} price")

    raise MissingMarketDataError(
        f"No price for {symbol} from realtime or previous close",
        symbol=symbol,
        field="underlying_price",
    )


class InMemoryMarketDataProvider:
    """
    Static market data held in dictionaries.

    Example:
        >>> provider = InMemoryMarketDataProvider(chains={"SPY": chain}, prices={"SPY": 575.23})
        >>> resolve_underlying_price(provider, "SPY")
        575.23
    """

    def __init__(
        self,
        chains: Optional[dict[str, ChainSnapshot]] = None,
        prices: Optional[dict[str, float]] = None,
        previous_closes: Optional[dict[str, float]] = None,
        bars: Optional[dict[str, list[Bar]]] = None,
    ):
        self.chains = dict(chains or {})
        self.prices = dict(prices or {})
        self.previous_closes = dict(previous_closes or {})
        self.bars = dict(bars or {})

    def get_chain(self, symbol: str, expiration: Optional[date] = None) -> Optional[ChainSnapshot]:
        chain = self.chains.get(symbol)
        if chain is None or expiration is None:
            return chain
        selected = chain.expirations.get(expiration)
        if selected is None:
            return None
        return ChainSnapshot(
            symbol=chain.symbol,
            underlying_price=chain.underlying_price,
            expirations={expiration: ExpirationChain(selected.calls, selected.puts)},
            as_of=chain.as_of,
        )

    def get_realtime_price(self, symbol: str) -> Optional[float]:
        return self.prices.get(symbol)

    def get_previous_close(self, symbol: str) -> Optional[float]:
        return self.previous_closes.get(symbol)

    def get_bars(self, symbol: str, days: int) -> Sequence[Bar]:
        return self.bars.get(symbol, [])[-days:] if days > 0 else []

    def set_price(self, symbol: str, price: Optional[float]) -> None:
        if price is None:
            self.prices.pop(symbol, None)
        else:
            self.prices[symbol] = price
