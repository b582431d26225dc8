"""
P&L Projection

Deterministic expiration P&L over a price grid, breakevens, time decay,
expected value and a summary report per strategy.

Key patterns:
- Leg P&L at expiration from intrinsic value:
  buy: (value - entry) * 100 * n, sell: (entry - value) * 100 * n
- numpy for vectorized payoff curves (breakeven search)
- Report defaults come from ProjectionConfig
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from options_engine.config import ProjectionConfig
from options_engine.exceptions import InvalidRequestError
from options_engine.models import (
    CONTRACT_MULTIPLIER,
    IronCondor,
    OptionRight,
    SpreadDirection,
    Strategy,
    VerticalSpread,
)

BREAKEVEN_TOLERANCE = 0.01
BREAKEVEN_GRID_POINTS = 20_001


@dataclass(slots=True)
class LegPnL:
    leg: str
    value_at_price: float
    entry_price: float
    pnl: float


@dataclass(slots=True)
class GridPoint:
    """
    P&L at one underlying price.

    Attributes:
        price: Underlying price at expiration
        price_change_pct: Move from the current price, in percent
        pnl: Position P&L in dollars
        return_pct: pnl as a percent of max risk (0 when max risk is 0)
        outcome: PROFIT, LOSS or BREAKEVEN
    """

    price: float
    price_change_pct: float
    pnl: float
    return_pct: float
    outcome: str


@dataclass(slots=True)
class TimeDecay:
    net_theta: float
    daily_decay_per_contract: float
    daily_decay_total: float
    decay_over_period: float
    days: int

    @property
    def interpretation(self) -> str:
        if self.daily_decay_total > 0:
            return f"Strategy benefits from time decay (+${self.daily_decay_total:.2f}/day)"
        return f"Strategy loses to time decay (${self.daily_decay_total:.2f}/day)"


@dataclass(slots=True)
class ExpectedValue:
    probability_profit: float
    max_profit: float
    max_loss: float
    expected_value: float

    @property
    def probability_loss(self) -> float:
        return 1 - self.probability_profit

    @property
    def expected_return_pct(self) -> float:
        return self.expected_value / self.max_loss * 100 if self.max_loss > 0 else 0.0

    @property
    def interpretation(self) -> str:
        if self.expected_value > 0:
            return f"Positive expected value of ${self.expected_value:.2f}"
        return f"Negative expected value of ${abs(self.expected_value):.2f}"


@dataclass(slots=True)
class KeyLevel:
    label: str
    price: float
    distance_pct: float


@dataclass(slots=True)
class PortfolioPnL:
    prices: list[float]
    by_strategy: dict[str, list[float]]
    totals: list[float]

    @property
    def max_profit(self) -> float:
        return max(self.totals) if self.totals else 0.0

    @property
    def max_loss(self) -> float:
        return min(self.totals) if self.totals else 0.0


@dataclass(slots=True)
class PnLReport:
    strategy: Strategy
    contracts: int
    current_price: float
    scenarios: list[GridPoint]
    breakevens: list[float]
    expected_value: ExpectedValue
    time_decay: TimeDecay
    key_levels: list[KeyLevel]
    target_prices: list[GridPoint] = field(default_factory=list)
    recommendation: str = ""

    @property
    def optimal_exit_price(self) -> float:
        return max(self.scenarios, key=lambda p: p.pnl).price

    @property
    def max_loss_price(self) -> float:
        return min(self.scenarios, key=lambda p: p.pnl).price

    @property
    def stop_loss_price(self) -> float:
        if isinstance(self.strategy, VerticalSpread):
            return self.strategy.legs[0].strike
        return round(self.current_price * 0.95, 2)


def _contracts(strategy: Strategy, contracts: Optional[int]) -> int:
    return contracts if contracts is not None else strategy.contracts


def leg_pnls(strategy: Strategy, price: float, contracts: Optional[int] = None) -> list[LegPnL]:
    n = _contracts(strategy, contracts)
    result = []
    for leg in strategy.legs:
        value = leg.intrinsic_value(price)
        pnl = (value - leg.price) * leg.action.sign * CONTRACT_MULTIPLIER * n
        result.append(LegPnL(
            leg=f"{leg.action.value} {leg.right.value} {leg.strike:g}",
            value_at_price=value,
            entry_price=leg.price,
            pnl=pnl,
        ))
    return result


def pnl_at(strategy: Strategy, price: float, contracts: Optional[int] = None) -> float:
    """Expiration P&L in dollars at one underlying price."""
    return sum(p.pnl for p in leg_pnls(strategy, price, contracts))


def _payoff_curve(strategy: Strategy, prices: np.ndarray, contracts: Optional[int] = None) -> np.ndarray:
    n = _contracts(strategy, contracts)
    total = np.zeros_like(prices, dtype=float)
    for leg in strategy.legs:
        if leg.right is OptionRight.CALL:
            value = np.maximum(prices - leg.strike, 0.0)
        else:
            value = np.maximum(leg.strike - prices, 0.0)
        total += (value - leg.price) * leg.action.sign
    return total * CONTRACT_MULTIPLIER * n


def _outcome(pnl: float) -> str:
    if abs(pnl) < BREAKEVEN_TOLERANCE:
        return "BREAKEVEN"
    return "PROFIT" if pnl > 0 else "LOSS"


def _grid_point(strategy: Strategy, price: float, current_price: float, n: int) -> GridPoint:
    pnl = pnl_at(strategy, price, n)
    risk = strategy.max_risk * CONTRACT_MULTIPLIER * n
    return GridPoint(
        price=round(price, 2),
        price_change_pct=round((price - current_price) / current_price * 100, 2),
        pnl=round(pnl, 2),
        return_pct=round(pnl / risk * 100, 2) if risk > 0 else 0.0,
        outcome=_outcome(pnl),
    )


def price_grid(
    strategy: Strategy,
    current_price: float,
    price_range: float = 0.20,
    num_points: int = 11,
    contracts: Optional[int] = None,
) -> list[GridPoint]:
    """
    Expiration P&L at `num_points` evenly spaced prices across current_price * (1 ± price_range).

    Raises:
        InvalidRequestError: If num_points < 2 or current_price <= 0
    """
    if num_points < 2:
        raise InvalidRequestError(f"num_points must be >= 2, got {num_points}", field="num_points")
    if current_price <= 0:
        raise InvalidRequestError(f"current_price must be positive, got {current_price}", field="current_price")
    n = _contracts(strategy, contracts)
    prices = np.linspace(current_price * (1 - price_range), current_price * (1 + price_range), num_points)
    return [_grid_point(strategy, float(p), current_price, n) for p in prices]


def find_breakevens(strategy: Strategy) -> list[float]:
    """
    Expiration breakeven prices.

    Single leg: call = strike + premium, put = strike - premium.
    Multi-leg: sign changes of the payoff on a fine grid, linearly interpolated.
    """
    if len(strategy.legs) == 1:
        leg = strategy.legs[0]
        if leg.right is OptionRight.CALL:
            return [round(leg.strike + leg.price, 2)]
        return [round(leg.strike - leg.price, 2)]

    strikes = strategy.strikes
    low = max(min(strikes) * 0.5, 0.01)
    high = max(strikes) * 1.5
    prices = np.linspace(low, high, BREAKEVEN_GRID_POINTS)
    pnl = _payoff_curve(strategy, prices, contracts=1)

    crossings = np.nonzero((pnl[:-1] == 0) | (pnl[:-1] * pnl[1:] < 0))[0]
    found: list[float] = []
    for i in crossings:
        a, b = pnl[i], pnl[i + 1]
        if a == 0:
            candidate = prices[i]
        else:
            candidate = prices[i] - a * (prices[i + 1] - prices[i]) / (b - a)
        candidate = round(float(candidate), 2)
        if not found or abs(candidate - found[-1]) > 0.01:
            found.append(candidate)
    return found


def time_decay(strategy: Strategy, days: int = 7, contracts: Optional[int] = None) -> TimeDecay:
    n = _contracts(strategy, contracts)
    net_theta = sum(
        (leg.greeks.theta if leg.greeks else 0.0) * leg.action.sign for leg in strategy.legs
    )
    daily_total = net_theta * CONTRACT_MULTIPLIER * n
    return TimeDecay(
        net_theta=round(net_theta, 4),
        daily_decay_per_contract=round(net_theta * CONTRACT_MULTIPLIER, 2),
        daily_decay_total=round(daily_total, 2),
        decay_over_period=round(daily_total * days, 2),
        days=days,
    )


def expected_value(strategy: Strategy, contracts: Optional[int] = None) -> ExpectedValue:
    """Binary-outcome EV: max profit with p, max loss with 1 - p (dollars)."""
    n = _contracts(strategy, contracts)
    p = strategy.probability_profit
    max_profit = strategy.max_profit * CONTRACT_MULTIPLIER * n
    max_loss = strategy.max_risk * CONTRACT_MULTIPLIER * n
    ev = max_profit * p - max_loss * (1 - p) if not math.isinf(max_profit) else math.inf
    return ExpectedValue(
        probability_profit=p,
        max_profit=max_profit,
        max_loss=max_loss,
        expected_value=ev,
    )


def key_levels(strategy: Strategy, current_price: float) -> list[KeyLevel]:
    """Strikes and breakevens with their distance from the current price, sorted by price."""
    levels = [
        KeyLevel(
            label=f"{leg.action.value} {leg.right.value} strike",
            price=leg.strike,
            distance_pct=round((leg.strike - current_price) / current_price * 100, 2),
        )
        for leg in strategy.legs
    ]
    levels.extend(
        KeyLevel(
            label="breakeven",
            price=be,
            distance_pct=round((be - current_price) / current_price * 100, 2),
        )
        for be in strategy.breakevens
    )
    levels.sort(key=lambda level: level.price)
    return levels


def recommendation(report: PnLReport) -> str:
    strategy = report.strategy
    ev = report.expected_value.expected_value
    rr = strategy.risk_reward or 0.0

    if ev > 0 and rr >= 2:
        parts = ["STRONG BUY - Positive EV with good risk/reward"]
    elif ev > 0:
        parts = ["BUY - Positive expected value"]
    elif rr >= 3:
        parts = ["CONSIDER - High risk/reward but check probability assumptions"]
    else:
        parts = ["PASS - Negative expected value or poor risk/reward"]

    price = report.current_price
    if isinstance(strategy, VerticalSpread) and strategy.breakevens:
        be = strategy.breakevens[0]
        if strategy.direction is SpreadDirection.BULLISH:
            parts.append(f"Needs {(be - price) / price * 100:.1f}% move to breakeven")
        else:
            parts.append(f"Needs {(price - be) / price * 100:.1f}% down move to breakeven")
    elif isinstance(strategy, IronCondor):
        low, high = strategy.breakevens
        parts.append(f"Profit if price stays between {low:.2f} and {high:.2f}")
    return ". ".join(parts)


def portfolio_pnl(strategies: Sequence[Strategy], prices: Sequence[float]) -> PortfolioPnL:
    """Expiration P&L of each strategy (at its own contract count) and the total, per price."""
    by_strategy = {
        s.strategy_id: [round(pnl_at(s, p), 2) for p in prices] for s in strategies
    }
    totals = [
        round(sum(values[i] for values in by_strategy.values()), 2) for i in range(len(prices))
    ]
    return PortfolioPnL(prices=list(prices), by_strategy=by_strategy, totals=totals)


class PnLProjector:
    """
    Builds P&L grids and full reports with configured defaults.

    Example:
        >>> projector = PnLProjector()
        >>> report = projector.report(spread, current_price=575.23)
        >>> report.recommendation
    """

    def __init__(self, config: Optional[ProjectionConfig] = None):
        self.config = config or ProjectionConfig()

    def grid(self, strategy: Strategy, current_price: float, contracts: Optional[int] = None) -> list[GridPoint]:
        return price_grid(strategy, current_price, self.config.price_range, self.config.num_points, contracts)

    def report(
        self,
        strategy: Strategy,
        current_price: float,
        contracts: Optional[int] = None,
        target_prices: Sequence[float] = (),
        days_to_expiry: int = 30,
    ) -> PnLReport:
        n = _contracts(strategy, contracts)
        report = PnLReport(
            strategy=strategy,
            contracts=n,
            current_price=current_price,
            scenarios=price_grid(
                strategy,
                current_price,
                self.config.report_price_range,
                self.config.report_num_points,
                n,
            ),
            breakevens=find_breakevens(strategy),
            expected_value=expected_value(strategy, n),
            time_decay=time_decay(strategy, min(days_to_expiry, 30), n),
            key_levels=key_levels(strategy, current_price),
            target_prices=[_grid_point(strategy, p, current_price, n) for p in target_prices],
        )
        report.recommendation = recommendation(report)
        logger.debug(f"P&L report for {strategy!r}: {report.recommendation}")
        return report
