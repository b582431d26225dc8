"""
Portfolio Greeks Aggregation

This module aggregates leg Greeks across strategies into net portfolio
exposure and approximates scenario P&L from those Greeks.

Key patterns:
- dataclass(slots=True) for performance (internal data, validated on entry)
- Polars group_by for per-symbol / per-strategy breakdowns
- Net Greek = sum(leg greek * sign * contracts * 100)
- Greek-based scenario P&L shared by stress tests and Monte Carlo

Decision tree:
    Is this data internal to my process?
    ├─ Yes → Use dataclass (performance matters) ← WE ARE HERE
    └─ No → Use Pydantic (validation critical)
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

import polars as pl
from loguru import logger

from options_engine.models import CONTRACT_MULTIPLIER, Strategy

GREEK_COLUMNS = ("delta", "gamma", "theta", "vega", "rho")


@dataclass(slots=True)
class GreekLimits:
    """
    Portfolio Greek limits.

    Attributes:
        max_delta: Maximum |net delta| (default: 1000)
        max_gamma: Maximum |net gamma| (default: 50)
        max_vega: Maximum |net vega| (default: 1000)
        min_theta: Optional floor on net theta (default: None = no limit)
    """

    max_delta: float = 1000.0
    max_gamma: float = 50.0
    max_vega: float = 1000.0
    min_theta: Optional[float] = None


@dataclass(slots=True)
class PortfolioGreeks:
    """
    Net portfolio Greeks in position dollars.

    Attributes:
        delta: Net delta (share equivalents x 100)
        gamma: Net gamma
        theta: Net theta (dollars per day)
        vega: Net vega (dollars per volatility point)
        rho: Net rho
        position_count: Number of strategies aggregated
        delta_per_symbol: Delta breakdown by underlying symbol
        by_strategy: Net Greeks per strategy id
    """

    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0
    position_count: int = 0
    delta_per_symbol: dict[str, float] = field(default_factory=dict)
    by_strategy: list[dict] = field(default_factory=list)

    def __post_init__(self):
        for name in GREEK_COLUMNS:
            value = getattr(self, name)
            if math.isnan(value):
                raise ValueError(f"Portfolio {name} is NaN")
        if self.position_count < 0:
            raise ValueError(f"position_count {self.position_count} must be >= 0")

    @property
    def directional_bias(self) -> str:
        if self.delta > 100:
            return "bullish"
        if self.delta < -100:
            return "bearish"
        return "neutral"

    @property
    def volatility_bias(self) -> str:
        if self.vega > 100:
            return "long_volatility"
        if self.vega < -100:
            return "short_volatility"
        return "neutral"

    @property
    def theta_bias(self) -> str:
        if self.theta > 10:
            return "earning_theta"
        if self.theta < -10:
            return "losing_theta"
        return "neutral"

    @property
    def delta_equivalent_shares(self) -> int:
        return round(self.delta / 100)

    @property
    def gamma_risk(self) -> str:
        if abs(self.gamma) > 10:
            return "High - Delta will change significantly with price moves"
        return "Low - Delta relatively stable"

    def interpretation(self) -> str:
        if self.position_count == 0:
            return "No positions in portfolio"
        parts = []
        if abs(self.delta) < 50:
            parts.append("Portfolio is delta-neutral (no directional bias)")
        elif self.delta > 0:
            parts.append(f"Portfolio is net long {round(self.delta / 100)} shares (bullish bias)")
        else:
            parts.append(f"Portfolio is net short {round(abs(self.delta) / 100)} shares (bearish bias)")

        if self.theta > 10:
            parts.append(f"Earning ${self.theta:.0f}/day from time decay")
        elif self.theta < -10:
            parts.append(f"Losing ${abs(self.theta):.0f}/day to time decay (need price movement)")

        if self.vega > 100:
            parts.append("Long volatility: gains if IV rises")
        elif self.vega < -100:
            parts.append("Short volatility: gains if IV falls")

        if self.gamma > 5:
            parts.append("Positive gamma: delta moves with price (accelerating profits)")
        elif self.gamma < -5:
            parts.append("Negative gamma: delta moves against you (accelerating losses)")
        return ". ".join(parts)

    def __repr__(self) -> str:
        return (
            f"PortfolioGreeks(delta={self.delta:.2f}, gamma={self.gamma:.4f}, "
            f"theta={self.theta:.2f}, vega={self.vega:.2f}, positions={self.position_count})"
        )


@dataclass(slots=True)
class PortfolioWarning:
    severity: str
    type: str
    message: str
    recommendation: str


@dataclass(slots=True)
class ScenarioResult:
    """
    Greek-approximated P&L for one market scenario.

    Attributes:
        name: Scenario name
        price_move_pct: Underlying move as a fraction (-0.05 = -5%)
        iv_change_pts: Implied volatility change in points
        days: Days elapsed
        total: delta_pnl + gamma_pnl + theta_pnl + vega_pnl
        severity: Set by stress tests (None for a single scenario)
    """

    name: str
    price_move_pct: float
    iv_change_pts: float
    days: float
    delta_pnl: float
    gamma_pnl: float
    theta_pnl: float
    vega_pnl: float
    description: str = ""
    severity: Optional[str] = None

    @property
    def total(self) -> float:
        return self.delta_pnl + self.gamma_pnl + self.theta_pnl + self.vega_pnl

    @property
    def interpretation(self) -> str:
        if self.total > 0:
            return f"Portfolio would gain approximately ${self.total:.2f} under this scenario"
        return f"Portfolio would lose approximately ${abs(self.total):.2f} under this scenario"


def scenario_pnl(
    greeks: PortfolioGreeks,
    underlying_price: float,
    price_move_pct: float = 0.0,
    iv_change_pts: float = 0.0,
    days: float = 0.0,
    name: str = "custom",
    description: str = "",
) -> ScenarioResult:
    """
    Second-order Greek approximation of portfolio P&L.

    delta = D * (m * S), gamma = 0.5 * G * (m * S)^2, theta = T * days,
    vega = V * iv / 100, with m the fractional price move.
    """
    move = price_move_pct * underlying_price
    return ScenarioResult(
        name=name,
        price_move_pct=price_move_pct,
        iv_change_pts=iv_change_pts,
        days=days,
        delta_pnl=greeks.delta * move,
        gamma_pnl=0.5 * greeks.gamma * move ** 2,
        theta_pnl=greeks.theta * days,
        vega_pnl=greeks.vega * iv_change_pts / 100,
        description=description,
    )


def strategy_greeks_frame(strategies: Iterable[Strategy]) -> pl.DataFrame:
    """One row per leg with signed, contract-scaled Greeks."""
    rows = []
    for strategy in strategies:
        for leg in strategy.legs:
            scale = leg.action.sign * leg.contracts * CONTRACT_MULTIPLIER
            g = leg.greeks
            rows.append({
                "strategy_id": strategy.strategy_id,
                "symbol": strategy.symbol,
                "strategy_type": strategy.strategy_type.value,
                "delta": (g.delta if g else 0.0) * scale,
                "gamma": (g.gamma if g else 0.0) * scale,
                "theta": (g.theta if g else 0.0) * scale,
                "vega": (g.vega if g else 0.0) * scale,
                "rho": (g.rho if g else 0.0) * scale,
            })
    schema = {"strategy_id": pl.Utf8, "symbol": pl.Utf8, "strategy_type": pl.Utf8}
    schema.update({name: pl.Float64 for name in GREEK_COLUMNS})
    return pl.DataFrame(rows, schema=schema)


class PortfolioGreeksAggregator:
    """
    Aggregates Greeks across strategies and checks them against limits.

    Example:
        >>> aggregator = PortfolioGreeksAggregator()
        >>> greeks = aggregator.aggregate([spread, condor])
        >>> allowed, reasons = aggregator.check_limits(greeks)
    """

    def __init__(self, limits: Optional[GreekLimits] = None):
        self.limits = limits or GreekLimits()
        self._log = logger.bind(component="portfolio_greeks")

    def aggregate(self, strategies: Iterable[Strategy]) -> PortfolioGreeks:
        strategies = list(strategies)
        df = strategy_greeks_frame(strategies)
        if df.is_empty():
            return PortfolioGreeks()

        totals = df.select([pl.col(c).sum() for c in GREEK_COLUMNS]).row(0, named=True)

        per_symbol = df.group_by("symbol").agg(pl.col("delta").sum()).sort("symbol")
        per_strategy = (
            df.group_by("strategy_id", "symbol", "strategy_type", maintain_order=True)
            .agg([pl.col(c).sum() for c in GREEK_COLUMNS])
        )

        greeks = PortfolioGreeks(
            delta=totals["delta"],
            gamma=totals["gamma"],
            theta=totals["theta"],
            vega=totals["vega"],
            rho=totals["rho"],
            position_count=len(strategies),
            delta_per_symbol=dict(zip(per_symbol["symbol"].to_list(), per_symbol["delta"].to_list())),
            by_strategy=per_strategy.to_dicts(),
        )
        self._log.debug(f"Aggregated {greeks!r}")
        return greeks

    def check_limits(self, greeks: PortfolioGreeks) -> tuple[bool, list[str]]:
        """
        Check net Greeks against limits.

        Returns:
            Tuple of (allowed, reasons) where reasons lists every exceeded limit
        """
        limits = self.limits
        reasons = []
        if abs(greeks.delta) > limits.max_delta:
            reasons.append(f"Net delta {greeks.delta:.0f} exceeds limit of ±{limits.max_delta:g}")
        if abs(greeks.gamma) > limits.max_gamma:
            reasons.append(f"Net gamma {greeks.gamma:.2f} exceeds limit of ±{limits.max_gamma:g}")
        if limits.min_theta is not None and greeks.theta < limits.min_theta:
            reasons.append(f"Net theta {greeks.theta:.2f} below limit of {limits.min_theta:g}")
        if abs(greeks.vega) > limits.max_vega:
            reasons.append(f"Net vega {greeks.vega:.0f} exceeds limit of ±{limits.max_vega:g}")

        for reason in reasons:
            self._log.warning(f"Greek limit exceeded: {reason}")
        return not reasons, reasons

    def warnings(self, greeks: PortfolioGreeks, vix_level: Optional[float] = None) -> list[PortfolioWarning]:
        found = []
        if abs(greeks.delta) > 500:
            found.append(PortfolioWarning(
                severity="HIGH",
                type="DELTA_RISK",
                message=f"High directional exposure: {round(abs(greeks.delta) / 100)} share equivalent",
                recommendation="Consider hedging with opposite delta position or reducing exposure",
            ))
        if greeks.gamma < -10 and vix_level is not None and vix_level > 25:
            found.append(PortfolioWarning(
                severity="CRITICAL",
                type="GAMMA_RISK",
                message="Negative gamma during high volatility - risk of accelerating losses",
                recommendation="Reduce short option positions or add long options for gamma protection",
            ))
        if greeks.theta < -50:
            found.append(PortfolioWarning(
                severity="MEDIUM",
                type="THETA_DECAY",
                message=f"Losing ${abs(greeks.theta):.0f}/day to time decay",
                recommendation="Need directional move soon or consider closing long option positions",
            ))
        if abs(greeks.vega) > 500:
            direction = "long" if greeks.vega > 0 else "short"
            found.append(PortfolioWarning(
                severity="MEDIUM",
                type="VEGA_RISK",
                message=f"High vega exposure ({direction} volatility): ${abs(greeks.vega):.0f} per 1% IV move",
                recommendation=(
                    "Portfolio benefits from IV increase but hurt by IV crush"
                    if direction == "long"
                    else "Portfolio benefits from IV decrease but hurt by volatility spikes"
                ),
            ))
        if greeks.delta > 200 and greeks.theta < -30:
            found.append(PortfolioWarning(
                severity="LOW",
                type="CONFLICTING_EXPOSURE",
                message="Bullish directional bet (positive delta) but losing theta - need upward move",
                recommendation="Monitor closely - time is working against this position",
            ))
        return found


def approximate_pnl(greeks: PortfolioGreeks, underlying_price: float, price_move_pct, iv_change_pts, days):
    """Total of scenario_pnl; accepts scalars or numpy arrays for the move and IV change."""
    move = price_move_pct * underlying_price
    return (
        greeks.delta * move
        + 0.5 * greeks.gamma * move ** 2
        + greeks.theta * days
        + greeks.vega * iv_change_pts / 100
    )
