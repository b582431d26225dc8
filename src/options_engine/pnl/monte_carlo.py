"""
Monte Carlo P&L Simulation

Random-walk simulation of underlying price and implied volatility, with
P&L from the portfolio Greek approximation.

Each simulated day draws (u - 0.5) * 2 * vol for both the price return and
the IV change (u uniform on [0, 1)). Outcomes are sorted ascending before
the statistics are read off.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from options_engine.config import MonteCarloConfig
from options_engine.exceptions import InvalidRequestError
from options_engine.portfolio.greeks import PortfolioGreeks, approximate_pnl

BREAKEVEN_BAND = 10.0


@dataclass(slots=True)
class MonteCarloResult:
    """
    Simulation statistics (dollars).

    Attributes:
        var_95: 5th percentile outcome (r[floor(n * 0.05)])
        var_99: 1st percentile outcome (r[floor(n * 0.01)])
        cvar_95: Mean of the worst 5% of outcomes
        breakeven: Outcomes with |pnl| < 10
    """

    simulations_run: int
    time_horizon_days: int
    mean_pnl: float
    median_pnl: float
    best_case: float
    worst_case: float
    var_95: float
    var_99: float
    cvar_95: float
    profitable: int
    breakeven: int
    losing: int

    @property
    def interpretation(self) -> str:
        return (
            f"95% confident portfolio won't lose more than ${abs(self.var_95):.0f} "
            f"over next {self.time_horizon_days} days"
        )

    def __repr__(self) -> str:
        return (
            f"MonteCarloResult(n={self.simulations_run}, mean={self.mean_pnl:.2f}, "
            f"VaR95={self.var_95:.2f}, CVaR95={self.cvar_95:.2f})"
        )


class MonteCarloSimulator:
    """
    Monte Carlo simulator over portfolio Greeks.

    Pass a seeded numpy Generator (or set MonteCarloConfig.seed) for
    reproducible runs.

    Example:
        >>> sim = MonteCarloSimulator(rng=np.random.default_rng(7))
        >>> result = sim.simulate(greeks, underlying_price=575.23)
        >>> result.var_95
    """

    def __init__(self, config: Optional[MonteCarloConfig] = None, rng: Optional[np.random.Generator] = None):
        self.config = config or MonteCarloConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

    def simulate_outcomes(
        self,
        greeks: PortfolioGreeks,
        underlying_price: float,
        num_simulations: Optional[int] = None,
        days_forward: Optional[int] = None,
        daily_volatility: Optional[float] = None,
        iv_volatility: Optional[float] = None,
    ) -> np.ndarray:
        """
        Sorted P&L outcomes, one per simulation.

        Raises:
            InvalidRequestError: If num_simulations < 1, days_forward < 0 or
                underlying_price <= 0
        """
        cfg = self.config
        n = num_simulations if num_simulations is not None else cfg.num_simulations
        days = days_forward if days_forward is not None else cfg.days_forward
        vol = daily_volatility if daily_volatility is not None else cfg.daily_volatility
        iv_vol = iv_volatility if iv_volatility is not None else cfg.iv_volatility
        if n < 1:
            raise InvalidRequestError(f"num_simulations must be >= 1, got {n}", field="num_simulations")
        if days < 0:
            raise InvalidRequestError(f"days_forward must be >= 0, got {days}", field="days_forward")
        if underlying_price <= 0:
            raise InvalidRequestError(
                f"underlying_price must be positive, got {underlying_price}", field="underlying_price"
            )

        moves = ((self.rng.random((n, days)) - 0.5) * 2 * vol).sum(axis=1)
        iv_changes = ((self.rng.random((n, days)) - 0.5) * 2 * iv_vol).sum(axis=1)

        outcomes = approximate_pnl(greeks, underlying_price, moves, iv_changes, days)
        return np.sort(np.asarray(outcomes, dtype=float))

    def simulate(
        self,
        greeks: PortfolioGreeks,
        underlying_price: float,
        num_simulations: Optional[int] = None,
        days_forward: Optional[int] = None,
        daily_volatility: Optional[float] = None,
        iv_volatility: Optional[float] = None,
    ) -> MonteCarloResult:
        days = days_forward if days_forward is not None else self.config.days_forward
        r = self.simulate_outcomes(
            greeks, underlying_price, num_simulations, days, daily_volatility, iv_volatility
        )
        n = len(r)
        tail = r[: max(1, math.floor(n * 0.05))]

        result = MonteCarloResult(
            simulations_run=n,
            time_horizon_days=days,
            mean_pnl=float(r.mean()),
            median_pnl=float(r[n // 2]),
            best_case=float(r[-1]),
            worst_case=float(r[0]),
            var_95=float(r[math.floor(n * 0.05)]),
            var_99=float(r[math.floor(n * 0.01)]),
            cvar_95=float(tail.mean()),
            profitable=int((r > 0).sum()),
            breakeven=int((np.abs(r) < BREAKEVEN_BAND).sum()),
            losing=int((r < 0).sum()),
        )
        logger.debug(f"Monte Carlo: {result!r}")
        return result
