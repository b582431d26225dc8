"""
P&L Module

Deterministic expiration P&L projection and Monte Carlo simulation.
"""

from options_engine.pnl.monte_carlo import MonteCarloResult, MonteCarloSimulator
from options_engine.pnl.projection import (
    ExpectedValue,
    GridPoint,
    KeyLevel,
    LegPnL,
    PnLProjector,
    PnLReport,
    PortfolioPnL,
    TimeDecay,
    expected_value,
    find_breakevens,
    key_levels,
    leg_pnls,
    pnl_at,
    portfolio_pnl,
    price_grid,
    recommendation,
    time_decay,
)

__all__ = [
    "ExpectedValue",
    "GridPoint",
    "KeyLevel",
    "LegPnL",
    "MonteCarloResult",
    "MonteCarloSimulator",
    "PnLProjector",
    "PnLReport",
    "PortfolioPnL",
    "TimeDecay",
    "expected_value",
    "find_breakevens",
    "key_levels",
    "leg_pnls",
    "pnl_at",
    "portfolio_pnl",
    "price_grid",
    "recommendation",
    "time_decay",
]
