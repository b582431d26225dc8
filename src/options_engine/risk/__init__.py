"""
Risk Module

Transaction costs, position sizing and account-level circuit breakers.
"""

from options_engine.risk.circuit_breaker import (
    BreakerAction,
    BreakerCheckResult,
    BreakerEvent,
    RiskCircuitBreaker,
)
from options_engine.risk.costs import (
    CostAdjustment,
    EntryCost,
    ExitCost,
    RoundTripCosts,
    SpreadQuality,
    TransactionCostModel,
    TrueExpectedValue,
)
from options_engine.risk.sizing import (
    AllocationReport,
    PortfolioRiskAnalysis,
    PositionSizer,
    PositionSizing,
    allocation_report,
    analyze_portfolio_risk,
    kelly_fraction,
)

__all__ = [
    "AllocationReport",
    "BreakerAction",
    "BreakerCheckResult",
    "BreakerEvent",
    "CostAdjustment",
    "EntryCost",
    "ExitCost",
    "PortfolioRiskAnalysis",
    "PositionSizer",
    "PositionSizing",
    "RiskCircuitBreaker",
    "RoundTripCosts",
    "SpreadQuality",
    "TransactionCostModel",
    "TrueExpectedValue",
    "allocation_report",
    "analyze_portfolio_risk",
    "kelly_fraction",
]
