"""
Portfolio Module

Net Greek aggregation, Greek-based scenario P&L and stress testing.
"""

from options_engine.portfolio.greeks import (
    GreekLimits,
    PortfolioGreeks,
    PortfolioGreeksAggregator,
    PortfolioWarning,
    approximate_pnl,
    ScenarioResult,
    scenario_pnl,
    strategy_greeks_frame,
)
from options_engine.portfolio.stress import (
    STRESS_SCENARIOS,
    StressRecommendation,
    StressScenario,
    StressTestReport,
    categorize_severity,
    create_custom_scenario,
    reference_value,
    run_stress_test,
)

__all__ = [
    "GreekLimits",
    "PortfolioGreeks",
    "PortfolioGreeksAggregator",
    "PortfolioWarning",
    "STRESS_SCENARIOS",
    "ScenarioResult",
    "StressRecommendation",
    "StressScenario",
    "StressTestReport",
    "approximate_pnl",
    "categorize_severity",
    "create_custom_scenario",
    "reference_value",
    "run_stress_test",
    "scenario_pnl",
    "strategy_greeks_frame",
]
