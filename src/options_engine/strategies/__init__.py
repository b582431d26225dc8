"""
Strategies Module

Candidate construction and ranking of multi-leg option strategies.
"""

from options_engine.strategies.generator import (
    ALL_KINDS,
    CalendarProfitPolicy,
    GenerationResult,
    StrategyGenerator,
    StrategyKind,
    StrikeSignals,
)
from options_engine.strategies.ranking import (
    RankedStrategy,
    RankingResult,
    StrategyRanker,
    expected_value,
)

__all__ = [
    "ALL_KINDS",
    "CalendarProfitPolicy",
    "GenerationResult",
    "RankedStrategy",
    "RankingResult",
    "StrategyGenerator",
    "StrategyKind",
    "StrategyRanker",
    "StrikeSignals",
    "expected_value",
]
