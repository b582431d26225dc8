"""
Decision rules package.

Rule lists are built here and registered with a DecisionEngine by the
caller; the engine itself hardcodes nothing.
"""

from typing import Optional

from options_engine.config import DecisionConfig
from options_engine.decisions.rules.entry_rules import (
    AllClear,
    ExtremeTouchProbability,
    ExtremeVolatility,
    HighRiskStatus,
    LowRiskProceed,
    ModerateRiskReduce,
    StrikeWithinATR,
    ValidationRejected,
    entry_confidence,
    no_entry_fallback,
)
from options_engine.decisions.rules.exit_rules import (
    ApproachingExpiration,
    BouncedOffStrike,
    BreachImminent,
    FirstTouch,
    NormalMonitoring,
    ProfitTarget,
    SustainedBreach,
)


def default_entry_rules(config: Optional[DecisionConfig] = None) -> list:
    return [
        ValidationRejected(),
        ExtremeTouchProbability(config),
        StrikeWithinATR(config),
        ExtremeVolatility(config),
        HighRiskStatus(),
        ModerateRiskReduce(),
        LowRiskProceed(),
        AllClear(),
    ]


def default_exit_rules(config: Optional[DecisionConfig] = None) -> list:
    return [
        BreachImminent(config),
        SustainedBreach(config),
        FirstTouch(config),
        BouncedOffStrike(config),
        ProfitTarget(config),
        ApproachingExpiration(config),
        NormalMonitoring(),
    ]


__all__ = [
    "AllClear",
    "ApproachingExpiration",
    "BouncedOffStrike",
    "BreachImminent",
    "ExtremeTouchProbability",
    "ExtremeVolatility",
    "FirstTouch",
    "HighRiskStatus",
    "LowRiskProceed",
    "ModerateRiskReduce",
    "NormalMonitoring",
    "ProfitTarget",
    "StrikeWithinATR",
    "SustainedBreach",
    "ValidationRejected",
    "default_entry_rules",
    "default_exit_rules",
    "entry_confidence",
    "no_entry_fallback",
]
