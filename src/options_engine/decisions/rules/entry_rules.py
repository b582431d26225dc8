"""
Entry Decision Rules

Hard stops and sizing rules evaluated against a pre-trade validation report.

Rules (priority order):
- ValidationRejected (1): Critical validation failure → NO_ENTRY
- ExtremeTouchProbability (2): Short strike touch > 75% → NO_ENTRY
- StrikeWithinATR (3): Short strike within 1.5 ATR → NO_ENTRY
- ExtremeVolatility (4): IV > 90% → NO_ENTRY
- HighRiskStatus (5): HIGH_RISK verdict → NO_ENTRY
- ModerateRiskReduce (6): MODERATE_RISK verdict → ENTER_REDUCED at 50%
- LowRiskProceed (7): LOW_RISK verdict → ENTER_NORMAL at 75%
- AllClear (8): Otherwise → ENTER_NORMAL at 100%, confidence from the check tally

Key patterns:
- Thresholds from DecisionConfig
- Each rule returns a Decision or None; the engine stops at the first hit
"""

from typing import Optional

from options_engine.config import DecisionConfig
from options_engine.decisions.models import (
    Decision,
    EntryAction,
    EntryContext,
    Urgency,
    ValidationReport,
    ValidationStatus,
)


def _short_probabilities(validation: ValidationReport) -> list:
    return [
        p for p in (
            validation.probabilities.get("short_call"),
            validation.probabilities.get("short_put"),
        )
        if p is not None
    ]


def entry_confidence(validation: ValidationReport) -> float:
    """Pass rate minus 0.1 per failure, plus 0.1 for a clean sweep, clamped to [0, 1]."""
    summary = validation.summary()
    total = summary["total_checks"]
    if total == 0:
        return 0.0
    confidence = summary["passed"] / total - summary["failures"] * 0.1
    if summary["failures"] == 0 and summary["warnings"] == 0:
        confidence += 0.1
    return max(0.0, min(1.0, confidence))


class ValidationRejected:
    """Critical validation failure (priority 1)."""

    priority = 1
    name = "critical_validation_failures"

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        validation = context.validation
        if validation.overall_status is not ValidationStatus.REJECTED:
            return None
        return Decision(
            action=EntryAction.NO_ENTRY,
            reason=validation.recommendation.reason,
            rule=self.name,
            urgency=Urgency.HIGH,
            confidence=1.0,
            metadata={"critical_failures": [c.name for c in validation.critical_failures]},
        )


class ExtremeTouchProbability:
    """Short strike likely to be tested (priority 2)."""

    priority = 2
    name = "extreme_probability_of_touch"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.max_prob_touch = (config or DecisionConfig()).max_prob_touch

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        touches = [p.prob_touch for p in _short_probabilities(context.validation)]
        if not any(t > self.max_prob_touch for t in touches):
            return None
        return Decision(
            action=EntryAction.NO_ENTRY,
            reason=(
                f"Strike has >{self.max_prob_touch * 100:.0f}% chance of being tested "
                "- unacceptable risk"
            ),
            rule=self.name,
            urgency=Urgency.HIGH,
            confidence=0.95,
            metadata={"prob_touch": max(touches)},
        )


class StrikeWithinATR:
    """Short strike inside the typical daily range (priority 3)."""

    priority = 3
    name = "strike_within_atr"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.min_atr_distance = (config or DecisionConfig()).min_atr_distance

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        distances = [
            p.distance_in_atr for p in _short_probabilities(context.validation) if p.atr > 0
        ]
        if not any(d < self.min_atr_distance for d in distances):
            return None
        return Decision(
            action=EntryAction.NO_ENTRY,
            reason=f"Strikes within {self.min_atr_distance:g} ATR - too close to current price",
            rule=self.name,
            urgency=Urgency.HIGH,
            confidence=0.90,
            metadata={"distance_in_atr": min(distances)},
        )


class ExtremeVolatility:
    """Implied volatility too high to sell premium (priority 4)."""

    priority = 4
    name = "extreme_volatility"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.max_implied_volatility = (config or DecisionConfig()).max_implied_volatility

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        probabilities = _short_probabilities(context.validation)
        if not probabilities:
            return None
        iv = probabilities[0].implied_volatility
        if iv <= self.max_implied_volatility:
            return None
        return Decision(
            action=EntryAction.NO_ENTRY,
            reason=(
                f"IV >{self.max_implied_volatility * 100:.0f}% - EXTREME volatility, "
                "do not sell options"
            ),
            rule=self.name,
            urgency=Urgency.HIGH,
            confidence=0.95,
            metadata={"implied_volatility": iv},
        )


class HighRiskStatus:
    priority = 5
    name = "high_risk_status"

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        if context.validation.overall_status is not ValidationStatus.HIGH_RISK:
            return None
        return Decision(
            action=EntryAction.NO_ENTRY,
            reason="Multiple high-risk factors present",
            rule=self.name,
            urgency=Urgency.MEDIUM,
            confidence=0.85,
        )


class ModerateRiskReduce:
    priority = 6
    name = "moderate_risk_reduce_size"

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        if context.validation.overall_status is not ValidationStatus.MODERATE_RISK:
            return None
        return Decision(
            action=EntryAction.ENTER_REDUCED,
            reason="Some risk factors present - use 50% position size",
            rule=self.name,
            urgency=Urgency.LOW,
            confidence=0.70,
            position_size_multiplier=0.5,
        )


class LowRiskProceed:
    priority = 7
    name = "low_risk_proceed_with_caution"

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        if context.validation.overall_status is not ValidationStatus.LOW_RISK:
            return None
        return Decision(
            action=EntryAction.ENTER_NORMAL,
            reason="Minor concerns but overall acceptable",
            rule=self.name,
            urgency=Urgency.LOW,
            confidence=0.80,
            position_size_multiplier=0.75,
        )


class AllClear:
    """Default entry (priority 8): every check passed."""

    priority = 8
    name = "all_clear"

    def evaluate(self, context: EntryContext) -> Optional[Decision]:
        return Decision(
            action=EntryAction.ENTER_NORMAL,
            reason="All validation checks passed - excellent setup",
            rule=self.name,
            urgency=Urgency.LOW,
            confidence=entry_confidence(context.validation),
            position_size_multiplier=1.0,
        )


def no_entry_fallback(context: EntryContext) -> Decision:
    """Used when no entry rule produced a decision (all raised)."""
    return Decision(
        action=EntryAction.NO_ENTRY,
        reason="No entry rule produced a decision",
        rule="none",
        urgency=Urgency.LOW,
        confidence=0.0,
    )
