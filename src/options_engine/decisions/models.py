"""
Decision Data Models and Enums

This module provides data models for the pre-trade validator and the
entry/exit decision engine.
Uses dataclasses with slots=True for performance (internal data, validated on entry).

Key patterns:
- dataclass(slots=True) for performance
- __post_init__ validation for data integrity
- Type hints for all fields
- Entry and exit actions are separate enums; Decision accepts either

Decision tree:
    Is this data internal to my process?
    ├─ Yes → Use dataclass (performance matters) ← WE ARE HERE
    └─ No → Use Pydantic (validation critical)
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from options_engine.analytics.probability import StrikeProbability
from options_engine.models import OptionRight, Strategy


class EntryAction(str, Enum):
    """Entry decision actions."""

    NO_ENTRY = "NO_ENTRY"
    ENTER_REDUCED = "ENTER_REDUCED"  # Enter at a fraction of normal size
    ENTER_NORMAL = "ENTER_NORMAL"


class ExitAction(str, Enum):
    """Hold/exit decision actions for an open position."""

    EXIT_IMMEDIATE = "EXIT_IMMEDIATE"
    MONITOR_CLOSELY = "MONITOR_CLOSELY"
    CONSIDER_EXIT = "CONSIDER_EXIT"
    HOLD = "HOLD"


DecisionAction = Union[EntryAction, ExitAction]


class Urgency(str, Enum):
    """
    Decision urgency enum.

    Indicates how quickly action should be taken.
    """

    CRITICAL = "CRITICAL"  # Act now (breach imminent)
    HIGH = "HIGH"  # Act soon (sustained breach, expiration)
    MEDIUM = "MEDIUM"  # Watch closely (first touch)
    LOW = "LOW"  # Informational


class CheckStatus(str, Enum):
    PASS = "PASS"
    WARNING = "WARNING"
    FAIL = "FAIL"


class CheckSeverity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    INFO = "INFO"


class ValidationStatus(str, Enum):
    """Overall pre-trade verdict, worst first."""

    REJECTED = "REJECTED"
    HIGH_RISK = "HIGH_RISK"
    MODERATE_RISK = "MODERATE_RISK"
    LOW_RISK = "LOW_RISK"
    APPROVED = "APPROVED"


class PriceTrend(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    SIDEWAYS = "SIDEWAYS"
    UNKNOWN = "UNKNOWN"


@dataclass(slots=True)
class Decision:
    """
    Decision data model.

    Attributes:
        action: EntryAction or ExitAction
        reason: Human-readable reason for the decision
        rule: Rule name that triggered
        urgency: How urgent this decision is
        confidence: Rule confidence in [0, 1]
        position_size_multiplier: Fraction of normal size (entry decisions)
        action_hint: Optional follow-up instruction ("Set 15-minute timer ...")
        metadata: Rule-specific data
        timestamp: When this decision was made

    Raises:
        ValueError: If action, urgency or confidence validation fails
    """

    action: DecisionAction
    reason: str
    rule: str
    urgency: Urgency = Urgency.LOW
    confidence: float = 1.0
    position_size_multiplier: float = 0.0
    action_hint: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.reason or not self.reason.strip():
            raise ValueError("Decision reason cannot be empty")

        if not self.rule or not self.rule.strip():
            raise ValueError("Decision rule cannot be empty")

        if not isinstance(self.urgency, Urgency):
            raise ValueError(f"Invalid urgency: {self.urgency}")

        if not isinstance(self.action, (EntryAction, ExitAction)):
            raise ValueError(f"Invalid action: {self.action}")

        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")

        if not isinstance(self.metadata, dict):
            raise ValueError("Metadata must be a dictionary")

    @property
    def is_entry(self) -> bool:
        return isinstance(self.action, EntryAction)

    def __repr__(self) -> str:
        return (
            f"Decision(action={self.action.value}, reason={self.reason}, "
            f"rule={self.rule}, urgency={self.urgency.value}, confidence={self.confidence:.2f})"
        )


@dataclass(slots=True)
class TradeStrikes:
    """Short/long strikes of a premium-selling trade (any may be absent)."""

    short_call: Optional[float] = None
    short_put: Optional[float] = None
    long_call: Optional[float] = None
    long_put: Optional[float] = None

    @classmethod
    def from_strategy(cls, strategy: Strategy) -> "TradeStrikes":
        def long_strike(right: OptionRight) -> Optional[float]:
            for leg in strategy.legs:
                if leg.right is right and leg.action.sign > 0:
                    return leg.strike
            return None

        return cls(
            short_call=strategy.short_strike(OptionRight.CALL),
            short_put=strategy.short_strike(OptionRight.PUT),
            long_call=long_strike(OptionRight.CALL),
            long_put=long_strike(OptionRight.PUT),
        )

    def items(self) -> list[tuple[str, float, OptionRight]]:
        """(name, strike, right) for every strike present."""
        pairs = [
            ("short_call", self.short_call, OptionRight.CALL),
            ("short_put", self.short_put, OptionRight.PUT),
            ("long_call", self.long_call, OptionRight.CALL),
            ("long_put", self.long_put, OptionRight.PUT),
        ]
        return [(name, strike, right) for name, strike, right in pairs if strike is not None]

    @property
    def has_short(self) -> bool:
        return self.short_call is not None or self.short_put is not None


@dataclass(slots=True)
class MarketContext:
    """
    Broad market conditions for pre-trade checks.

    Attributes:
        vix: VIX level
        market_change_pct: Index (SPY) change today in percent
    """

    vix: float = 0.0
    market_change_pct: float = 0.0


@dataclass(slots=True)
class ValidationCheck:
    name: str
    status: CheckStatus
    severity: CheckSeverity
    value: float
    threshold: float
    message: str

    def __repr__(self) -> str:
        return f"ValidationCheck({self.name}: {self.status.value}, value={self.value:.2f})"


@dataclass(slots=True)
class Recommendation:
    action: str
    confidence: str
    reason: str
    advice: list[str] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    key_metrics: dict[str, dict[str, str]] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationReport:
    """
    Pre-trade validation report.

    Attributes:
        checks: Checks in evaluation order
        probabilities: Strike probabilities keyed by strike role ("short_call", ...)
        overall_status: Verdict derived from the checks
        recommendation: Action, advice and key metrics for the verdict
    """

    symbol: str
    strategy_type: str
    expiration: date
    strikes: TradeStrikes
    underlying_price: float
    checks: list[ValidationCheck]
    probabilities: dict[str, StrikeProbability]
    overall_status: ValidationStatus
    recommendation: Recommendation
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def passed(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.status is CheckStatus.PASS]

    @property
    def warnings(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.status is CheckStatus.WARNING]

    @property
    def failures(self) -> list[ValidationCheck]:
        return [c for c in self.checks if c.status is CheckStatus.FAIL]

    @property
    def critical_failures(self) -> list[ValidationCheck]:
        return [c for c in self.failures if c.severity is CheckSeverity.CRITICAL]

    def summary(self) -> dict[str, int]:
        return {
            "total_checks": len(self.checks),
            "passed": len(self.passed),
            "warnings": len(self.warnings),
            "failures": len(self.failures),
            "critical_failures": len(self.critical_failures),
        }

    def __repr__(self) -> str:
        return (
            f"ValidationReport({self.symbol} {self.strategy_type}, "
            f"status={self.overall_status.value}, checks={len(self.checks)})"
        )


@dataclass(slots=True)
class ExitPosition:
    """
    Open premium-selling position as seen by the exit rules.

    Attributes:
        entry_credit: Credit received per share (profit target needs it)
    """

    symbol: str
    expiration: date
    short_call: Optional[float] = None
    short_put: Optional[float] = None
    entry_credit: Optional[float] = None

    def __post_init__(self):
        if self.short_call is None and self.short_put is None:
            raise ValueError("ExitPosition needs a short call or a short put")

    @classmethod
    def from_strategy(cls, strategy: Strategy) -> "ExitPosition":
        return cls(
            symbol=strategy.symbol,
            expiration=min(leg.expiration for leg in strategy.legs),
            short_call=strategy.short_strike(OptionRight.CALL),
            short_put=strategy.short_strike(OptionRight.PUT),
            entry_credit=strategy.net_credit,
        )

    def short_strikes(self) -> list[tuple[str, float]]:
        return [
            (label, strike)
            for label, strike in (("call", self.short_call), ("put", self.short_put))
            if strike is not None
        ]


@dataclass(slots=True)
class EntryContext:
    """Input to the entry rules."""

    validation: ValidationReport


@dataclass(slots=True)
class ExitContext:
    """
    Input to the exit rules.

    Attributes:
        history: Price history, already updated with current_price
        call_probability / put_probability: Current analytics for the short strikes
        dte: Days to expiration
    """

    position: ExitPosition
    current_price: float
    history: Any
    call_probability: Optional[StrikeProbability] = None
    put_probability: Optional[StrikeProbability] = None
    dte: Optional[int] = None


@dataclass(slots=True)
class EntryEvaluation:
    decision: Decision
    validation: ValidationReport

    @property
    def should_enter(self) -> bool:
        return self.decision.action is not EntryAction.NO_ENTRY


@dataclass(slots=True)
class ExitEvaluation:
    decision: Decision
    symbol: str
    current_price: float
    price_trend: PriceTrend
    call_probability: Optional[StrikeProbability] = None
    put_probability: Optional[StrikeProbability] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __repr__(self) -> str:
        return (
            f"ExitEvaluation({self.symbol} @ {self.current_price:.2f}, "
            f"{self.decision.action.value}, trend={self.price_trend.value})"
        )
