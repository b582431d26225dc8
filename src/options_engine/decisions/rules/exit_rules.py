"""
Exit Decision Rules

Hold/exit rules for an open short-premium position, driven by the live
price history around the short strikes.

Rules (priority order):
- BreachImminent (1): Within 2% of a short strike → EXIT_IMMEDIATE (CRITICAL)
- SustainedBreach (2): Beyond a short strike for > 30 min → EXIT_IMMEDIATE (HIGH)
- FirstTouch (3): First touch of a short strike → MONITOR_CLOSELY
- BouncedOffStrike (4): Touched and moved away → HOLD
- ProfitTarget (5): >= 50% of entry credit captured → CONSIDER_EXIT
- ApproachingExpiration (6): DTE <= 2 → MONITOR_CLOSELY (HIGH)
- NormalMonitoring (7): Otherwise → HOLD

Key patterns:
- Call side is checked before put side within each rule
- Level tolerance is DecisionConfig.level_tolerance_pct (percent of the strike)
"""

from typing import Optional

from options_engine.config import DecisionConfig
from options_engine.decisions.models import Decision, ExitAction, ExitContext, Urgency


class BreachImminent:
    """Price within breach_buffer_pct of a short strike (priority 1)."""

    priority = 1
    name = "breach_imminent"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.buffer = (config or DecisionConfig()).breach_buffer_pct

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        price = context.current_price
        position = context.position
        if position.short_call is not None and price >= position.short_call * (1 - self.buffer):
            strike, side = position.short_call, "call"
        elif position.short_put is not None and price <= position.short_put * (1 + self.buffer):
            strike, side = position.short_put, "put"
        else:
            return None
        return Decision(
            action=ExitAction.EXIT_IMMEDIATE,
            reason=(
                f"Stock at ${price:.2f}, within {self.buffer * 100:g}% of short {side} "
                f"${strike:g} - BREACH IMMINENT"
            ),
            rule=f"short_{side}_{self.name}",
            urgency=Urgency.CRITICAL,
            confidence=1.0,
            metadata={"strike": strike, "side": side},
        )


class SustainedBreach:
    """Price beyond a short strike and dwelling there (priority 2)."""

    priority = 2
    name = "sustained_breach"

    def __init__(self, config: Optional[DecisionConfig] = None):
        cfg = config or DecisionConfig()
        self.minutes = cfg.sustained_breach_minutes
        self.tolerance = cfg.level_tolerance_pct / 100

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        price = context.current_price
        position = context.position
        history = context.history
        for side, strike, beyond in (
            ("call", position.short_call, lambda k: price >= k),
            ("put", position.short_put, lambda k: price <= k),
        ):
            if strike is None or not beyond(strike):
                continue
            minutes = history.time_at_level(strike, self.tolerance)
            if minutes > self.minutes:
                where = "above" if side == "call" else "below"
                return Decision(
                    action=ExitAction.EXIT_IMMEDIATE,
                    reason=f"Stock {where} short {side} for {minutes:.0f} minutes - sustained breach",
                    rule=f"short_{side}_{self.name}",
                    urgency=Urgency.HIGH,
                    confidence=0.95,
                    metadata={"strike": strike, "minutes_at_level": minutes},
                )
        return None


class FirstTouch:
    priority = 3
    name = "first_touch"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.tolerance = (config or DecisionConfig()).level_tolerance_pct / 100

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        for side, strike in context.position.short_strikes():
            if context.history.is_first_touch(strike, self.tolerance):
                return Decision(
                    action=ExitAction.MONITOR_CLOSELY,
                    reason=f"First touch of short {side} - watch for bounce or sustained move",
                    rule=f"short_{side}_{self.name}",
                    urgency=Urgency.MEDIUM,
                    confidence=0.70,
                    action_hint="Set 15-minute timer, exit if no reversal",
                    metadata={"strike": strike},
                )
        return None


class BouncedOffStrike:
    priority = 4
    name = "bounced_off_strike"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.tolerance = (config or DecisionConfig()).level_tolerance_pct / 100

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        for side, strike in context.position.short_strikes():
            if context.history.has_bounced(strike, self.tolerance):
                return Decision(
                    action=ExitAction.HOLD,
                    reason=f"Price tested short {side} and bounced - technical level holding",
                    rule=f"short_{side}_{self.name}",
                    urgency=Urgency.LOW,
                    confidence=0.75,
                    metadata={"strike": strike},
                )
        return None


class ProfitTarget:
    """Share of the entry credit already captured (priority 5)."""

    priority = 5
    name = "profit_target"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.target_pct = (config or DecisionConfig()).profit_target_pct

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        credit = context.position.entry_credit
        quoted = [p for p in (context.call_probability, context.put_probability) if p is not None]
        if not credit or not quoted:
            return None
        current_value = sum(p.mid for p in quoted)
        profit_pct = (credit - current_value) / credit * 100
        if profit_pct < self.target_pct:
            return None
        return Decision(
            action=ExitAction.CONSIDER_EXIT,
            reason=f"Position at {self.target_pct:g}%+ profit - consider taking gains",
            rule=self.name,
            urgency=Urgency.LOW,
            confidence=0.60,
            action_hint="Close position or adjust to lock in profits",
            metadata={"profit_pct": round(profit_pct, 2), "current_value": current_value},
        )


class ApproachingExpiration:
    priority = 6
    name = "approaching_expiration"

    def __init__(self, config: Optional[DecisionConfig] = None):
        self.warning_dte = (config or DecisionConfig()).expiration_warning_dte

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        if context.dte is None or context.dte > self.warning_dte:
            return None
        return Decision(
            action=ExitAction.MONITOR_CLOSELY,
            reason=f"Only {context.dte} days to expiration - high gamma risk",
            rule=self.name,
            urgency=Urgency.HIGH,
            confidence=0.85,
            action_hint="Consider closing to avoid assignment risk",
            metadata={"dte": context.dte},
        )


class NormalMonitoring:
    """Default exit (priority 7)."""

    priority = 7
    name = "normal_monitoring"

    def evaluate(self, context: ExitContext) -> Optional[Decision]:
        return Decision(
            action=ExitAction.HOLD,
            reason="All systems nominal - position within acceptable parameters",
            rule=self.name,
            urgency=Urgency.LOW,
            confidence=0.80,
        )
