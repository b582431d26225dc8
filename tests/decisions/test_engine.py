"""
Unit Tests for DecisionEngine

Test cases:
- test_empty_engine_returns_hold: Engine with 0 rules returns HOLD decision
- test_priority_order: Rules execute by priority, not registration order
- test_first_wins_semantics: If rule 1 triggers, later rules never execute
- test_failing_rule_is_skipped: A rule that raises does not stop evaluation
- test_stats_tracking: Stats count how often each rule fired
- test_custom_fallback: Entry engines fall back to NO_ENTRY
"""

import pytest

from options_engine.decisions.engine import DecisionEngine
from options_engine.decisions.models import Decision, EntryAction, ExitAction, Urgency
from options_engine.decisions.rules import no_entry_fallback


# =============================================================================
# Mock Rule for Testing
# =============================================================================


class MockRule:
    """
    Mock rule for testing DecisionEngine.

    Attributes:
        priority: Rule priority (1-12)
        name: Rule name
        should_trigger: Whether this rule should trigger
        should_raise: Whether evaluate() raises
        call_count: Number of times evaluate() was called
    """

    def __init__(self, priority: int, name: str, should_trigger: bool = False, should_raise: bool = False):
        self.priority = priority
        self.name = name
        self.should_trigger = should_trigger
        self.should_raise = should_raise
        self.call_count = 0
        self.last_context = None

    def evaluate(self, context):
        self.call_count += 1
        self.last_context = context
        if self.should_raise:
            raise RuntimeError(f"{self.name} exploded")
        if self.should_trigger:
            return Decision(
                action=ExitAction.EXIT_IMMEDIATE,
                reason=f"Triggered {self.name}",
                rule=self.name,
                urgency=Urgency.CRITICAL,
            )
        return None


# =============================================================================
# Tests
# =============================================================================


class TestDecisionEngine:
    """Test DecisionEngine priority queue execution."""

    def test_empty_engine_returns_hold(self):
        decision = DecisionEngine().evaluate(object())

        assert decision.action == ExitAction.HOLD
        assert decision.rule == "none"
        assert decision.metadata["rules_evaluated"] == 0

    def test_priority_order(self):
        engine = DecisionEngine()
        engine.register_rule(MockRule(3, "third", should_trigger=True))
        engine.register_rule(MockRule(1, "first", should_trigger=True))
        engine.register_rule(MockRule(2, "second", should_trigger=True))

        assert engine.get_rules() == ["first", "second", "third"]
        assert engine.evaluate(object()).rule == "first"

    def test_first_wins_semantics(self):
        first = MockRule(1, "first", should_trigger=True)
        second = MockRule(2, "second", should_trigger=True)
        engine = DecisionEngine([first, second])

        engine.evaluate(object())

        assert first.call_count == 1
        assert second.call_count == 0

    def test_same_priority_keeps_registration_order(self):
        engine = DecisionEngine([MockRule(2, "a", should_trigger=True), MockRule(2, "b", should_trigger=True)])
        assert engine.evaluate(object()).rule == "a"

    def test_context_passed_through(self):
        rule = MockRule(1, "probe")
        context = {"price": 575.0}
        DecisionEngine([rule]).evaluate(context)
        assert rule.last_context is context

    def test_failing_rule_is_skipped(self):
        engine = DecisionEngine([
            MockRule(1, "broken", should_raise=True),
            MockRule(2, "working", should_trigger=True),
        ])
        assert engine.evaluate(object()).rule == "working"

    def test_no_trigger_returns_hold(self):
        decision = DecisionEngine([MockRule(1, "quiet"), MockRule(2, "silent")]).evaluate(object())
        assert decision.action == ExitAction.HOLD
        assert decision.metadata["rules_evaluated"] == 2

    def test_custom_fallback(self):
        engine = DecisionEngine([MockRule(1, "broken", should_raise=True)], fallback=no_entry_fallback)
        decision = engine.evaluate(object())
        assert decision.action == EntryAction.NO_ENTRY

    def test_stats_tracking(self):
        engine = DecisionEngine([MockRule(1, "hit", should_trigger=True), MockRule(2, "miss")])
        for _ in range(3):
            engine.evaluate(object())

        assert engine.get_rule_stats() == {"hit": 3, "miss": 0}
        engine.clear_stats()
        assert engine.get_rule_stats() == {}

    def test_replace_rule_with_same_name(self):
        engine = DecisionEngine([MockRule(1, "rule")])
        engine.register_rule(MockRule(5, "rule"))
        assert engine.rule_count == 1

    def test_unregister(self):
        engine = DecisionEngine([MockRule(1, "rule")])
        assert engine.unregister_rule("rule")
        assert not engine.unregister_rule("rule")

    @pytest.mark.parametrize("priority", [0, 13])
    def test_priority_out_of_range(self, priority):
        with pytest.raises(ValueError):
            DecisionEngine().register_rule(MockRule(priority, "bad"))


class TestDecision:
    """Test Decision validation."""

    def test_empty_reason(self):
        with pytest.raises(ValueError):
            Decision(action=ExitAction.HOLD, reason=" ", rule="r")

    def test_confidence_range(self):
        with pytest.raises(ValueError):
            Decision(action=ExitAction.HOLD, reason="ok", rule="r", confidence=1.5)

    def test_invalid_action(self):
        with pytest.raises(ValueError):
            Decision(action="HOLD", reason="ok", rule="r")

    def test_is_entry(self):
        assert Decision(action=EntryAction.ENTER_NORMAL, reason="ok", rule="r").is_entry
        assert not Decision(action=ExitAction.HOLD, reason="ok", rule="r").is_entry
