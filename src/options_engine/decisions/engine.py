"""
Decision Engine with Priority Queue Execution

This module provides the DecisionEngine class that evaluates decision rules
in priority order (1-12) using first-wins semantics.

Key patterns:
- Priority queue: Rules sorted by priority (1-12), execute in order
- First-wins semantics: Stop at first rule that triggers
- Rule registration: Register rules dynamically (not hardcoded)
- Stats tracking: Track how often each rule triggers
- Synchronous: rules are pure functions of their context; only the
  price monitor loop is async
"""

from typing import Any, Callable, Optional, Protocol, runtime_checkable

from loguru import logger

from options_engine.decisions.models import Decision, ExitAction, Urgency


@runtime_checkable
class Rule(Protocol):
    """
    Rule protocol for decision rules.

    Any class that implements this interface can be registered as a rule.
    Uses Protocol for duck-typing (flexible, no inheritance required).

    Attributes:
        priority: Rule priority (1-12, lower = higher priority)
        name: Unique rule name/identifier

    Methods:
        evaluate: Evaluate rule and return decision or None
    """

    priority: int  # 1-12
    name: str

    def evaluate(self, context: Any) -> Optional[Decision]:
        """
        Evaluate rule and return decision if triggered.

        Args:
            context: EntryContext or ExitContext

        Returns:
            Decision if rule triggers, None otherwise
        """
        ...


def hold_fallback(context: Any) -> Decision:
    return Decision(
        action=ExitAction.HOLD,
        reason="No rule triggered",
        rule="none",
        urgency=Urgency.LOW,
    )


class DecisionEngine:
    """
    Evaluate decision rules in priority order.

    **Priority Queue Execution:**
    - Rules sorted by priority (1-12, lower = higher priority)
    - Execute rules in order, return first non-None result
    - If no rules trigger, return the fallback decision (HOLD by default)

    **Error Handling:**
    - A rule that raises is logged and skipped; evaluation continues

    Attributes:
        _rules: List of rules sorted by priority
        _stats: Dict tracking rule trigger counts

    Example:
        ```python
        engine = DecisionEngine(default_exit_rules())
        decision = engine.evaluate(exit_context)
        ```
    """

    def __init__(
        self,
        rules: Optional[list[Rule]] = None,
        fallback: Callable[[Any], Decision] = hold_fallback,
    ):
        self._rules: list[Rule] = []
        self._stats: dict[str, int] = {}
        self._fallback = fallback

        if rules:
            for rule in rules:
                self.register_rule(rule)

        logger.debug("DecisionEngine initialized")

    def register_rule(self, rule: Rule) -> None:
        """
        Register a rule with the engine.

        Rules are sorted by priority after registration.
        If rule with same name exists, it will be replaced.

        Raises:
            ValueError: If rule priority is not 1-12
        """
        if rule.priority < 1 or rule.priority > 12:
            raise ValueError(f"Rule priority must be 1-12, got {rule.priority}")

        self._rules = [r for r in self._rules if r.name != rule.name]
        self._rules.append(rule)
        # Stable sort keeps registration order within a priority
        self._rules.sort(key=lambda r: r.priority)

        if rule.name not in self._stats:
            self._stats[rule.name] = 0

        logger.debug(
            f"Registered rule: {rule.name} (priority {rule.priority}, "
            f"{len(self._rules)} total rules)"
        )

    def unregister_rule(self, name: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.name != name]
        return len(self._rules) < before

    def evaluate(self, context: Any) -> Decision:
        """
        Evaluate all rules in priority order.

        First rule to trigger wins. Returns the fallback if no rules trigger.
        """
        for rule in self._rules:
            try:
                decision = rule.evaluate(context)

                if decision is not None:
                    self._stats[rule.name] = self._stats.get(rule.name, 0) + 1

                    logger.info(
                        f"Rule triggered: {rule.name} (priority {rule.priority}) "
                        f"→ {decision.action.value}: {decision.reason}"
                    )

                    return decision

            except Exception as e:
                logger.error(f"Error evaluating rule {rule.name}: {e}")
                continue

        decision = self._fallback(context)
        decision.metadata.setdefault("rules_evaluated", len(self._rules))
        return decision

    def get_rule_stats(self) -> dict[str, int]:
        """
        Get rule trigger statistics.

        Returns:
            Dict mapping rule name to trigger count
        """
        return self._stats.copy()

    def clear_stats(self) -> None:
        """Clear all rule statistics."""
        self._stats.clear()
        logger.debug("Rule statistics cleared")

    @property
    def rule_count(self) -> int:
        """Get number of registered rules."""
        return len(self._rules)

    def get_rules(self) -> list[str]:
        """Get list of registered rule names in priority order."""
        return [rule.name for rule in self._rules]
