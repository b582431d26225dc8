"""
Decision Engine Module

This module provides pre-trade validation and rule-based entry/exit
decisions driven by strike probabilities and live price history.
"""

from options_engine.decisions.engine import DecisionEngine, Rule
from options_engine.decisions.evaluator import DecisionEvaluator
from options_engine.decisions.models import (
    CheckSeverity,
    CheckStatus,
    Decision,
    EntryAction,
    EntryContext,
    EntryEvaluation,
    ExitAction,
    ExitContext,
    ExitEvaluation,
    ExitPosition,
    MarketContext,
    PriceTrend,
    Recommendation,
    TradeStrikes,
    Urgency,
    ValidationCheck,
    ValidationReport,
    ValidationStatus,
)
from options_engine.decisions.monitor import MonitorStats, PriceMonitor
from options_engine.decisions.price_history import PriceHistory, PricePoint
from options_engine.decisions.rules import default_entry_rules, default_exit_rules
from options_engine.decisions.validator import PreTradeValidator

__all__ = [
    "CheckSeverity",
    "CheckStatus",
    "Decision",
    "DecisionEngine",
    "DecisionEvaluator",
    "EntryAction",
    "EntryContext",
    "EntryEvaluation",
    "ExitAction",
    "ExitContext",
    "ExitEvaluation",
    "ExitPosition",
    "MarketContext",
    "MonitorStats",
    "PreTradeValidator",
    "PriceHistory",
    "PriceMonitor",
    "PricePoint",
    "PriceTrend",
    "Recommendation",
    "Rule",
    "TradeStrikes",
    "Urgency",
    "ValidationCheck",
    "ValidationReport",
    "ValidationStatus",
    "default_entry_rules",
    "default_exit_rules",
]
