"""
Tests for entry decision rules.

Tests cover:
- Hard stops (rejection, touch probability, ATR distance, volatility)
- Sizing rules by validation status
- Entry confidence
- End-to-end entry evaluation against the SPY chain
"""

from datetime import date

import pytest

from options_engine.analytics.probability import StrikeProbability
from options_engine.config import DecisionConfig
from options_engine.decisions.engine import DecisionEngine
from options_engine.decisions.evaluator import DecisionEvaluator
from options_engine.decisions.models import (
    CheckSeverity,
    CheckStatus,
    EntryAction,
    EntryContext,
    MarketContext,
    Recommendation,
    TradeStrikes,
    ValidationCheck,
    ValidationReport,
    ValidationStatus,
)
from options_engine.decisions.rules import (
    AllClear,
    ExtremeTouchProbability,
    ExtremeVolatility,
    StrikeWithinATR,
    default_entry_rules,
    entry_confidence,
    no_entry_fallback,
)
from options_engine.models import OptionRight
from tests.fixtures.chain_fixtures import NEAR_EXPIRY, SPOT


def short_call_probability(prob_touch=0.3, distance_in_atr=3.0, atr=8.0, iv=0.16) -> StrikeProbability:
    return StrikeProbability(
        strike=600.0,
        right=OptionRight.CALL,
        underlying_price=SPOT,
        dte=18,
        prob_itm=prob_touch / 2,
        prob_otm=1 - prob_touch / 2,
        prob_touch=prob_touch,
        expected_move=12.7,
        distance_pct=4.3,
        distance_in_atr=distance_in_atr,
        implied_volatility=iv,
        atr=atr,
    )


def make_report(status=ValidationStatus.APPROVED, checks=None, probability=None) -> EntryContext:
    report = ValidationReport(
        symbol="SPY",
        strategy_type="iron_condor",
        expiration=date(2026, 3, 20),
        strikes=TradeStrikes(short_call=600.0),
        underlying_price=SPOT,
        checks=checks or [],
        probabilities={"short_call": probability or short_call_probability()},
        overall_status=status,
        recommendation=Recommendation(action="x", confidence="HIGH", reason="Validation verdict"),
    )
    return EntryContext(report)


def passing(n):
    return [ValidationCheck(f"c{i}", CheckStatus.PASS, CheckSeverity.INFO, 0, 0, "") for i in range(n)]


class TestHardStops:
    """Test NO_ENTRY hard stops."""

    def test_extreme_touch(self):
        decision = ExtremeTouchProbability().evaluate(make_report(probability=short_call_probability(0.8)))

        assert decision.action == EntryAction.NO_ENTRY
        assert decision.rule == "extreme_probability_of_touch"
        assert decision.metadata["prob_touch"] == 0.8

    def test_touch_below_threshold(self):
        assert ExtremeTouchProbability().evaluate(make_report()) is None

    def test_touch_threshold_from_config(self):
        rule = ExtremeTouchProbability(DecisionConfig(max_prob_touch=0.25))
        assert rule.evaluate(make_report()) is not None

    def test_strike_within_atr(self):
        decision = StrikeWithinATR().evaluate(
            make_report(probability=short_call_probability(distance_in_atr=1.2))
        )
        assert decision.rule == "strike_within_atr"
        assert decision.confidence == 0.90

    def test_atr_check_skipped_without_atr(self):
        probability = short_call_probability(distance_in_atr=0.0, atr=0.0)
        assert StrikeWithinATR().evaluate(make_report(probability=probability)) is None

    def test_extreme_volatility(self):
        decision = ExtremeVolatility().evaluate(make_report(probability=short_call_probability(iv=0.95)))
        assert decision.rule == "extreme_volatility"


class TestStatusRules:
    """Test status-driven rules through the default rule set."""

    @pytest.fixture
    def engine(self):
        return DecisionEngine(default_entry_rules(), fallback=no_entry_fallback)

    def test_rejected(self, engine):
        decision = engine.evaluate(make_report(ValidationStatus.REJECTED))
        assert decision.rule == "critical_validation_failures"
        assert decision.reason == "Validation verdict"

    def test_high_risk(self, engine):
        decision = engine.evaluate(make_report(ValidationStatus.HIGH_RISK))
        assert decision.action == EntryAction.NO_ENTRY
        assert decision.rule == "high_risk_status"

    def test_moderate_risk_reduces_size(self, engine):
        decision = engine.evaluate(make_report(ValidationStatus.MODERATE_RISK))
        assert decision.action == EntryAction.ENTER_REDUCED
        assert decision.position_size_multiplier == 0.5

    def test_low_risk(self, engine):
        decision = engine.evaluate(make_report(ValidationStatus.LOW_RISK))
        assert decision.action == EntryAction.ENTER_NORMAL
        assert decision.position_size_multiplier == 0.75

    def test_all_clear(self, engine):
        decision = engine.evaluate(make_report(checks=passing(4)))
        assert decision.rule == "all_clear"
        assert decision.position_size_multiplier == 1.0
        assert decision.confidence == 1.0


class TestConfidence:
    """Test entry_confidence."""

    def test_no_checks(self):
        assert entry_confidence(make_report().validation) == 0.0

    def test_failures_reduce_confidence(self):
        checks = passing(3) + [ValidationCheck("f", CheckStatus.FAIL, CheckSeverity.HIGH, 0, 0, "")]
        # 3/4 - 0.1
        assert entry_confidence(make_report(checks=checks).validation) == pytest.approx(0.65)

    def test_all_clear_uses_confidence(self):
        checks = passing(1) + [ValidationCheck("w", CheckStatus.WARNING, CheckSeverity.MEDIUM, 0, 0, "")]
        assert AllClear().evaluate(make_report(checks=checks)).confidence == pytest.approx(0.5)


class TestEvaluateEntry:
    """Test DecisionEvaluator.evaluate_entry on the SPY chain."""

    def test_clean_condor_enters(self, spy_chain, daily_bars):
        evaluation = DecisionEvaluator().evaluate_entry(
            spy_chain, TradeStrikes(short_call=600, short_put=550), NEAR_EXPIRY, bars=daily_bars
        )

        assert evaluation.should_enter
        assert evaluation.decision.action == EntryAction.ENTER_NORMAL
        assert evaluation.decision.rule == "all_clear"
        assert evaluation.decision.confidence == 1.0

    def test_close_strike_rejected(self, spy_chain, daily_bars):
        evaluation = DecisionEvaluator().evaluate_entry(
            spy_chain, TradeStrikes(short_call=580), NEAR_EXPIRY, bars=daily_bars
        )

        assert not evaluation.should_enter
        assert evaluation.decision.rule == "critical_validation_failures"

    def test_moderate_risk_enters_reduced(self, spy_chain, daily_bars):
        evaluation = DecisionEvaluator().evaluate_entry(
            spy_chain, TradeStrikes(short_call=590), NEAR_EXPIRY, bars=daily_bars,
            market=MarketContext(vix=22.0),
        )
        assert evaluation.decision.action == EntryAction.ENTER_REDUCED
        assert evaluation.decision.position_size_multiplier == 0.5

    def test_elevated_vix_is_low_risk(self, spy_chain, daily_bars):
        evaluation = DecisionEvaluator().evaluate_entry(
            spy_chain, TradeStrikes(short_call=600, short_put=550), NEAR_EXPIRY, bars=daily_bars,
            market=MarketContext(vix=22.0),
        )
        assert evaluation.decision.rule == "low_risk_proceed_with_caution"

    def test_strong_move_blocks_entry(self, spy_chain, daily_bars):
        evaluation = DecisionEvaluator().evaluate_entry(
            spy_chain, TradeStrikes(short_call=600, short_put=550), NEAR_EXPIRY, bars=daily_bars,
            market=MarketContext(market_change_pct=2.0),
        )
        assert evaluation.decision.action == EntryAction.NO_ENTRY
        assert evaluation.decision.rule == "high_risk_status"

    def test_generated_condor(self, spy_chain, daily_bars, iron_condor):
        evaluation = DecisionEvaluator().evaluate_strategy_entry(spy_chain, iron_condor, bars=daily_bars)
        assert evaluation.validation.strikes.short_call == 600.0
        assert evaluation.validation.strikes.short_put == 550.0
        assert evaluation.validation.strategy_type == "iron_condor"
