"""
Tests for strategy ranking.

Tests cover:
- Threshold filtering with rejection reasons
- Composite score
- Sort order with signal-bias and liquidity tie-breaks
- Uncapped reward ratio in the score
- Worst-leg liquidity floor
- Strategy model validation
"""

import math

import pytest

from options_engine.config import RankingConfig
from options_engine.models import LegAction, OptionRight, SpreadDirection, VerticalSpread
from options_engine.strategies.ranking import StrategyRanker, expected_value
from tests.fixtures.strategy_fixtures import make_leg


def spread(max_profit=15.0, max_risk=5.0, probability=0.5, debit=5.0, volume=500):
    return VerticalSpread(
        symbol="SPY",
        direction=SpreadDirection.BULLISH,
        legs=[
            make_leg(LegAction.BUY, OptionRight.CALL, 570.0, debit + 1.0, volume=volume),
            make_leg(LegAction.SELL, OptionRight.CALL, 590.0, 1.0, volume=volume),
        ],
        net_debit=debit,
        max_profit=max_profit,
        max_risk=max_risk,
        breakevens=[570.0 + debit],
        probability_profit=probability,
    )


class TestFiltering:
    """Test threshold filtering."""

    def test_low_reward_ratio_dropped(self, bull_call_spread):
        result = StrategyRanker().rank([bull_call_spread])

        assert result.ranked == []
        strategy, rejection = result.dropped[0]
        assert strategy is bull_call_spread
        assert rejection.code == "reward_ratio_below_minimum"

    def test_low_probability_dropped(self):
        result = StrategyRanker().rank([spread(probability=0.4)])
        assert result.dropped[0][1].code == "probability_below_minimum"

    def test_max_risk_cap(self, wide_bull_call):
        result = StrategyRanker(RankingConfig(max_risk=4.0)).rank([wide_bull_call])
        assert result.dropped[0][1].code == "max_risk_exceeded"

    def test_zero_risk_is_undefined(self):
        result = StrategyRanker().rank([spread(max_risk=0.0)])
        assert result.dropped[0][1].code == "undefined_risk_reward"

    def test_every_ranked_strategy_meets_thresholds(self, wide_bull_call, bull_call_spread, iron_condor):
        config = RankingConfig()
        result = StrategyRanker(config).rank([wide_bull_call, bull_call_spread, iron_condor])

        assert len(result.ranked) + len(result.dropped) == 3
        for strategy in result.strategies:
            assert strategy.risk_reward >= config.min_reward_ratio
            assert strategy.probability_profit >= config.min_prob_profit


class TestScoring:
    """Test composite score."""

    def test_score(self, wide_bull_call):
        """rr 3 → 24, p 0.5 → 15, EV/risk 1 → 20, volume 500 → 5."""
        result = StrategyRanker().rank([wide_bull_call])

        assert result.ranked[0].score == pytest.approx(64.0)
        assert result.ranked[0].expected_value == pytest.approx(5.0)
        assert wide_bull_call.metadata["score"] == pytest.approx(64.0)

    def test_unbounded_profit_ev(self):
        strategy = spread(max_profit=math.inf, max_risk=5.0, probability=0.5)
        assert expected_value(strategy) == pytest.approx(25.0 * 0.5 - 5.0 * 0.5)

    def test_conservative_preference_rewards_probability(self, wide_bull_call):
        balanced = StrategyRanker().score(wide_bull_call)
        conservative = StrategyRanker(RankingConfig(preference="conservative")).score(wide_bull_call)
        assert conservative == pytest.approx(balanced + 5.0)

    def test_sorted_by_score(self):
        weak = spread(max_profit=10.0, probability=0.5)
        strong = spread(max_profit=20.0, probability=0.6)
        result = StrategyRanker().rank([weak, strong])
        assert result.strategies == [strong, weak]

    def test_signal_bias_breaks_ties(self):
        plain = spread()
        tagged = spread()
        tagged.metadata["signal_bias"] = 2
        result = StrategyRanker().rank([plain, tagged])
        assert result.strategies[0] is tagged

    def test_reward_ratio_not_capped(self):
        """rr 10 → 80 + 15 + 90 + 5; rr 5 → 40 + 15 + 40 + 5."""
        rr_five = spread(max_profit=25.0)
        rr_ten = spread(max_profit=50.0)
        result = StrategyRanker().rank([rr_five, rr_ten])

        assert result.strategies == [rr_ten, rr_five]
        assert result.ranked[0].score == pytest.approx(190.0)
        assert result.ranked[1].score == pytest.approx(100.0)

    def test_aggressive_bonus_uses_full_ratio(self):
        strategy = spread(max_profit=50.0)
        aggressive = StrategyRanker(RankingConfig(preference="aggressive")).score(strategy)
        assert aggressive == pytest.approx(190.0 + (10 - 2) * 5)

    def test_unbounded_profit_scores_as_five_to_one(self):
        """Unbounded rr → 40; EV (25 * 0.5 - 2.5) / 5 → 40."""
        strategy = spread(max_profit=math.inf)
        assert StrategyRanker().score(strategy) == pytest.approx(40 + 15 + 40 + 5)


class TestLiquidity:
    """Test the worst-leg liquidity floor and tie-break."""

    def test_illiquid_strategy_dropped(self):
        strategy = spread()
        strategy.metadata["liquidity_score"] = 40
        result = StrategyRanker(RankingConfig(min_liquidity_score=50)).rank([strategy])

        assert result.ranked == []
        rejection = result.dropped[0][1]
        assert rejection.code == "insufficient_liquidity"
        assert rejection.details["liquidity_score"] == 40

    def test_untagged_strategy_passes_floor(self):
        result = StrategyRanker(RankingConfig(min_liquidity_score=50)).rank([spread()])
        assert len(result.ranked) == 1

    def test_floor_off_by_default(self):
        strategy = spread()
        strategy.metadata["liquidity_score"] = 0
        assert len(StrategyRanker().rank([strategy]).ranked) == 1

    def test_liquidity_breaks_ties(self):
        thin = spread()
        thin.metadata["liquidity_score"] = 55
        deep = spread()
        deep.metadata["liquidity_score"] = 100
        result = StrategyRanker().rank([thin, deep])
        assert result.strategies[0] is deep

    def test_signal_bias_outranks_liquidity(self):
        deep = spread()
        deep.metadata["liquidity_score"] = 100
        tagged = spread()
        tagged.metadata.update(signal_bias=1, liquidity_score=55)
        result = StrategyRanker().rank([deep, tagged])
        assert result.strategies[0] is tagged


class TestStrategyModel:
    """Test Strategy validation invariants."""

    def test_legs_must_reconcile(self):
        with pytest.raises(ValueError, match="reconcile"):
            VerticalSpread(
                symbol="SPY",
                direction=SpreadDirection.BULLISH,
                legs=[
                    make_leg(LegAction.BUY, OptionRight.CALL, 570.0, 8.5),
                    make_leg(LegAction.SELL, OptionRight.CALL, 580.0, 3.5),
                ],
                net_debit=4.0,
                max_profit=6.0,
                max_risk=4.0,
                breakevens=[574.0],
                probability_profit=0.4,
            )

    def test_debit_and_credit_exclusive(self):
        with pytest.raises(ValueError, match="Exactly one"):
            VerticalSpread(
                symbol="SPY",
                direction=SpreadDirection.BULLISH,
                legs=[
                    make_leg(LegAction.BUY, OptionRight.CALL, 570.0, 8.5),
                    make_leg(LegAction.SELL, OptionRight.CALL, 580.0, 3.5),
                ],
                net_debit=5.0,
                net_credit=5.0,
                max_profit=5.0,
                max_risk=5.0,
                breakevens=[575.0],
                probability_profit=0.4,
            )

    def test_with_contracts_scales_every_leg(self, iron_condor):
        scaled = iron_condor.with_contracts(3)

        assert scaled.contracts == 3
        assert all(leg.contracts == 3 for leg in scaled.legs)
        assert scaled.strategy_id == iron_condor.strategy_id
        assert iron_condor.contracts == 1

    def test_to_dict(self, iron_condor):
        data = iron_condor.to_dict()
        assert data["type"] == "iron_condor"
        assert data["net_credit"] == pytest.approx(1.20)
        assert data["breakevens"] == [548.8, 601.2]
        assert len(data["legs"]) == 4
