"""
Tests for strategy generation.

Tests cover:
- Bull call / bear put spread economics and the width window
- Iron condor structure and result cap
- Calendar spreads and the max-profit policy
- Rejection values for invalid candidates
- Signal tagging
- Liquidity floor on contract selection and worst-leg liquidity tags
- Missing market data
"""

import pytest

from options_engine.config import GeneratorConfig
from options_engine.exceptions import MissingMarketDataError
from options_engine.models import (
    CalendarSpread,
    ChainSnapshot,
    IronCondor,
    LegAction,
    SpreadDirection,
    VerticalSpread,
)
from options_engine.strategies.generator import (
    CalendarProfitPolicy,
    StrategyGenerator,
    StrategyKind,
    StrikeSignals,
    is_valid_contract,
)
from tests.fixtures.chain_fixtures import AS_OF, FAR_EXPIRY, NEAR_EXPIRY, SPOT


def call_record(strike, last, delta=0.5):
    return {"strike": strike, "expiration": NEAR_EXPIRY, "type": "call", "last": last,
            "delta": delta, "implied_volatility": 0.16}


class TestVerticalSpreads:
    """Test bull call and bear put construction."""

    def test_bull_call_from_target_strikes(self, bull_call_chain):
        """570 @ 8.50 / 580 @ 3.50 → debit 5.00, max profit 5.00, breakeven 575."""
        result = StrategyGenerator().generate(
            bull_call_chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )

        assert len(result.strategies) == 1
        spread = result.strategies[0]
        assert isinstance(spread, VerticalSpread)
        assert spread.direction == SpreadDirection.BULLISH
        assert spread.net_debit == pytest.approx(5.0)
        assert spread.max_profit == pytest.approx(5.0)
        assert spread.max_risk == pytest.approx(5.0)
        assert spread.risk_reward == pytest.approx(1.0)
        assert spread.breakevens == [pytest.approx(575.0)]
        assert spread.probability_profit == pytest.approx(0.35)
        assert [leg.action for leg in spread.legs] == [LegAction.BUY, LegAction.SELL]

    def test_narrow_spreads_skipped_by_scan(self, bull_call_chain):
        """570/580 is 1.75% wide, below the 5% minimum."""
        result = StrategyGenerator().generate(bull_call_chain, kinds=[StrategyKind.BULL_CALL_SPREAD])
        assert result.strategies == []

    def test_scan_respects_width_window(self, spy_chain):
        result = StrategyGenerator().bull_call_spreads(
            "SPY", spy_chain.calls(NEAR_EXPIRY), SPOT
        )

        assert result.strategies
        for spread in result.strategies:
            long_strike, short_strike = spread.strikes
            width_pct = (short_strike - long_strike) / long_strike
            assert 0.05 <= width_pct <= 0.25
            assert spread.max_profit + spread.max_risk == pytest.approx(short_strike - long_strike)

    def test_bear_put_scan(self, spy_chain):
        result = StrategyGenerator().bear_put_spreads("SPY", spy_chain.puts(NEAR_EXPIRY), SPOT)

        assert result.strategies
        for spread in result.strategies:
            long_strike, short_strike = spread.strikes
            assert long_strike > short_strike
            assert spread.direction == SpreadDirection.BEARISH
            assert spread.breakevens[0] == pytest.approx(long_strike - spread.net_debit)

    def test_non_positive_debit_rejected(self):
        chain = ChainSnapshot.from_records(
            "SPY", SPOT, [call_record(570, 3.0), call_record(580, 4.0)], as_of=AS_OF
        )
        result = StrategyGenerator().generate(
            chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )

        assert result.strategies == []
        assert result.rejections[0].code == "non_positive_debit"

    def test_debit_exceeding_width_rejected(self):
        chain = ChainSnapshot.from_records(
            "SPY", SPOT, [call_record(570, 12.0), call_record(580, 1.0)], as_of=AS_OF
        )
        result = StrategyGenerator().generate(
            chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )
        assert result.rejections[0].code == "non_positive_profit"

    def test_invalid_contracts_filtered(self):
        chain = ChainSnapshot.from_records(
            "SPY", SPOT, [call_record(570, 8.5), call_record(580, 3.5, delta=0.0)], as_of=AS_OF
        )
        assert not is_valid_contract(chain.calls(NEAR_EXPIRY)[1])
        result = StrategyGenerator().generate(
            chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )
        assert result.strategies == []
        assert result.rejections == []


class TestIronCondors:
    """Test iron condor construction."""

    def test_condor_structure(self, spy_chain):
        result = StrategyGenerator().iron_condors(
            "SPY", spy_chain.calls(NEAR_EXPIRY), spy_chain.puts(NEAR_EXPIRY), SPOT
        )

        assert 0 < len(result.strategies) <= 10
        for condor in result.strategies:
            assert isinstance(condor, IronCondor)
            long_put, short_put, short_call, long_call = condor.strikes
            assert long_put < short_put < SPOT < short_call < long_call
            assert condor.net_credit > 0
            assert condor.max_profit == pytest.approx(condor.net_credit)
            assert condor.max_risk == pytest.approx(
                max(condor.put_width, condor.call_width) - condor.net_credit
            )
            low, high = condor.breakevens
            assert low == pytest.approx(short_put - condor.net_credit)
            assert high == pytest.approx(short_call + condor.net_credit)

    def test_condors_sorted_by_risk_reward(self, spy_chain):
        result = StrategyGenerator().iron_condors(
            "SPY", spy_chain.calls(NEAR_EXPIRY), spy_chain.puts(NEAR_EXPIRY), SPOT
        )
        ratios = [c.risk_reward for c in result.strategies]
        assert ratios == sorted(ratios, reverse=True)

    def test_not_enough_otm_strikes(self, bull_call_chain):
        result = StrategyGenerator().iron_condors(
            "SPY", bull_call_chain.calls(NEAR_EXPIRY), [], SPOT
        )
        assert result.strategies == []


class TestCalendarSpreads:
    """Test calendar spread construction."""

    def test_calendars_near_the_money(self, spy_chain):
        result = StrategyGenerator().calendar_spreads(spy_chain)

        assert result.strategies
        for calendar in result.strategies:
            assert isinstance(calendar, CalendarSpread)
            assert calendar.near_expiration == NEAR_EXPIRY
            assert calendar.far_expiration == FAR_EXPIRY
            strike = calendar.legs[0].strike
            assert abs(strike - SPOT) / SPOT < 0.05
            assert calendar.max_profit == pytest.approx(0.30 * calendar.net_debit)
            assert calendar.max_risk == pytest.approx(calendar.net_debit)

    def test_custom_profit_policy(self, spy_chain):
        generator = StrategyGenerator(calendar_profit_policy=CalendarProfitPolicy(fraction=0.5))
        result = generator.calendar_spreads(spy_chain)
        for calendar in result.strategies:
            assert calendar.max_profit == pytest.approx(0.5 * calendar.net_debit)

    def test_single_expiration_builds_nothing(self, bull_call_chain):
        assert StrategyGenerator().calendar_spreads(bull_call_chain).strategies == []


class TestGenerate:
    """Test orchestration across kinds and expirations."""

    def test_all_kinds(self, spy_chain):
        result = StrategyGenerator().generate(spy_chain)
        kinds = {s.metadata["kind"] for s in result.strategies}
        assert kinds == {k.value for k in StrategyKind}

    def test_single_expiration(self, spy_chain):
        result = StrategyGenerator().generate(
            spy_chain, expiration=FAR_EXPIRY, kinds=[StrategyKind.IRON_CONDOR]
        )
        assert result.strategies
        assert all(s.legs[0].expiration == FAR_EXPIRY for s in result.strategies)

    def test_chain_not_mutated(self, spy_chain):
        before = spy_chain.to_frame()
        StrategyGenerator().generate(spy_chain)
        assert spy_chain.to_frame().equals(before)

    def test_signal_tagging(self, spy_chain):
        signals = StrikeSignals(institutional={575.0, 600.0}, unusual={545.0})
        result = StrategyGenerator().generate(
            spy_chain, expiration=NEAR_EXPIRY, kinds=[StrategyKind.IRON_CONDOR], signals=signals
        )

        for condor in result.strategies:
            hits = condor.metadata["signal_strikes"]
            assert set(hits) == set(condor.strikes) & {575.0, 600.0, 545.0}
            assert condor.metadata["signal_bias"] == len(hits)

    def test_missing_price(self, spy_chain):
        chain = ChainSnapshot("SPY", None, spy_chain.expirations, as_of=AS_OF)
        with pytest.raises(MissingMarketDataError):
            StrategyGenerator().generate(chain)

    def test_empty_chain(self):
        with pytest.raises(MissingMarketDataError) as exc_info:
            StrategyGenerator().generate(ChainSnapshot("SPY", SPOT, {}, as_of=AS_OF))
        assert exc_info.value.field == "expirations"


class TestLiquidity:
    """Test the contract liquidity floor and liquidity tags."""

    def test_worst_leg_tagged(self, bull_call_chain):
        """570 call scores 100 (EXCELLENT), 580 call 90 (GOOD, 5.7% spread)."""
        result = StrategyGenerator().generate(
            bull_call_chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )

        spread = result.strategies[0]
        assert spread.metadata["liquidity_score"] == 90
        assert spread.metadata["liquidity_quality"] == "GOOD"

    def test_floor_rejects_contracts(self, bull_call_chain):
        generator = StrategyGenerator(GeneratorConfig(min_liquidity_quality="EXCELLENT"))
        result = generator.generate(
            bull_call_chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )

        assert result.strategies == []
        rejection = result.rejections[0]
        assert rejection.code == "insufficient_liquidity"
        assert rejection.details["strikes"] == [580.0]
        assert "Quality GOOD below EXCELLENT" in rejection.reason

    def test_passing_contracts_still_build(self, bull_call_chain):
        generator = StrategyGenerator(GeneratorConfig(min_liquidity_quality="GOOD"))
        result = generator.generate(
            bull_call_chain, kinds=[StrategyKind.BULL_CALL_SPREAD], target_strikes=[570, 580]
        )

        assert len(result.strategies) == 1
        assert result.rejections == []

    def test_no_floor_by_default(self, spy_chain):
        result = StrategyGenerator().generate(spy_chain)
        assert not any(r.code == "insufficient_liquidity" for r in result.rejections)

    def test_floor_thins_scan(self, spy_chain):
        """Only the high-volume 545 put clears FAIR in the fixture chain."""
        generator = StrategyGenerator(GeneratorConfig(min_liquidity_quality="FAIR"))
        result = generator.generate(spy_chain, expiration=NEAR_EXPIRY, kinds=[StrategyKind.BEAR_PUT_SPREAD])

        assert result.strategies == []
        assert all(r.code == "insufficient_liquidity" for r in result.rejections)
