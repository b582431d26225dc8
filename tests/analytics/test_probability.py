"""
Tests for strike probability analytics.

Tests cover:
- Black-Scholes ITM probability and the touch policy
- Realized volatility and ATR from daily bars
- Risk classification bands
- Missing market data raises MissingMarketDataError
"""

import math
from datetime import date

import pytest

from options_engine.analytics.probability import (
    ProbabilityCalculator,
    RiskLevel,
    TouchProbabilityPolicy,
    assess_risk,
    average_true_range,
    d1_d2,
    expected_move,
    probability_itm,
    realized_volatility,
    strike_warnings,
)
from options_engine.exceptions import MissingMarketDataError
from options_engine.models import Greeks, OptionContract, OptionRight, Quote
from tests.fixtures.chain_fixtures import AS_OF, NEAR_EXPIRY, SPOT, make_bars


def make_contract(strike, right=OptionRight.CALL, iv=0.16, expiration=NEAR_EXPIRY):
    return OptionContract(
        strike=strike,
        expiration=expiration,
        right=right,
        quote=Quote(bid=1.0, ask=1.1, last=1.05, volume=100, open_interest=1000),
        greeks=Greeks(delta=0.3),
        implied_volatility=iv,
        symbol="SPY",
    )


class TestPrimitives:
    """Test closed-form probability helpers."""

    def test_atm_call_itm_probability_near_half(self):
        """At-the-money call with zero rate is ~50% ITM (slightly below from drift)."""
        _, d2 = d1_d2(100.0, 100.0, 0.2, 30 / 365, rate=0.0)
        prob = probability_itm(OptionRight.CALL, d2)
        assert 0.48 < prob < 0.5

    def test_call_and_put_probabilities_sum_to_one(self):
        """N(d2) + N(-d2) = 1."""
        _, d2 = d1_d2(575.0, 600.0, 0.18, 18 / 365)
        total = probability_itm(OptionRight.CALL, d2) + probability_itm(OptionRight.PUT, d2)
        assert total == pytest.approx(1.0)

    def test_touch_policy_doubles_and_caps(self):
        """Touch = min(2p, 1)."""
        policy = TouchProbabilityPolicy()
        assert policy(0.2) == pytest.approx(0.4)
        assert policy(0.7) == 1.0

    def test_touch_policy_multiplier_is_configurable(self):
        assert TouchProbabilityPolicy(multiplier=1.5)(0.2) == pytest.approx(0.3)

    def test_expected_move(self):
        """sigma * sqrt(T) * S."""
        assert expected_move(100.0, 0.2, 1.0) == pytest.approx(20.0)


class TestRealizedVolatility:
    """Test realized volatility and ATR."""

    def test_flat_prices_have_zero_volatility(self):
        assert realized_volatility([100.0] * 10) == 0.0

    def test_too_few_closes_returns_zero(self):
        assert realized_volatility([100.0, 101.0]) == 0.0

    def test_alternating_closes(self):
        """±3 around 572 gives about 17% annualized."""
        bars = make_bars()
        hv = realized_volatility([b.close for b in bars])
        assert 0.15 < hv < 0.19

    def test_atr_of_alternating_bars(self):
        """Every true range after the first bar is 8."""
        assert average_true_range(make_bars()) == pytest.approx(8.0)

    def test_atr_needs_period_plus_one_bars(self):
        assert average_true_range(make_bars(count=14)) == 0.0
        assert average_true_range(make_bars(count=15)) == pytest.approx(8.0)


class TestRiskClassification:
    """Test banded risk levels and warnings."""

    def test_low_risk(self):
        assert assess_risk(0.2, 3.0, 0.2) == RiskLevel.LOW

    def test_extreme_touch(self):
        assert assess_risk(0.8, 3.0, 0.2) == RiskLevel.EXTREME

    def test_high_from_atr_distance(self):
        assert assess_risk(0.2, 1.2, 0.2) == RiskLevel.HIGH

    def test_moderate_from_iv(self):
        assert assess_risk(0.2, 3.0, 0.5) == RiskLevel.MODERATE

    def test_warnings_for_close_strike(self):
        """A strike inside 1% and 1 ATR raises CRITICAL proximity and distance warnings."""
        warnings = strike_warnings(0.3, 0.5, 0.2, 0.5)
        metrics = {w["metric"]: w["severity"] for w in warnings}
        assert metrics["distance"] == "CRITICAL"
        assert metrics["proximity"] == "CRITICAL"
        assert "probability" not in metrics

    def test_no_warnings_for_safe_strike(self):
        assert strike_warnings(0.2, 4.0, 0.2, 5.0) == []


class TestProbabilityCalculator:
    """Test ProbabilityCalculator.calculate."""

    def test_otm_call(self, daily_bars):
        """600 call 18 DTE at 16.7% IV: ~14% ITM, ~27% touch, ~3.1 ATR away."""
        calc = ProbabilityCalculator()
        prob = calc.calculate(make_contract(600.0, iv=0.1665), SPOT, daily_bars, as_of=AS_OF)

        assert prob.dte == 18
        assert 0.10 < prob.prob_itm < 0.18
        assert prob.prob_touch == pytest.approx(2 * prob.prob_itm)
        assert prob.prob_otm == pytest.approx(1 - prob.prob_itm)
        assert prob.atr == pytest.approx(8.0)
        assert prob.distance_in_atr == pytest.approx((600.0 - SPOT) / 8.0)
        assert prob.distance_pct == pytest.approx((600.0 - SPOT) / SPOT * 100)
        assert prob.mid == pytest.approx(1.05)

    def test_deep_itm_touch_is_capped(self, daily_bars):
        calc = ProbabilityCalculator()
        prob = calc.calculate(make_contract(500.0), SPOT, daily_bars, as_of=AS_OF)
        assert prob.prob_itm > 0.99
        assert prob.prob_touch == 1.0

    def test_expired_contract_uses_one_day(self):
        """DTE is floored at 1 day for T so expiring contracts stay finite."""
        calc = ProbabilityCalculator()
        prob = calc.calculate(make_contract(600.0), SPOT, as_of=date(2026, 3, 20))
        assert prob.dte == 0
        assert math.isfinite(prob.d1)

    def test_no_bars_means_no_atr(self):
        calc = ProbabilityCalculator()
        prob = calc.calculate(make_contract(600.0), SPOT, as_of=AS_OF)
        assert prob.atr == 0.0
        assert prob.distance_in_atr == 0.0
        assert prob.historical_volatility == 0.0

    def test_missing_spot_raises(self):
        calc = ProbabilityCalculator()
        with pytest.raises(MissingMarketDataError) as exc_info:
            calc.calculate(make_contract(600.0), None, as_of=AS_OF)
        assert exc_info.value.field == "underlying_price"

    def test_missing_iv_raises(self):
        calc = ProbabilityCalculator()
        with pytest.raises(MissingMarketDataError) as exc_info:
            calc.calculate(make_contract(600.0, iv=0.0), SPOT, as_of=AS_OF)
        assert exc_info.value.field == "implied_volatility"
