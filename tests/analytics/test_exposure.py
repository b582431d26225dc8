"""
Tests for dealer exposure analysis.

Tests cover:
- GEX sign convention and gamma regime
- Put/call ratios (including the no-calls case)
- Max pain
- OI walls and institutional strikes
- Missing data handling
"""

from datetime import date

import pytest

from options_engine.analytics.exposure import ExposureAnalyzer, gamma_regime, interpret_put_call_ratio
from options_engine.exceptions import MissingMarketDataError
from options_engine.models import ChainSnapshot
from tests.fixtures.chain_fixtures import AS_OF, NEAR_EXPIRY, SPOT


def record(strike, right, oi=1000, gamma=0.05, volume=100, last=2.0, vega=0.1):
    return {
        "strike": strike,
        "expiration": NEAR_EXPIRY,
        "type": right,
        "last": last,
        "volume": volume,
        "open_interest": oi,
        "delta": 0.5 if right == "call" else -0.5,
        "gamma": gamma,
        "vega": vega,
        "implied_volatility": 0.2,
    }


def chain_of(records, price=100.0):
    return ChainSnapshot.from_records("TEST", price, records, as_of=AS_OF)


class TestGammaRegime:
    """Test regime labels and sign convention."""

    def test_regime_labels(self):
        assert gamma_regime(1.0) == "Positive Gamma"
        assert gamma_regime(-1.0) == "Negative Gamma"
        assert gamma_regime(0.0) == "Neutral"

    def test_calls_only_chain_is_negative_gamma(self):
        """Dealers are short customer calls: call GEX is negative."""
        chain = chain_of([record(100, "call"), record(105, "call")])
        report = ExposureAnalyzer().analyze(chain)

        assert report.dealer.call_gex < 0
        assert report.dealer.put_gex == 0
        assert report.dealer.regime == "Negative Gamma"

    def test_puts_only_chain_is_positive_gamma(self):
        chain = chain_of([record(95, "put"), record(100, "put")])
        report = ExposureAnalyzer().analyze(chain)

        assert report.dealer.put_gex > 0
        assert report.dealer.regime == "Positive Gamma"

    def test_gex_magnitude(self):
        """gamma 0.05 x OI 1000 x 100 x S^2 x 0.01 = 500,000 at S=100."""
        chain = chain_of([record(100, "call"), record(105, "call", oi=0)])
        report = ExposureAnalyzer().analyze(chain)

        assert report.dealer.gex_by_strike[100.0] == pytest.approx(-500_000)
        assert report.dealer.magnitude == "weak"
        assert report.dealer.max_negative_strike == 100.0

    def test_per_expiration_summary(self, spy_chain):
        report = ExposureAnalyzer().analyze(spy_chain)
        assert [s.expiration for s in report.dealer.by_expiration] == sorted(spy_chain.expirations)
        assert sum(s.total_gex for s in report.dealer.by_expiration) == pytest.approx(report.dealer.total_gex)


class TestPutCallRatios:
    """Test volume/OI/premium ratios."""

    def test_ratios(self):
        chain = chain_of([
            record(100, "call", oi=1000, volume=100),
            record(100, "put", oi=2000, volume=150),
        ])
        ratios = ExposureAnalyzer().analyze(chain).put_call

        assert ratios.volume.ratio == pytest.approx(1.5)
        assert ratios.open_interest.ratio == pytest.approx(2.0)
        assert ratios.volume.interpretation.startswith("Very bearish")

    def test_no_calls_gives_none(self):
        chain = chain_of([record(95, "put"), record(100, "put")])
        ratios = ExposureAnalyzer().analyze(chain).put_call

        assert ratios.volume.ratio is None
        assert ratios.volume.interpretation == "No call activity"

    def test_bullish_interpretation(self):
        assert interpret_put_call_ratio(0.3, "volume").startswith("Bullish")


class TestMaxPain:
    """Test max pain strike."""

    def test_max_pain_strike(self):
        """Call OI 2000 @100, put OI 1000 @110: pain is lowest at 100."""
        chain = chain_of([
            record(100, "call", oi=2000),
            record(105, "call", oi=0),
            record(110, "put", oi=1000),
        ], price=104.0)
        max_pain = ExposureAnalyzer().analyze(chain).max_pain

        assert max_pain.strike == 100.0
        assert max_pain.total_pain == pytest.approx(10 * 1000 * 100)
        assert max_pain.distance == pytest.approx(-4.0)

    def test_symmetric_chain_max_pain_near_spot(self, spy_chain):
        max_pain = ExposureAnalyzer().analyze(spy_chain).max_pain
        assert abs(max_pain.strike - SPOT) <= 30


class TestOIWalls:
    """Test open interest walls."""

    def test_walls_on_round_strikes(self, spy_chain):
        """Round-25 strikes carry 20k OI, so they lead the wall lists."""
        walls = ExposureAnalyzer().analyze(spy_chain).oi_walls

        assert all(w.strike % 25 == 0 for w in walls.call_walls)
        assert walls.resistance == 600.0
        assert walls.support == 575.0
        assert walls.expected_range == (575.0, 600.0)

    def test_institutional_strikes_include_walls(self, spy_chain):
        report = ExposureAnalyzer().analyze(spy_chain)
        strikes = report.institutional_strikes()
        assert {w.strike for w in report.oi_walls.call_walls} <= strikes


class TestMissingData:
    """Test missing inputs raise MissingMarketDataError."""

    def test_missing_price(self):
        chain = chain_of([record(100, "call")], price=None)
        with pytest.raises(MissingMarketDataError) as exc_info:
            ExposureAnalyzer().analyze(chain)
        assert exc_info.value.field == "underlying_price"

    def test_empty_chain(self):
        chain = ChainSnapshot(symbol="TEST", underlying_price=100.0, expirations={}, as_of=date(2026, 3, 2))
        with pytest.raises(MissingMarketDataError) as exc_info:
            ExposureAnalyzer().analyze(chain)
        assert exc_info.value.field == "expirations"
