"""
Tests for volatility surface analysis.

Tests cover:
- Smile pattern classification
- Term structure shape
- IV rank / percentile
- Implied vs realized comparison and the volatility cone
- VolatilityAnalyzer over a chain snapshot
"""

import pytest

from options_engine.analytics.volatility import (
    VolatilityAnalyzer,
    analyze_smile,
    analyze_term_structure,
    iv_rank,
    iv_vs_realized,
    volatility_cone,
)
from tests.fixtures.chain_fixtures import make_bars

STRIKES = [90.0, 95.0, 100.0, 105.0, 110.0]


class TestSmile:
    """Test smile/skew classification."""

    def test_smile(self):
        smile = analyze_smile(STRIKES, [0.30, 0.25, 0.20, 0.21, 0.22], 100.0)
        assert smile.pattern == "smile"
        assert smile.atm_strike == 100.0
        assert smile.atm_iv == pytest.approx(0.20)

    def test_smirk(self):
        smile = analyze_smile(STRIKES, [0.30, 0.25, 0.20, 0.20, 0.205], 100.0)
        assert smile.pattern == "smirk"
        assert smile.skew[0.25] > 0

    def test_reverse_smirk(self):
        smile = analyze_smile(STRIKES, [0.20, 0.20, 0.20, 0.25, 0.30], 100.0)
        assert smile.pattern == "reverse-smirk"

    def test_flat(self):
        smile = analyze_smile(STRIKES, [0.20] * 5, 100.0)
        assert smile.pattern == "flat"
        assert smile.steepness == 0.0

    def test_unsorted_input(self):
        smile = analyze_smile(list(reversed(STRIKES)), [0.22, 0.21, 0.20, 0.25, 0.30], 100.0)
        assert smile.left_wing_iv == pytest.approx(0.30)

    def test_too_few_points(self):
        assert analyze_smile([100.0, 105.0], [0.2, 0.21], 100.0) is None


class TestTermStructure:
    """Test term structure shape."""

    def test_contango(self):
        term = analyze_term_structure([(10, 0.20), (60, 0.22), (120, 0.25)])
        assert term.shape == "contango"
        assert term.slope == pytest.approx(0.25)
        assert term.medium_term_iv == pytest.approx(0.22)

    def test_backwardation(self):
        term = analyze_term_structure([(10, 0.30), (120, 0.20)])
        assert term.shape == "backwardation"

    def test_flat(self):
        term = analyze_term_structure([(10, 0.20), (45, 0.205)])
        assert term.shape == "flat"

    def test_single_expiration(self):
        assert analyze_term_structure([(10, 0.2)]) is None


class TestIVRank:
    """Test IV rank and percentile."""

    def test_rank_and_percentile(self):
        rank = iv_rank(0.3, [0.1, 0.2, 0.5])
        assert rank.rank == pytest.approx(50.0)
        assert rank.percentile == pytest.approx(66.67)
        assert rank.interpretation == "normal"

    def test_very_high(self):
        assert iv_rank(0.48, [0.1, 0.2, 0.5]).interpretation == "very high"

    def test_flat_history(self):
        assert iv_rank(0.3, [0.2, 0.2]).rank == 50.0

    def test_empty_history(self):
        assert iv_rank(0.3, []) is None


class TestRealized:
    """Test IV vs realized and the volatility cone."""

    def test_insufficient_history(self):
        result = iv_vs_realized(0.2, [100.0] * 5)
        assert result.realized_volatility is None
        assert result.interpretation == "Insufficient price history"

    def test_rich_iv(self):
        closes = [b.close for b in make_bars()]
        result = iv_vs_realized(0.40, closes)
        assert result.realized_volatility > 0
        assert result.premium_pct > 20
        assert result.interpretation == "rich, favour selling"

    def test_cone_skips_long_windows(self):
        closes = [b.close for b in make_bars(count=40)]
        cone = volatility_cone(closes)
        assert set(cone) == {5, 10, 20, 30}
        for stats in cone.values():
            assert stats["min"] <= stats["mean"] <= stats["max"]


class TestVolatilityAnalyzer:
    """Test the analyzer over a chain snapshot."""

    def test_spy_chain_contango(self, spy_chain):
        """Near base IV 16%, far 18%: contango."""
        report = VolatilityAnalyzer().analyze(spy_chain)

        assert report.term_structure.shape == "contango"
        assert [dte for dte, _ in report.term_structure.points] == [18, 46]
        assert report.smile.atm_strike == 575.0
        assert report.iv_rank is None

    def test_put_skew_on_spy_chain(self, spy_chain):
        report = VolatilityAnalyzer().analyze(spy_chain)
        assert report.smile.left_wing_iv > report.smile.right_wing_iv

    def test_history_inputs(self, spy_chain, daily_bars):
        closes = [b.close for b in daily_bars]
        report = VolatilityAnalyzer().analyze(spy_chain, iv_history=[0.12, 0.25], closes=closes)

        assert report.iv_rank is not None
        assert report.iv_vs_realized.realized_volatility > 0
        assert 20 in report.cone
