"""
Tests for portfolio stress testing.

Tests cover:
- Predefined scenario run and ordering
- Severity bands and reference value fallbacks
- Custom and unknown scenarios
"""

import pytest

from options_engine.portfolio.greeks import PortfolioGreeks
from options_engine.portfolio.stress import (
    STRESS_SCENARIOS,
    categorize_severity,
    create_custom_scenario,
    reference_value,
    run_stress_test,
)


@pytest.fixture
def long_delta():
    """Pure +100 delta: P&L = 100 x move on a $100 underlying."""
    return PortfolioGreeks(delta=100.0, position_count=1)


class TestRunStressTest:
    """Test run_stress_test."""

    def test_all_scenarios_sorted_worst_first(self, long_delta):
        report = run_stress_test(long_delta, 100.0, account_size=10_000)
        totals = [s.total for s in report.scenarios]

        assert len(report.scenarios) == len(STRESS_SCENARIOS) == 8
        assert totals == sorted(totals)
        assert report.worst_case.name == "Market Crash (Severe)"
        assert report.worst_case.total == pytest.approx(-1500.0)
        assert report.best_case.name == "Strong Rally"
        assert report.best_case.total == pytest.approx(1000.0)

    def test_severity_assigned(self, long_delta):
        report = run_stress_test(long_delta, 100.0, account_size=10_000)
        by_name = {s.name: s.severity for s in report.scenarios}

        assert by_name["Market Crash (Severe)"] == "SEVERE"
        assert by_name["Flash Crash"] == "MODERATE"
        assert by_name["Market Crash (Mild)"] == "MINOR"
        assert by_name["Sideways Grind"] == "NEUTRAL"

    def test_severe_loss_recommends_hedge(self, long_delta):
        report = run_stress_test(long_delta, 100.0, account_size=10_000)

        assert not report.is_resilient
        assert report.recommendations[0].type == "HEDGE_DOWNSIDE"
        assert report.summary.startswith("Tested 8 market scenarios")

    def test_resilient_portfolio(self):
        report = run_stress_test(PortfolioGreeks(theta=5.0, position_count=1), 100.0, account_size=100_000)

        assert report.is_resilient
        assert report.recommendations[-1].type == "WELL_POSITIONED"

    def test_named_subset_and_unknown_skipped(self, long_delta):
        report = run_stress_test(long_delta, 100.0, scenarios=["RALLY", "NOT_A_SCENARIO"])
        assert [s.name for s in report.scenarios] == ["Strong Rally"]

    def test_only_unknown_raises(self, long_delta):
        with pytest.raises(ValueError):
            run_stress_test(long_delta, 100.0, scenarios=["NOT_A_SCENARIO"])

    def test_custom_scenario(self, long_delta):
        custom = create_custom_scenario("Gap Down", price_move_pct=-0.03, days_forward=1)
        report = run_stress_test(long_delta, 100.0, scenarios=[custom, "RALLY"])

        assert report.worst_case.name == "Gap Down"
        assert report.worst_case.total == pytest.approx(-300.0)


class TestSeverity:
    """Test severity bands and reference values."""

    @pytest.mark.parametrize(
        "pnl,expected",
        [
            (-250.0, "CATASTROPHIC"),
            (-150.0, "SEVERE"),
            (-60.0, "MODERATE"),
            (-10.0, "MINOR"),
            (0.0, "NEUTRAL"),
            (60.0, "POSITIVE"),
            (150.0, "HIGHLY_POSITIVE"),
        ],
    )
    def test_bands(self, pnl, expected):
        assert categorize_severity(pnl, 1000.0) == expected

    def test_reference_prefers_account_size(self, long_delta):
        assert reference_value(long_delta, 50_000) == 50_000

    def test_reference_from_delta(self, long_delta):
        assert reference_value(long_delta) == pytest.approx(1000.0)
        assert reference_value(PortfolioGreeks(delta=-300.0)) == pytest.approx(3000.0)

    def test_reference_default(self):
        assert reference_value(PortfolioGreeks()) == 1000.0

    def test_non_positive_account_ignored(self, long_delta):
        """A zero or negative account must not flip the severity bands."""
        assert reference_value(long_delta, 0.0) == pytest.approx(1000.0)
        assert reference_value(long_delta, -10_000.0) == pytest.approx(1000.0)

    def test_negative_account_keeps_severity(self, long_delta):
        report = run_stress_test(long_delta, 100.0, account_size=-10_000.0)

        assert report.reference_value == pytest.approx(1000.0)
        assert report.worst_case.severity == "CATASTROPHIC"
        assert report.best_case.severity == "HIGHLY_POSITIVE"
