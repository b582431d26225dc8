"""
Tests for Monte Carlo P&L simulation.

Tests cover:
- Deterministic outcome with zero volatility
- Seeded reproducibility
- VaR / CVaR ordering
"""

import numpy as np
import pytest

from options_engine.config import MonteCarloConfig
from options_engine.exceptions import InvalidRequestError
from options_engine.pnl.monte_carlo import MonteCarloSimulator
from options_engine.portfolio.greeks import PortfolioGreeks


class TestMonteCarlo:
    """Test MonteCarloSimulator."""

    def test_zero_volatility_is_pure_theta(self):
        """No price or IV movement: every outcome is theta x days."""
        sim = MonteCarloSimulator(rng=np.random.default_rng(1))
        result = sim.simulate(
            PortfolioGreeks(delta=50.0, theta=12.0),
            575.0,
            num_simulations=200,
            days_forward=10,
            daily_volatility=0.0,
            iv_volatility=0.0,
        )

        assert result.simulations_run == 200
        assert result.var_95 == pytest.approx(120.0)
        assert result.cvar_95 == pytest.approx(120.0)
        assert result.mean_pnl == pytest.approx(120.0)
        assert result.profitable == 200
        assert result.losing == 0

    def test_seeded_runs_are_reproducible(self):
        greeks = PortfolioGreeks(delta=100.0, gamma=-2.0, theta=5.0, vega=-50.0)
        first = MonteCarloSimulator(rng=np.random.default_rng(7)).simulate(greeks, 575.0)
        second = MonteCarloSimulator(rng=np.random.default_rng(7)).simulate(greeks, 575.0)

        assert first.var_95 == second.var_95
        assert first.mean_pnl == second.mean_pnl

    def test_config_seed(self):
        config = MonteCarloConfig(seed=11, num_simulations=300)
        greeks = PortfolioGreeks(delta=100.0)
        first = MonteCarloSimulator(config).simulate(greeks, 575.0)
        second = MonteCarloSimulator(config).simulate(greeks, 575.0)
        assert first.simulations_run == 300
        assert first.var_99 == second.var_99

    def test_tail_statistics_ordering(self):
        greeks = PortfolioGreeks(delta=100.0, gamma=-5.0, theta=10.0, vega=-80.0)
        result = MonteCarloSimulator(rng=np.random.default_rng(3)).simulate(greeks, 575.0)

        assert result.worst_case <= result.var_99 <= result.var_95 <= result.median_pnl <= result.best_case
        assert result.cvar_95 <= result.var_95
        assert result.profitable + result.losing <= result.simulations_run

    def test_interpretation(self):
        sim = MonteCarloSimulator(rng=np.random.default_rng(1))
        result = sim.simulate(PortfolioGreeks(theta=-5.0), 575.0, num_simulations=20,
                              days_forward=4, daily_volatility=0.0, iv_volatility=0.0)
        assert result.interpretation == "95% confident portfolio won't lose more than $20 over next 4 days"

    def test_invalid_simulation_count(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            MonteCarloSimulator().simulate(PortfolioGreeks(), 575.0, num_simulations=0)
        assert exc_info.value.field == "num_simulations"

    def test_invalid_underlying_price(self):
        with pytest.raises(InvalidRequestError) as exc_info:
            MonteCarloSimulator().simulate(PortfolioGreeks(delta=10.0), -1.0, num_simulations=10)
        assert exc_info.value.field == "underlying_price"
