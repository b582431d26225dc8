"""
Tests for engine configuration loading.

Tests cover:
- Defaults when the file is missing
- YAML parsing and nested sections
- Environment variable overrides
- Validation errors
"""

import pytest

from options_engine.config import EngineConfig, load_engine_config, merge_config_with_env

VALID_YAML = """
account_size: 50000
risk:
  max_risk_pct: 0.25
ranking:
  preference: conservative
monte_carlo:
  seed: 42
decisions:
  breach_buffer_pct: 0.01
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OPTIONS_ENGINE_ACCOUNT_SIZE", "OPTIONS_ENGINE_BREAKERS_ENABLED", "OPTIONS_ENGINE_MC_SEED"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    def write(text):
        path = tmp_path / "engine_config.yaml"
        path.write_text(text)
        return str(path)

    return write


class TestLoadEngineConfig:
    """Test load_engine_config."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_engine_config(str(tmp_path / "missing.yaml"))

        assert config.account_size == 100_000.0
        assert config.risk.max_risk_pct == 0.02
        assert config.circuit_breakers.enabled

    def test_empty_file_uses_defaults(self, config_file):
        assert load_engine_config(config_file("")).ranking.preference == "balanced"

    def test_sections_loaded(self, config_file):
        config = load_engine_config(config_file(VALID_YAML))

        assert config.account_size == 50_000.0
        assert config.ranking.preference == "conservative"
        assert config.monte_carlo.seed == 42
        assert config.decisions.breach_buffer_pct == 0.01

    def test_risk_is_clamped_not_rejected(self, config_file):
        config = load_engine_config(config_file(VALID_YAML))

        assert config.risk.max_risk_pct == 0.10
        assert config.risk.warnings

    def test_invalid_yaml(self, config_file):
        with pytest.raises(ValueError, match="YAML"):
            load_engine_config(config_file("risk: [unclosed"))

    def test_unknown_key(self, config_file):
        with pytest.raises(ValueError, match="Unknown configuration key"):
            load_engine_config(config_file("flow:\n  not_a_setting: 1\n"))

    def test_validation_errors(self, config_file):
        with pytest.raises(ValueError, match="Invalid ranking preference"):
            load_engine_config(config_file("ranking:\n  preference: reckless\n"))

    def test_shipped_config_is_valid(self):
        from pathlib import Path

        path = Path(__file__).resolve().parents[2] / "config" / "engine_config.yaml"
        config = load_engine_config(str(path))
        assert config.validate() == []


class TestEnvOverrides:
    """Test merge_config_with_env."""

    def test_account_size(self, monkeypatch, config_file):
        monkeypatch.setenv("OPTIONS_ENGINE_ACCOUNT_SIZE", "25000")
        assert load_engine_config(config_file(VALID_YAML)).account_size == 25_000.0

    def test_bool_and_int(self, monkeypatch):
        monkeypatch.setenv("OPTIONS_ENGINE_BREAKERS_ENABLED", "false")
        monkeypatch.setenv("OPTIONS_ENGINE_MC_SEED", "7")
        merged = merge_config_with_env({})

        assert merged["circuit_breakers"]["enabled"] is False
        assert merged["monte_carlo"]["seed"] == 7


class TestValidate:
    """Test EngineConfig.validate."""

    def test_defaults_valid(self):
        assert EngineConfig().validate() == []

    def test_collects_every_error(self):
        config = EngineConfig.from_dict({
            "account_size": -1,
            "monte_carlo": {"num_simulations": 0},
            "generator": {"min_width_pct": 0.3, "max_width_pct": 0.2},
        })
        errors = config.validate()

        assert len(errors) == 3
        assert any("account_size" in e for e in errors)

    def test_liquidity_settings(self):
        config = EngineConfig.from_dict({
            "generator": {"min_liquidity_quality": "SUPERB"},
            "ranking": {"min_liquidity_score": 150},
        })
        errors = config.validate()

        assert len(errors) == 2
        assert any("min_liquidity_quality" in e for e in errors)
        assert any("min_liquidity_score" in e for e in errors)
