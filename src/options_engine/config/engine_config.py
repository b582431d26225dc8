"""
Engine Configuration Loader

Loads and validates analytics engine configuration from YAML file.

Config location: config/engine_config.yaml

Schema:
- account_size: Account size in dollars used for sizing and breakers
- risk: RiskConfig (clamped, never rejected)
- transaction_costs: Commission, fees, spread capture, market impact
- flow: Unusual-activity thresholds
- generator: Strategy construction limits
- ranking: Filter thresholds and scoring preference
- projection: P&L grid defaults
- monte_carlo: Simulation defaults
- circuit_breakers: Daily loss / portfolio risk / VIX thresholds
- decisions: Entry/exit rule thresholds and price history capacity
- cache: Option chain cache TTL
- storage: Paths for the position and breaker documents
- log_level: Logging level

Environment variables prefixed with OPTIONS_ENGINE_ take precedence over
the file (see merge_config_with_env).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger


# (min, max, default) for each RiskConfig field
RISK_BOUNDS: dict[str, tuple[float, float, float]] = {
    "max_risk_pct": (0.005, 0.10, 0.02),
    "min_reward_ratio": (1.0, 10.0, 1.5),
    "min_prob_profit": (0.3, 0.95, 0.45),
    "max_concentration": (0.05, 0.50, 0.40),
}


@dataclass(slots=True)
class RiskConfig:
    """
    Account risk parameters.

    Always produced by clamping caller-supplied values into range: an
    out-of-range value becomes the exact boundary and a warning is recorded,
    never a hard failure.

    Attributes:
        max_risk_pct: Max account fraction at risk per trade [0.005, 0.10]
        min_reward_ratio: Minimum max_profit/max_risk [1.0, 10.0]
        min_prob_profit: Minimum probability of profit [0.3, 0.95]
        max_concentration: Max account fraction in one position [0.05, 0.50]
        warnings: Messages for every value that was clamped
    """

    max_risk_pct: float = 0.02
    min_reward_ratio: float = 1.5
    min_prob_profit: float = 0.45
    max_concentration: float = 0.40
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def clamped(
        cls,
        max_risk_pct: Optional[float] = None,
        min_reward_ratio: Optional[float] = None,
        min_prob_profit: Optional[float] = None,
        max_concentration: Optional[float] = None,
    ) -> "RiskConfig":
        """Build a RiskConfig, clamping every supplied value into its bounds."""
        supplied = {
            "max_risk_pct": max_risk_pct,
            "min_reward_ratio": min_reward_ratio,
            "min_prob_profit": min_prob_profit,
            "max_concentration": max_concentration,
        }
        values: dict[str, float] = {}
        warnings: list[str] = []

        for name, raw in supplied.items():
            low, high, default = RISK_BOUNDS[name]
            if raw is None:
                values[name] = default
                continue
            try:
                value = float(raw)
            except (TypeError, ValueError):
                warnings.append(f"{name} {raw!r} is not numeric, using default {default}")
                values[name] = default
                continue
            if value != value:  # NaN
                warnings.append(f"{name} is NaN, using default {default}")
                values[name] = default
            elif value < low or value > high:
                clamped_value = min(max(value, low), high)
                warnings.append(f"{name} adjusted to {clamped_value} (must be {low}-{high})")
                values[name] = clamped_value
            else:
                values[name] = value

        for message in warnings:
            logger.warning(f"Risk config: {message}")

        return cls(**values, warnings=warnings)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "RiskConfig":
        data = data or {}
        return cls.clamped(
            max_risk_pct=data.get("max_risk_pct"),
            min_reward_ratio=data.get("min_reward_ratio"),
            min_prob_profit=data.get("min_prob_profit"),
            max_concentration=data.get("max_concentration"),
        )

    def __repr__(self) -> str:
        return (
            f"RiskConfig(risk={self.max_risk_pct:.1%}, min_rr={self.min_reward_ratio}, "
            f"min_prob={self.min_prob_profit}, concentration={self.max_concentration:.0%})"
        )


@dataclass
class TransactionCostConfig:
    """Transaction cost assumptions (per contract)."""
    commission_per_contract: float = 0.65
    regulatory_fees: float = 0.05
    spread_capture_rate: float = 0.5
    market_impact_threshold: int = 10   # contracts
    market_impact_rate: float = 0.02    # extra slippage for large orders
    spread_estimate_pct: float = 0.025  # per leg, of max profit
    ev_spread_estimate_pct: float = 0.03


@dataclass
class FlowConfig:
    """Unusual options activity thresholds."""
    min_volume: int = 100
    volume_multiplier: float = 3.0
    min_premium: float = 50_000.0
    oi_ratio_threshold: float = 2.0
    sweep_min_volume: int = 1000
    sweep_oi_ratio: float = 5.0
    block_min_size: int = 50
    block_min_premium: float = 25_000.0
    large_block_size: int = 100


@dataclass
class GeneratorConfig:
    """Strategy construction limits."""
    min_width_pct: float = 0.05
    max_width_pct: float = 0.25
    max_long_strike_pct: float = 1.20   # bull call scan stops above 120% of spot
    min_long_strike_pct: float = 0.80   # bear put scan stops below 80% of spot
    condor_strikes_per_side: int = 5
    condor_max_wing_mismatch: float = 0.30
    condor_max_results: int = 10
    calendar_strike_window_pct: float = 0.05
    calendar_max_pairs: int = 3
    calendar_profit_fraction: float = 0.30
    calendar_probability: float = 0.55
    min_liquidity_quality: Optional[str] = None  # EXCELLENT | GOOD | FAIR | POOR; None disables the filter
    min_liquidity_score: int = 50


@dataclass
class RankingConfig:
    """Ranking filter thresholds and scoring preference."""
    min_reward_ratio: float = 2.0
    min_prob_profit: float = 0.5
    max_risk: Optional[float] = None
    preference: str = "balanced"  # balanced | aggressive | conservative
    min_liquidity_score: float = 0.0  # worst-leg liquidity score floor


@dataclass
class ProjectionConfig:
    """Deterministic P&L grid defaults."""
    price_range: float = 0.20
    num_points: int = 11
    report_price_range: float = 0.25
    report_num_points: int = 13


@dataclass
class MonteCarloConfig:
    """Monte Carlo simulation defaults."""
    num_simulations: int = 1000
    days_forward: int = 30
    daily_volatility: float = 0.01
    iv_volatility: float = 2.0
    seed: Optional[int] = None


@dataclass
class CircuitBreakerConfig:
    """Risk circuit breaker thresholds."""
    max_daily_loss: float = 500.0
    max_daily_loss_pct: float = 0.05
    max_position_loss_pct: float = 0.50
    max_portfolio_risk_pct: float = 0.20
    vix_spike_threshold: float = 40.0
    correlation_threshold: float = 0.85
    approaching_limit_ratio: float = 0.70
    enabled: bool = True


@dataclass
class DecisionConfig:
    """Entry/exit rule thresholds."""
    max_prob_touch: float = 0.75
    min_atr_distance: float = 1.5
    max_implied_volatility: float = 0.90
    breach_buffer_pct: float = 0.02
    sustained_breach_minutes: float = 30.0
    level_tolerance_pct: float = 1.0
    profit_target_pct: float = 50.0
    expiration_warning_dte: int = 2
    price_history_capacity: int = 100
    monitor_interval_secs: float = 60.0


@dataclass
class CacheConfig:
    """Option chain cache settings."""
    chain_ttl_secs: float = 300.0


@dataclass
class StorageConfig:
    """Document store locations."""
    positions_path: str = ".options_engine/positions.json"
    breaker_state_path: str = ".options_engine/circuit_breakers.json"


@dataclass
class EngineConfig:
    """Complete engine configuration."""

    account_size: float = 100_000.0
    risk: RiskConfig = field(default_factory=RiskConfig)
    transaction_costs: TransactionCostConfig = field(default_factory=TransactionCostConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)
    circuit_breakers: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    decisions: DecisionConfig = field(default_factory=DecisionConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        """Create config from dictionary with nested dataclass instantiation."""
        return cls(
            account_size=float(data.get("account_size", 100_000.0)),
            risk=RiskConfig.from_dict(data.get("risk")),
            transaction_costs=TransactionCostConfig(**data.get("transaction_costs", {})),
            flow=FlowConfig(**data.get("flow", {})),
            generator=GeneratorConfig(**data.get("generator", {})),
            ranking=RankingConfig(**data.get("ranking", {})),
            projection=ProjectionConfig(**data.get("projection", {})),
            monte_carlo=MonteCarloConfig(**data.get("monte_carlo", {})),
            circuit_breakers=CircuitBreakerConfig(**data.get("circuit_breakers", {})),
            decisions=DecisionConfig(**data.get("decisions", {})),
            cache=CacheConfig(**data.get("cache", {})),
            storage=StorageConfig(**data.get("storage", {})),
            log_level=data.get("log_level", "INFO"),
        )

    def validate(self) -> List[str]:
        """
        Validate configuration.

        RiskConfig is not checked here: it is clamped on construction.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.account_size <= 0:
            errors.append(f"account_size must be positive: {self.account_size}")

        costs = self.transaction_costs
        if costs.commission_per_contract < 0:
            errors.append(f"commission_per_contract must be >= 0: {costs.commission_per_contract}")
        if costs.regulatory_fees < 0:
            errors.append(f"regulatory_fees must be >= 0: {costs.regulatory_fees}")
        if not (0 <= costs.spread_capture_rate <= 1):
            errors.append(f"spread_capture_rate must be between 0 and 1: {costs.spread_capture_rate}")
        if costs.market_impact_threshold < 1:
            errors.append(f"market_impact_threshold must be >= 1: {costs.market_impact_threshold}")

        if self.flow.volume_multiplier <= 0:
            errors.append(f"flow.volume_multiplier must be positive: {self.flow.volume_multiplier}")
        if self.flow.min_premium < 0:
            errors.append(f"flow.min_premium must be >= 0: {self.flow.min_premium}")

        gen = self.generator
        if not (0 < gen.min_width_pct < gen.max_width_pct):
            errors.append(
                f"generator width bounds invalid: min={gen.min_width_pct}, max={gen.max_width_pct}"
            )
        if gen.condor_strikes_per_side < 1:
            errors.append(f"condor_strikes_per_side must be >= 1: {gen.condor_strikes_per_side}")
        if not (0 <= gen.calendar_profit_fraction <= 1):
            errors.append(f"calendar_profit_fraction must be between 0 and 1: {gen.calendar_profit_fraction}")
        if gen.min_liquidity_quality is not None and gen.min_liquidity_quality not in (
            "EXCELLENT", "GOOD", "FAIR", "POOR"
        ):
            errors.append(f"Invalid generator.min_liquidity_quality: {gen.min_liquidity_quality}")

        if self.ranking.preference not in ("balanced", "aggressive", "conservative"):
            errors.append(f"Invalid ranking preference: {self.ranking.preference}")
        if not (0 <= self.ranking.min_prob_profit <= 1):
            errors.append(f"ranking.min_prob_profit must be between 0 and 1: {self.ranking.min_prob_profit}")
        if not (0 <= self.ranking.min_liquidity_score <= 100):
            errors.append(f"ranking.min_liquidity_score must be between 0 and 100: {self.ranking.min_liquidity_score}")

        if self.projection.num_points < 2 or self.projection.report_num_points < 2:
            errors.append("projection num_points must be >= 2")
        if not (0 < self.projection.price_range < 1):
            errors.append(f"projection.price_range must be between 0 and 1: {self.projection.price_range}")

        if self.monte_carlo.num_simulations < 1:
            errors.append(f"num_simulations must be >= 1: {self.monte_carlo.num_simulations}")
        if self.monte_carlo.days_forward < 0:
            errors.append(f"days_forward must be >= 0: {self.monte_carlo.days_forward}")
        if self.monte_carlo.daily_volatility < 0 or self.monte_carlo.iv_volatility < 0:
            errors.append("Monte Carlo volatilities must be >= 0")

        breakers = self.circuit_breakers
        if breakers.max_daily_loss <= 0:
            errors.append(f"max_daily_loss must be positive: {breakers.max_daily_loss}")
        for name in ("max_daily_loss_pct", "max_position_loss_pct", "max_portfolio_risk_pct"):
            value = getattr(breakers, name)
            if not (0 < value <= 1):
                errors.append(f"{name} must be between 0 and 1: {value}")

        if self.decisions.price_history_capacity < 10:
            errors.append(
                f"price_history_capacity must be >= 10: {self.decisions.price_history_capacity}"
            )
        if self.decisions.monitor_interval_secs <= 0:
            errors.append(f"monitor_interval_secs must be positive: {self.decisions.monitor_interval_secs}")

        if self.cache.chain_ttl_secs < 0:
            errors.append(f"chain_ttl_secs must be >= 0: {self.cache.chain_ttl_secs}")

        return errors


def merge_config_with_env(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge configuration with environment variables.

    Environment variables override config file settings.

    Examples:
        OPTIONS_ENGINE_ACCOUNT_SIZE=50000
        OPTIONS_ENGINE_MAX_RISK_PCT=0.01
        OPTIONS_ENGINE_BREAKERS_ENABLED=false
        OPTIONS_ENGINE_LOG_LEVEL=DEBUG

    Args:
        config_data: Configuration data from file

    Returns:
        Merged configuration with env vars applied
    """
    # env var -> (section or None, key, type)
    env_mapping = {
        "OPTIONS_ENGINE_ACCOUNT_SIZE": (None, "account_size", float),
        "OPTIONS_ENGINE_LOG_LEVEL": (None, "log_level", str),
        "OPTIONS_ENGINE_MAX_RISK_PCT": ("risk", "max_risk_pct", float),
        "OPTIONS_ENGINE_MIN_REWARD_RATIO": ("risk", "min_reward_ratio", float),
        "OPTIONS_ENGINE_MIN_PROB_PROFIT": ("risk", "min_prob_profit", float),
        "OPTIONS_ENGINE_MAX_CONCENTRATION": ("risk", "max_concentration", float),
        "OPTIONS_ENGINE_MAX_DAILY_LOSS": ("circuit_breakers", "max_daily_loss", float),
        "OPTIONS_ENGINE_BREAKERS_ENABLED": ("circuit_breakers", "enabled", bool),
        "OPTIONS_ENGINE_MC_SIMULATIONS": ("monte_carlo", "num_simulations", int),
        "OPTIONS_ENGINE_MC_SEED": ("monte_carlo", "seed", int),
        "OPTIONS_ENGINE_CHAIN_TTL_SECS": ("cache", "chain_ttl_secs", float),
        "OPTIONS_ENGINE_POSITIONS_PATH": ("storage", "positions_path", str),
        "OPTIONS_ENGINE_BREAKER_STATE_PATH": ("storage", "breaker_state_path", str),
    }

    for env_var, (section, key, kind) in env_mapping.items():
        env_value = os.environ.get(env_var)
        if env_value is None:
            continue

        if kind is bool:
            value: Any = env_value.lower() in ("true", "1", "yes", "on")
        elif kind is int:
            value = int(env_value)
        elif kind is float:
            value = float(env_value)
        else:
            value = env_value

        if section is None:
            config_data[key] = value
        else:
            config_data.setdefault(section, {})[key] = value

        logger.debug(f"Overriding {key} from env: {env_var}")

    return config_data


def load_engine_config(config_path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration from YAML file.

    Args:
        config_path: Path to config file (default: config/engine_config.yaml)

    Returns:
        EngineConfig object

    Raises:
        ValueError: If configuration is invalid or the YAML cannot be parsed
    """
    if config_path is None:
        config_path = Path("config") / "engine_config.yaml"

    config_file = Path(config_path)
    data: Dict[str, Any] = {}

    if not config_file.exists():
        logger.warning(f"Engine config file not found: {config_file}, using defaults")
    else:
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config: {e}") from e

        if not data:
            logger.warning(f"Empty config file: {config_file}, using defaults")

    data = merge_config_with_env(data)

    try:
        config = EngineConfig.from_dict(data)
    except TypeError as e:
        raise ValueError(f"Unknown configuration key: {e}") from e

    errors = config.validate()
    if errors:
        error_msg = "Configuration validation errors:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)

    logger.info(f"✓ Loaded engine config from {config_file}")
    logger.debug(f"  Account size: ${config.account_size:,.0f}")
    logger.debug(f"  Risk: {config.risk}")
    logger.debug(f"  Breakers enabled: {config.circuit_breakers.enabled}")

    return config
