"""
Engine Configuration Module

This module provides configuration dataclasses for the analytics engine.
"""

from options_engine.config.engine_config import (
    CacheConfig,
    CircuitBreakerConfig,
    DecisionConfig,
    EngineConfig,
    FlowConfig,
    GeneratorConfig,
    MonteCarloConfig,
    ProjectionConfig,
    RankingConfig,
    RiskConfig,
    StorageConfig,
    TransactionCostConfig,
    load_engine_config,
    merge_config_with_env,
)

__all__ = [
    "CacheConfig",
    "CircuitBreakerConfig",
    "DecisionConfig",
    "EngineConfig",
    "FlowConfig",
    "GeneratorConfig",
    "MonteCarloConfig",
    "ProjectionConfig",
    "RankingConfig",
    "RiskConfig",
    "StorageConfig",
    "TransactionCostConfig",
    "load_engine_config",
    "merge_config_with_env",
]
