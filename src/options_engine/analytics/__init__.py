"""
Analytics Module

Dealer exposure, volatility surface, unusual flow, liquidity and strike
probability analytics over a chain snapshot, plus per-contract analytics.
"""

from options_engine.analytics.contract_metrics import (
    ContractAnalytics,
    Moneyness,
    MoneynessDetail,
    analyze_contract,
)
from options_engine.analytics.exposure import (
    DealerExposure,
    ExposureAnalyzer,
    ExposureReport,
    MaxPain,
    OIWalls,
    PutCallRatios,
    gamma_regime,
)
from options_engine.analytics.flow import (
    FlowConfidence,
    FlowDetector,
    FlowDirection,
    FlowReport,
    OptionTrade,
    UnusualContract,
)
from options_engine.analytics.liquidity import (
    ContractLiquidity,
    LiquidityFilterResult,
    LiquidityQuality,
    MarketDepth,
    MarketDepthReport,
    analyze_contract_liquidity,
    assess_market_depth,
    filter_by_liquidity,
)
from options_engine.analytics.probability import (
    ProbabilityCalculator,
    RiskLevel,
    StrikeProbability,
    TouchProbabilityPolicy,
    assess_risk,
    average_true_range,
    realized_volatility,
)
from options_engine.analytics.volatility import (
    VolatilityAnalyzer,
    VolatilityReport,
    analyze_smile,
    analyze_term_structure,
    iv_rank,
    iv_vs_realized,
    volatility_cone,
)

__all__ = [
    "ContractAnalytics",
    "ContractLiquidity",
    "DealerExposure",
    "ExposureAnalyzer",
    "ExposureReport",
    "FlowConfidence",
    "FlowDetector",
    "FlowDirection",
    "FlowReport",
    "LiquidityFilterResult",
    "LiquidityQuality",
    "MarketDepth",
    "MarketDepthReport",
    "MaxPain",
    "Moneyness",
    "MoneynessDetail",
    "OIWalls",
    "OptionTrade",
    "ProbabilityCalculator",
    "PutCallRatios",
    "RiskLevel",
    "StrikeProbability",
    "TouchProbabilityPolicy",
    "UnusualContract",
    "VolatilityAnalyzer",
    "VolatilityReport",
    "analyze_contract",
    "analyze_contract_liquidity",
    "analyze_smile",
    "analyze_term_structure",
    "assess_market_depth",
    "assess_risk",
    "average_true_range",
    "filter_by_liquidity",
    "gamma_regime",
    "iv_rank",
    "iv_vs_realized",
    "realized_volatility",
    "volatility_cone",
]
