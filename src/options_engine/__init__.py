"""
Options Strategy Analytics Engine

Chain snapshot in; exposure and volatility analytics, ranked and sized
strategies, P&L projections, portfolio risk and entry/exit decisions out.
"""

from options_engine.config import EngineConfig, load_engine_config
from options_engine.exceptions import InvalidRequestError, MissingMarketDataError
from options_engine.logging_setup import configure_logging
from options_engine.models import (
    CONTRACT_MULTIPLIER,
    UNBOUNDED,
    CalendarSpread,
    ChainSnapshot,
    ExpirationChain,
    Greeks,
    IronCondor,
    Leg,
    LegAction,
    OptionContract,
    OptionRight,
    Quote,
    Rejection,
    Strategy,
    VerticalSpread,
)
from options_engine.operations import OPERATIONS, OperationSurface

__version__ = "0.1.0"

__all__ = [
    "CONTRACT_MULTIPLIER",
    "CalendarSpread",
    "ChainSnapshot",
    "EngineConfig",
    "ExpirationChain",
    "Greeks",
    "InvalidRequestError",
    "IronCondor",
    "Leg",
    "LegAction",
    "MissingMarketDataError",
    "OPERATIONS",
    "OperationSurface",
    "OptionContract",
    "OptionRight",
    "Quote",
    "Rejection",
    "Strategy",
    "UNBOUNDED",
    "VerticalSpread",
    "configure_logging",
    "load_engine_config",
]
