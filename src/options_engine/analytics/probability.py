"""
Strike Probability Analytics

Closed-form (European, Black-Scholes) probability primitives shared by the
position sizer, pre-trade validator and decision rules.

Key patterns:
- scipy.stats.norm for the normal CDF
- numpy for realized volatility and true range math
- Touch probability as a named, overridable policy
- Missing spot/IV raises MissingMarketDataError (fatal for the request)
"""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from loguru import logger
from scipy.stats import norm

from options_engine.exceptions import MissingMarketDataError
from options_engine.models import Bar, OptionContract, OptionRight

RISK_FREE_RATE = 0.045
TRADING_DAYS = 252


class RiskLevel(str, Enum):
    """Strike risk classification."""

    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


def normal_cdf(x: float) -> float:
    return float(norm.cdf(x))


def d1_d2(
    spot: float,
    strike: float,
    sigma: float,
    years: float,
    rate: float = RISK_FREE_RATE,
) -> tuple[float, float]:
    """Black-Scholes d1/d2 terms."""
    vol_sqrt_t = sigma * math.sqrt(years)
    d1 = (math.log(spot / strike) + (rate + sigma ** 2 / 2) * years) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def probability_itm(right: OptionRight, d2: float) -> float:
    """N(d2) for calls, N(-d2) for puts."""
    return normal_cdf(d2) if right is OptionRight.CALL else normal_cdf(-d2)


@dataclass(frozen=True, slots=True)
class TouchProbabilityPolicy:
    """
    Probability-of-touch approximation: multiplier x ITM probability, capped at 1.

    The reflection-principle heuristic; kept as a policy object so callers
    can swap in a different estimate without touching the calculator.
    """

    multiplier: float = 2.0

    def __call__(self, prob_itm: float) -> float:
        return min(max(self.multiplier * prob_itm, 0.0), 1.0)


def expected_move(spot: float, sigma: float, years: float) -> float:
    """One standard deviation move: sigma * sqrt(T) * S."""
    return sigma * math.sqrt(years) * spot


def realized_volatility(closes: Sequence[float]) -> float:
    """Annualized close-to-close volatility from log returns (sample std, sqrt(252))."""
    prices = np.asarray(closes, dtype=float)
    if prices.size < 3 or np.any(prices <= 0):
        return 0.0
    returns = np.diff(np.log(prices))
    return float(np.std(returns, ddof=1) * math.sqrt(TRADING_DAYS))


def average_true_range(bars: Sequence[Bar], period: int = 14) -> float:
    """Simple-average ATR over the last `period` true ranges."""
    if len(bars) < period + 1:
        return 0.0
    highs = np.array([b.high for b in bars], dtype=float)
    lows = np.array([b.low for b in bars], dtype=float)
    closes = np.array([b.close for b in bars], dtype=float)
    prev_close = closes[:-1]
    true_ranges = np.maximum.reduce([
        highs[1:] - lows[1:],
        np.abs(highs[1:] - prev_close),
        np.abs(lows[1:] - prev_close),
    ])
    return float(true_ranges[-period:].mean())


def assess_risk(prob_touch: float, distance_in_atr: float, implied_volatility: float) -> RiskLevel:
    """Classify strike risk from touch probability, ATR distance and IV."""
    if prob_touch > 0.75 or distance_in_atr < 1.0 or implied_volatility > 0.90:
        return RiskLevel.EXTREME
    if prob_touch > 0.60 or distance_in_atr < 1.5 or implied_volatility > 0.60:
        return RiskLevel.HIGH
    if prob_touch > 0.45 or distance_in_atr < 2.0 or implied_volatility > 0.40:
        return RiskLevel.MODERATE
    return RiskLevel.LOW


def strike_warnings(
    prob_touch: float,
    distance_in_atr: float,
    implied_volatility: float,
    distance_pct: float,
) -> list[dict]:
    """Banded warnings for one strike (probability, distance, volatility, proximity)."""
    warnings: list[dict] = []

    if prob_touch > 0.80:
        warnings.append({"severity": "CRITICAL", "metric": "probability", "value": prob_touch,
                         "message": ">80% probability of touching strike"})
    elif prob_touch > 0.70:
        warnings.append({"severity": "HIGH", "metric": "probability", "value": prob_touch,
                         "message": ">70% probability of touching strike"})
    elif prob_touch > 0.60:
        warnings.append({"severity": "MEDIUM", "metric": "probability", "value": prob_touch,
                         "message": ">60% probability of touching strike"})

    if distance_in_atr < 1.0:
        warnings.append({"severity": "CRITICAL", "metric": "distance", "value": distance_in_atr,
                         "message": "Strike within 1 ATR of current price"})
    elif distance_in_atr < 1.5:
        warnings.append({"severity": "HIGH", "metric": "distance", "value": distance_in_atr,
                         "message": "Strike within 1.5 ATR (typical daily range)"})
    elif distance_in_atr < 2.0:
        warnings.append({"severity": "MEDIUM", "metric": "distance", "value": distance_in_atr,
                         "message": "Strike within 2 ATR"})

    if implied_volatility > 0.90:
        warnings.append({"severity": "CRITICAL", "metric": "volatility", "value": implied_volatility,
                         "message": f"Extreme volatility (IV {implied_volatility * 100:.0f}%)"})
    elif implied_volatility > 0.60:
        warnings.append({"severity": "HIGH", "metric": "volatility", "value": implied_volatility,
                         "message": f"High implied volatility ({implied_volatility * 100:.0f}%)"})
    elif implied_volatility > 0.40:
        warnings.append({"severity": "MEDIUM", "metric": "volatility", "value": implied_volatility,
                         "message": f"Elevated volatility ({implied_volatility * 100:.0f}%)"})

    if distance_pct < 1:
        warnings.append({"severity": "CRITICAL", "metric": "proximity", "value": distance_pct,
                         "message": "Underlying within 1% of strike"})
    elif distance_pct < 2:
        warnings.append({"severity": "HIGH", "metric": "proximity", "value": distance_pct,
                         "message": "Underlying within 2% of strike"})
    elif distance_pct < 3:
        warnings.append({"severity": "MEDIUM", "metric": "proximity", "value": distance_pct,
                         "message": "Underlying within 3% of strike"})

    return warnings


@dataclass(slots=True)
class StrikeProbability:
    """
    Probability analytics for one strike.

    Attributes:
        strike: Strike price
        right: CALL or PUT
        underlying_price: Spot used for the calculation
        dte: Days to expiration
        prob_itm: Probability of expiring in the money
        prob_otm: 1 - prob_itm
        prob_touch: Probability of touching the strike before expiration
        expected_move: One standard deviation move in dollars
        distance_pct: |S - K| / S * 100
        distance_in_atr: |S - K| / ATR(14) (0 when ATR unavailable)
        implied_volatility: IV used (decimal)
        historical_volatility: Realized volatility from bars (decimal)
        atr: ATR(14) in dollars
        bid/ask/mid/volume/open_interest: Quote fields for liquidity checks
        risk_level: Banded risk classification
        warnings: Banded warnings
    """

    strike: float
    right: OptionRight
    underlying_price: float
    dte: int
    prob_itm: float
    prob_otm: float
    prob_touch: float
    expected_move: float
    distance_pct: float
    distance_in_atr: float
    implied_volatility: float
    historical_volatility: float = 0.0
    atr: float = 0.0
    d1: float = 0.0
    d2: float = 0.0
    bid: float = 0.0
    ask: float = 0.0
    mid: float = 0.0
    volume: int = 0
    open_interest: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    warnings: list[dict] = field(default_factory=list)

    def __post_init__(self):
        for name in ("prob_itm", "prob_otm", "prob_touch"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")

    @property
    def iv_hv_ratio(self) -> float:
        return self.implied_volatility / self.historical_volatility if self.historical_volatility > 0 else 0.0

    @property
    def bid_ask_spread(self) -> float:
        return self.ask - self.bid if self.bid > 0 and self.ask > 0 else 0.0

    def __repr__(self) -> str:
        return (
            f"StrikeProbability({self.right.value} ${self.strike}, itm={self.prob_itm:.2%}, "
            f"touch={self.prob_touch:.2%}, atr_dist={self.distance_in_atr:.2f}, "
            f"risk={self.risk_level.value})"
        )


class ProbabilityCalculator:
    """
    Compute strike probabilities from a contract snapshot and daily bars.

    Attributes:
        rate: Risk-free rate used in d1/d2
        touch_policy: Probability-of-touch approximation
        atr_period: ATR lookback

    Example:
        >>> calc = ProbabilityCalculator()
        >>> prob = calc.calculate(contract, underlying_price=575.0, bars=bars)
        >>> prob.prob_touch
    """

    def __init__(
        self,
        rate: float = RISK_FREE_RATE,
        touch_policy: Optional[TouchProbabilityPolicy] = None,
        atr_period: int = 14,
    ):
        self.rate = rate
        self.touch_policy = touch_policy or TouchProbabilityPolicy()
        self.atr_period = atr_period

    def calculate(
        self,
        contract: OptionContract,
        underlying_price: Optional[float],
        bars: Sequence[Bar] = (),
        as_of: Optional[date] = None,
    ) -> StrikeProbability:
        """
        Calculate probabilities for one contract.

        Raises:
            MissingMarketDataError: If spot price or implied volatility is missing
        """
        if not underlying_price or underlying_price <= 0:
            raise MissingMarketDataError(
                f"No underlying price for {contract.symbol or 'contract'} ${contract.strike}",
                symbol=contract.symbol,
                field="underlying_price",
            )
        sigma = contract.implied_volatility
        if sigma <= 0:
            raise MissingMarketDataError(
                f"No implied volatility for {contract.right.value} ${contract.strike}",
                symbol=contract.symbol,
                field="implied_volatility",
            )

        dte = contract.days_to_expiration(as_of)
        years = max(dte, 1) / 365
        spot = float(underlying_price)

        d1, d2 = d1_d2(spot, contract.strike, sigma, years, self.rate)
        prob_itm = probability_itm(contract.right, d2)
        prob_touch = self.touch_policy(prob_itm)
        move = expected_move(spot, sigma, years)

        hv = realized_volatility([b.close for b in bars])
        atr = average_true_range(bars, self.atr_period)
        distance = abs(spot - contract.strike)
        distance_in_atr = distance / atr if atr > 0 else 0.0
        distance_pct = distance / spot * 100

        result = StrikeProbability(
            strike=contract.strike,
            right=contract.right,
            underlying_price=spot,
            dte=dte,
            prob_itm=prob_itm,
            prob_otm=1 - prob_itm,
            prob_touch=prob_touch,
            expected_move=move,
            distance_pct=distance_pct,
            distance_in_atr=distance_in_atr,
            implied_volatility=sigma,
            historical_volatility=hv,
            atr=atr,
            d1=d1,
            d2=d2,
            bid=contract.quote.bid,
            ask=contract.quote.ask,
            mid=contract.mid,
            volume=contract.quote.volume,
            open_interest=contract.quote.open_interest,
            risk_level=assess_risk(prob_touch, distance_in_atr, sigma),
            warnings=strike_warnings(prob_touch, distance_in_atr, sigma, distance_pct),
        )
        logger.debug(f"Calculated {result}")
        return result
