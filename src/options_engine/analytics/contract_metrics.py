"""
Per-Contract Analytics

Pricing decomposition, moneyness, expected move, leverage and activity
for a single option contract against the current underlying price.
"""

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from options_engine.analytics.probability import RISK_FREE_RATE, d1_d2, probability_itm
from options_engine.exceptions import InvalidRequestError
from options_engine.models import OptionContract, OptionRight

DEFAULT_IV = 0.30
ATM_BAND_PCT = 5.0
DEEP_BAND_PCT = 20.0
UNUSUAL_VOLUME_OI = 2.0


class Moneyness(str, Enum):
    ITM = "ITM"
    ATM = "ATM"
    OTM = "OTM"


class MoneynessDetail(str, Enum):
    DEEP_ITM = "Deep ITM"
    ITM = "ITM"
    ATM = "ATM"
    OTM = "OTM"
    DEEP_OTM = "Deep OTM"


def intrinsic_value(right: OptionRight, strike: float, spot: float) -> float:
    if right is OptionRight.CALL:
        return max(0.0, spot - strike)
    return max(0.0, strike - spot)


def contract_breakeven(right: OptionRight, strike: float, premium: float) -> float:
    return strike + premium if right is OptionRight.CALL else strike - premium


def moneyness_pct(right: OptionRight, strike: float, spot: float) -> float:
    """Percent in the money: (S - K) / K * 100, sign flipped for puts."""
    pct = (spot - strike) / strike * 100
    return pct if right is OptionRight.CALL else -pct


def classify_moneyness(pct: float) -> Moneyness:
    if pct > ATM_BAND_PCT:
        return Moneyness.ITM
    if pct < -ATM_BAND_PCT:
        return Moneyness.OTM
    return Moneyness.ATM


def detailed_moneyness(pct: float) -> MoneynessDetail:
    if pct > DEEP_BAND_PCT:
        return MoneynessDetail.DEEP_ITM
    if pct > ATM_BAND_PCT:
        return MoneynessDetail.ITM
    if pct > -ATM_BAND_PCT:
        return MoneynessDetail.ATM
    if pct > -DEEP_BAND_PCT:
        return MoneynessDetail.OTM
    return MoneynessDetail.DEEP_OTM


def leverage(delta: float, spot: float, price: float) -> float:
    """Lambda: |delta * S / option price| (0 when unpriced)."""
    if price <= 0:
        return 0.0
    return abs(delta * spot / price)


def volume_activity(ratio: float) -> str:
    if ratio > 1:
        return "High activity - possible new positions"
    if ratio > 0.5:
        return "Moderate activity"
    return "Low activity - mostly holding"


@dataclass(slots=True)
class ExpectedMoveRange:
    amount: float
    percent: float
    one_sigma: tuple[float, float]
    two_sigma: tuple[float, float]


@dataclass(slots=True)
class ContractAnalytics:
    """
    Analytics for one contract.

    Attributes:
        price: Last trade, falling back to mid when untraded
        time_value: max(0, price - intrinsic)
        moneyness_pct: Percent in the money (negative when out of the money)
        probability_itm: Black-Scholes N(d2) / N(-d2); intrinsic 0/1 at expiry
        leverage: |delta * S / price|
        daily_theta: Per-day theta (Greeks are already quoted per day)
    """

    contract: OptionContract
    days_to_expiration: int
    price: float
    intrinsic_value: float
    time_value: float
    breakeven: float
    moneyness: Moneyness
    moneyness_detail: MoneynessDetail
    moneyness_pct: float
    probability_itm: float
    probability_otm: float
    expected_move: ExpectedMoveRange
    leverage: float
    daily_theta: float
    volume_oi_ratio: float
    activity: str
    unusual_activity: bool

    def __repr__(self) -> str:
        return (
            f"ContractAnalytics({self.contract.right.value} ${self.contract.strike}, "
            f"{self.moneyness_detail.value}, p_itm={self.probability_itm:.2%}, "
            f"leverage={self.leverage:.1f})"
        )


def analyze_contract(
    contract: OptionContract,
    spot: float,
    as_of: Optional[date] = None,
    rate: float = RISK_FREE_RATE,
) -> ContractAnalytics:
    """
    Full analytics for one contract. Missing IV falls back to 30%.

    Raises:
        InvalidRequestError: If spot is not positive
    """
    if spot <= 0:
        raise InvalidRequestError(f"Underlying price must be positive, got {spot}", field="underlying_price")

    right, strike = contract.right, contract.strike
    dte = contract.days_to_expiration(as_of)
    price = contract.quote.last if contract.quote.last > 0 else contract.mid
    sigma = contract.implied_volatility if contract.implied_volatility > 0 else DEFAULT_IV
    years = dte / 365

    intrinsic = intrinsic_value(right, strike, spot)
    if years > 0:
        _, d2 = d1_d2(spot, strike, sigma, years, rate)
        p_itm = probability_itm(right, d2)
    else:
        p_itm = 1.0 if intrinsic > 0 else 0.0

    one_sigma = spot * sigma * math.sqrt(years)
    move = ExpectedMoveRange(
        amount=round(one_sigma, 2),
        percent=round(one_sigma / spot * 100, 2),
        one_sigma=(round(spot - one_sigma, 2), round(spot + one_sigma, 2)),
        two_sigma=(round(spot - 2 * one_sigma, 2), round(spot + 2 * one_sigma, 2)),
    )

    pct = moneyness_pct(right, strike, spot)
    oi = contract.quote.open_interest
    ratio = contract.quote.volume / oi if oi > 0 else 0.0
    return ContractAnalytics(
        contract=contract,
        days_to_expiration=dte,
        price=price,
        intrinsic_value=round(intrinsic, 2),
        time_value=round(max(0.0, price - intrinsic), 2),
        breakeven=round(contract_breakeven(right, strike, price), 2),
        moneyness=classify_moneyness(pct),
        moneyness_detail=detailed_moneyness(pct),
        moneyness_pct=round(pct, 2),
        probability_itm=round(p_itm, 4),
        probability_otm=round(1 - p_itm, 4),
        expected_move=move,
        leverage=round(leverage(contract.greeks.delta, spot, price), 2),
        daily_theta=round(contract.greeks.theta, 4),
        volume_oi_ratio=round(ratio, 2),
        activity=volume_activity(ratio),
        unusual_activity=ratio > UNUSUAL_VOLUME_OI,
    )
