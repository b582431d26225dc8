"""
Contract Liquidity Scoring

Scores each contract on bid/ask spread, day volume and open interest,
filters chains down to tradeable contracts, and grades the depth of a
whole chain.

Key patterns:
- Quality tier = best tier whose spread, volume and OI thresholds all hold
- Score (0-100) = spread tier (<=40) + volume tier (<=30) + OI tier (<=30)
- Spread math shared with TransactionCostModel.bid_ask_quality
- A contract without a two-sided quote is POOR, scores 0 and never trades
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from loguru import logger

from options_engine.models import OptionContract
from options_engine.risk.costs import TransactionCostModel

DEFAULT_MIN_SCORE = 50
DEPTH_MIN_SCORE = 40


class LiquidityQuality(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"

    @property
    def rank(self) -> int:
        return QUALITY_RANK[self]


QUALITY_RANK = {
    LiquidityQuality.EXCELLENT: 3,
    LiquidityQuality.GOOD: 2,
    LiquidityQuality.FAIR: 1,
    LiquidityQuality.POOR: 0,
}


@dataclass(frozen=True, slots=True)
class LiquidityTier:
    """Thresholds a contract must meet for one quality tier (spread is exclusive)."""

    max_spread_pct: float
    min_volume: int
    min_open_interest: int
    description: str


LIQUIDITY_TIERS = {
    LiquidityQuality.EXCELLENT: LiquidityTier(3.0, 500, 1000, "Very tight spread - ideal for trading"),
    LiquidityQuality.GOOD: LiquidityTier(7.0, 100, 500, "Acceptable spread - tradeable with limit orders"),
    LiquidityQuality.FAIR: LiquidityTier(15.0, 50, 200, "Wide spread - use limit orders, expect slippage"),
}
POOR_DESCRIPTION = "Very wide spread - avoid if possible"


@dataclass(slots=True)
class ContractLiquidity:
    """
    Liquidity assessment of one contract.

    Attributes:
        score: 0-100 liquidity score
        quality: Highest tier whose thresholds are all met
        tradeable: score >= min score, spread < 15%, volume and OI both > 0
        spread_pct: (ask - bid) / mid * 100 (inf without a two-sided quote)
        volume_oi_ratio: volume / open interest, 3 decimals (0 without OI)
        warnings: Human-readable liquidity warnings
    """

    contract: OptionContract
    score: int
    quality: LiquidityQuality
    tradeable: bool
    mid: float
    spread: float
    spread_pct: float
    volume: int
    open_interest: int
    volume_oi_ratio: float
    description: str
    warnings: list[str] = field(default_factory=list)

    @property
    def unusual_activity(self) -> bool:
        return self.open_interest > 0 and self.volume > self.open_interest

    def __repr__(self) -> str:
        return (
            f"ContractLiquidity({self.contract.right.value} ${self.contract.strike}, "
            f"score={self.score}, {self.quality.value}, tradeable={self.tradeable})"
        )


def _spread_points(spread_pct: float) -> int:
    if spread_pct < 3:
        return 40
    if spread_pct < 7:
        return 30
    if spread_pct < 15:
        return 20
    return 10


def _volume_points(volume: int) -> int:
    if volume >= 500:
        return 30
    if volume >= 100:
        return 20
    if volume >= 50:
        return 10
    if volume >= 10:
        return 5
    return 0


def _open_interest_points(open_interest: int) -> int:
    if open_interest >= 1000:
        return 30
    if open_interest >= 500:
        return 20
    if open_interest >= 200:
        return 10
    if open_interest >= 50:
        return 5
    return 0


def quality_tier(spread_pct: float, volume: int, open_interest: int) -> LiquidityQuality:
    for quality, tier in LIQUIDITY_TIERS.items():
        if (
            spread_pct < tier.max_spread_pct
            and volume >= tier.min_volume
            and open_interest >= tier.min_open_interest
        ):
            return quality
    return LiquidityQuality.POOR


def analyze_contract_liquidity(
    contract: OptionContract,
    min_score: int = DEFAULT_MIN_SCORE,
    cost_model: Optional[TransactionCostModel] = None,
) -> ContractLiquidity:
    """Score one contract's liquidity."""
    quote = contract.quote
    volume, open_interest = quote.volume, quote.open_interest
    ratio = round(volume / open_interest, 3) if open_interest > 0 else 0.0

    if quote.bid <= 0 or quote.ask <= 0:
        return ContractLiquidity(
            contract=contract,
            score=0,
            quality=LiquidityQuality.POOR,
            tradeable=False,
            mid=0.0,
            spread=0.0,
            spread_pct=math.inf,
            volume=volume,
            open_interest=open_interest,
            volume_oi_ratio=ratio,
            description="No bid/ask quotes available",
            warnings=["No market - cannot trade this option"],
        )

    spread = (cost_model or TransactionCostModel()).bid_ask_quality(quote.bid, quote.ask)
    quality = quality_tier(spread.spread_pct, volume, open_interest)
    score = (
        _spread_points(spread.spread_pct)
        + _volume_points(volume)
        + _open_interest_points(open_interest)
    )

    warnings = []
    if spread.spread_pct > 10:
        warnings.append(f"Wide bid-ask spread ({spread.spread_pct:.1f}%) - expect slippage")
    if volume < 50:
        warnings.append(f"Low volume ({volume}) - may be difficult to fill large orders")
    if open_interest < 200:
        warnings.append(f"Low open interest ({open_interest}) - limited market depth")

    tradeable = score >= min_score and spread.tradeable and volume > 0 and open_interest > 0
    description = (
        LIQUIDITY_TIERS[quality].description if quality in LIQUIDITY_TIERS else POOR_DESCRIPTION
    )
    return ContractLiquidity(
        contract=contract,
        score=score,
        quality=quality,
        tradeable=tradeable,
        mid=spread.mid,
        spread=spread.spread,
        spread_pct=spread.spread_pct,
        volume=volume,
        open_interest=open_interest,
        volume_oi_ratio=ratio,
        description=description,
        warnings=warnings,
    )


@dataclass(slots=True)
class LiquidityFilterResult:
    """
    Contracts split by a liquidity filter.

    Attributes:
        passed: Passing assessments, best score first
        rejected: (assessment, reason) pairs in input order
    """

    passed: list[ContractLiquidity] = field(default_factory=list)
    rejected: list[tuple[ContractLiquidity, str]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.passed) + len(self.rejected)

    @property
    def pass_rate(self) -> float:
        """Percent passed, one decimal."""
        return round(len(self.passed) / self.total * 100, 1) if self.total else 0.0

    @property
    def average_passed_score(self) -> int:
        if not self.passed:
            return 0
        return round(sum(a.score for a in self.passed) / len(self.passed))

    @property
    def rejection_reasons(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for _, reason in self.rejected:
            counts[reason] = counts.get(reason, 0) + 1
        return counts

    @property
    def contracts(self) -> list[OptionContract]:
        return [a.contract for a in self.passed]

    @property
    def summary(self) -> str:
        return f"{len(self.passed)} of {self.total} options passed liquidity filter ({self.pass_rate}%)"


def filter_by_liquidity(
    contracts: Iterable[OptionContract],
    min_quality: LiquidityQuality | str = LiquidityQuality.FAIR,
    min_score: int = DEFAULT_MIN_SCORE,
    cost_model: Optional[TransactionCostModel] = None,
) -> LiquidityFilterResult:
    """
    Keep tradeable contracts at or above a quality tier and score.

    Raises:
        ValueError: If min_quality is not a known tier
    """
    floor = LiquidityQuality(min_quality)
    cost_model = cost_model or TransactionCostModel()
    result = LiquidityFilterResult()
    for contract in contracts:
        assessment = analyze_contract_liquidity(contract, min_score, cost_model)
        if not assessment.tradeable:
            result.rejected.append((assessment, "Not tradeable"))
        elif assessment.quality.rank < floor.rank:
            result.rejected.append(
                (assessment, f"Quality {assessment.quality.value} below {floor.value}")
            )
        elif assessment.score < min_score:
            result.rejected.append((assessment, f"Liquidity score {assessment.score} below {min_score}"))
        else:
            result.passed.append(assessment)

    result.passed.sort(key=lambda a: a.score, reverse=True)
    logger.bind(component="liquidity").debug(result.summary)
    return result


class MarketDepth(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


DEPTH_RECOMMENDATIONS = {
    MarketDepth.EXCELLENT: "Very liquid market - easy to enter/exit positions",
    MarketDepth.GOOD: "Good liquidity - use limit orders for best fills",
    MarketDepth.FAIR: "Moderate liquidity - carefully select strikes",
    MarketDepth.POOR: "Poor liquidity - consider more liquid alternatives",
}


@dataclass(slots=True)
class MarketDepthReport:
    """
    Chain-wide liquidity grade.

    Averages are over tradeable contracts only (volume and OI rounded,
    spread_pct to 2 decimals).
    """

    total_contracts: int
    tradeable_contracts: int
    tradeable_pct: float
    depth: MarketDepth
    avg_volume: int = 0
    avg_open_interest: int = 0
    avg_spread_pct: float = 0.0
    quality_distribution: dict[str, int] = field(default_factory=dict)

    @property
    def recommendation(self) -> str:
        if self.total_contracts == 0:
            return "Insufficient data"
        return DEPTH_RECOMMENDATIONS[self.depth]


def assess_market_depth(
    contracts: Iterable[OptionContract],
    cost_model: Optional[TransactionCostModel] = None,
) -> MarketDepthReport:
    """Grade a chain by the share of contracts that pass a FAIR / score-40 filter."""
    contracts = list(contracts)
    if not contracts:
        return MarketDepthReport(0, 0, 0.0, MarketDepth.POOR)

    filtered = filter_by_liquidity(contracts, LiquidityQuality.FAIR, DEPTH_MIN_SCORE, cost_model)
    passed = filtered.passed
    tradeable_pct = len(passed) / len(contracts) * 100

    avg_volume = avg_oi = 0
    avg_spread = 0.0
    if passed:
        avg_volume = round(sum(a.volume for a in passed) / len(passed))
        avg_oi = round(sum(a.open_interest for a in passed) / len(passed))
        avg_spread = round(sum(a.spread_pct for a in passed) / len(passed), 2)

    if tradeable_pct >= 70 and avg_volume >= 200 and avg_spread < 5:
        depth = MarketDepth.EXCELLENT
    elif tradeable_pct >= 50 and avg_volume >= 100:
        depth = MarketDepth.GOOD
    elif tradeable_pct >= 30:
        depth = MarketDepth.FAIR
    else:
        depth = MarketDepth.POOR

    distribution = {
        q.value: sum(1 for a in passed if a.quality is q)
        for q in (LiquidityQuality.EXCELLENT, LiquidityQuality.GOOD, LiquidityQuality.FAIR)
    }
    return MarketDepthReport(
        total_contracts=len(contracts),
        tradeable_contracts=len(passed),
        tradeable_pct=round(tradeable_pct, 1),
        depth=depth,
        avg_volume=avg_volume,
        avg_open_interest=avg_oi,
        avg_spread_pct=avg_spread,
        quality_distribution=distribution,
    )
