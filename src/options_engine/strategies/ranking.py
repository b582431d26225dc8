"""
Strategy Ranker

Threshold filtering and composite scoring of generated strategies.

Score (before preference bonus):
    40 * rr / 5 + 30 * p + 20 * EV / max_risk + 10 * min(avg_leg_volume / 1000, 1)
"""

import math
from dataclasses import dataclass, field
from typing import Iterable, Optional

from loguru import logger

from options_engine.config import RankingConfig
from options_engine.models import Rejection, Strategy

# Unbounded upside scores as if it paid this multiple of max risk
UNBOUNDED_SCORING_RR = 5.0


@dataclass(slots=True)
class RankedStrategy:
    strategy: Strategy
    score: float
    expected_value: float

    def __repr__(self) -> str:
        return f"RankedStrategy(score={self.score:.2f}, {self.strategy!r})"


@dataclass(slots=True)
class RankingResult:
    ranked: list[RankedStrategy] = field(default_factory=list)
    dropped: list[tuple[Strategy, Rejection]] = field(default_factory=list)

    @property
    def strategies(self) -> list[Strategy]:
        return [r.strategy for r in self.ranked]


def expected_value(strategy: Strategy) -> float:
    """Per-share EV; unbounded upside scores as 5x max risk."""
    p = strategy.probability_profit
    max_profit = strategy.max_profit
    if math.isinf(max_profit):
        max_profit = UNBOUNDED_SCORING_RR * strategy.max_risk
    return max_profit * p - strategy.max_risk * (1 - p)


def _scoring_ratio(ratio: float) -> float:
    return UNBOUNDED_SCORING_RR if math.isinf(ratio) else ratio


class StrategyRanker:
    """Filter strategies against thresholds and sort by composite score."""

    def __init__(self, config: Optional[RankingConfig] = None):
        self.config = config or RankingConfig()

    def rejection_for(self, strategy: Strategy) -> Optional[Rejection]:
        cfg = self.config
        rr = strategy.risk_reward
        if rr is None:
            return Rejection(reason="Undefined risk/reward (zero max risk)", code="undefined_risk_reward")
        if rr < cfg.min_reward_ratio:
            return Rejection(
                reason=f"Risk/reward {rr:.2f} below minimum {cfg.min_reward_ratio}",
                code="reward_ratio_below_minimum",
                details={"risk_reward": rr},
            )
        if strategy.probability_profit < cfg.min_prob_profit:
            return Rejection(
                reason=(
                    f"Probability {strategy.probability_profit:.1%} below minimum "
                    f"{cfg.min_prob_profit:.1%}"
                ),
                code="probability_below_minimum",
                details={"probability_profit": strategy.probability_profit},
            )
        if cfg.max_risk is not None and strategy.max_risk > cfg.max_risk:
            return Rejection(
                reason=f"Max risk {strategy.max_risk:.2f} exceeds cap {cfg.max_risk:.2f}",
                code="max_risk_exceeded",
                details={"max_risk": strategy.max_risk},
            )
        liquidity = strategy.metadata.get("liquidity_score")
        if cfg.min_liquidity_score > 0 and liquidity is not None and liquidity < cfg.min_liquidity_score:
            return Rejection(
                reason=f"Liquidity score {liquidity} below minimum {cfg.min_liquidity_score}",
                code="insufficient_liquidity",
                details={"liquidity_score": liquidity},
            )
        return None

    def score(self, strategy: Strategy) -> float:
        p = strategy.probability_profit
        rr = _scoring_ratio(strategy.risk_reward or 0.0)
        ev = expected_value(strategy)
        ev_ratio = ev / strategy.max_risk if strategy.max_risk > 0 else 0.0
        volume_score = min(strategy.average_leg_volume / 1000, 1.0)

        score = rr / 5 * 40 + p * 30 + ev_ratio * 20 + volume_score * 10

        if self.config.preference == "aggressive" and strategy.max_risk > 0:
            score += (_scoring_ratio(strategy.max_profit / strategy.max_risk) - 2) * 5
        elif self.config.preference == "conservative":
            score += p * 10
        return round(score, 2)

    def rank(self, strategies: Iterable[Strategy]) -> RankingResult:
        """
        Drop failing strategies (with reasons) and sort the rest by score,
        then signal bias, then worst-leg liquidity score.
        """
        result = RankingResult()
        for strategy in strategies:
            rejection = self.rejection_for(strategy)
            if rejection is not None:
                result.dropped.append((strategy, rejection))
                continue
            score = self.score(strategy)
            strategy.metadata["score"] = score
            result.ranked.append(RankedStrategy(strategy, score, expected_value(strategy)))

        result.ranked.sort(
            key=lambda r: (
                r.score,
                r.strategy.metadata.get("signal_bias", 0),
                r.strategy.metadata.get("liquidity_score", 0),
            ),
            reverse=True,
        )
        logger.debug(f"Ranked {len(result.ranked)} strategies, dropped {len(result.dropped)}")
        return result
