"""
Position Sizing

Sizes strategies against account risk limits using cost-adjusted economics,
and reports on allocation across a set of sized strategies.

Key patterns:
- RiskConfig is clamped on construction, so sizing never validates it again
- Rejections are values (PositionSizing.rejection), never exceptions
- Contracts = min(risk-based, concentration-based), floored at 1
- Quarter Kelly, clamped to [0, 1]
- polars group_by for allocation breakdowns

Decision tree:
    Is this data internal to my process?
    ├─ Yes → Use dataclass (performance matters) ← WE ARE HERE
    └─ No → Use Pydantic (validation critical)
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

import polars as pl
from loguru import logger

from options_engine.config import RiskConfig
from options_engine.exceptions import InvalidRequestError
from options_engine.models import CONTRACT_MULTIPLIER, Rejection, Strategy
from options_engine.risk.costs import TransactionCostModel

KELLY_SCALE = 0.25
COST_IMPACT_WARNING_RATIO = 0.20
EXPIRATION_CONCENTRATION_LIMIT = 0.50
TOTAL_RISK_LIMIT = 0.20


def require_account_size(account_size: Optional[float]) -> float:
    """
    Raises:
        InvalidRequestError: If account_size is missing or not positive
    """
    if account_size is None or not account_size > 0:
        raise InvalidRequestError(
            f"account_size must be positive, got {account_size}", field="account_size"
        )
    return float(account_size)


def kelly_fraction(win_probability: float, payoff_ratio: Optional[float]) -> float:
    """
    Quarter-Kelly fraction.

    f = (b*p - q) / b * 0.25, clamped to [0, 1]. Returns 0 when p <= 0,
    p >= 1 or b <= 0 (including an undefined ratio).
    """
    p = win_probability
    b = payoff_ratio
    if b is None or p <= 0 or p >= 1 or b <= 0:
        return 0.0
    if math.isinf(b):
        raw = p
    else:
        raw = (b * p - (1 - p)) / b
    return min(max(raw * KELLY_SCALE, 0.0), 1.0)


@dataclass(slots=True)
class PositionSizing:
    """
    Sizing outcome for one strategy.

    Attributes:
        recommended_contracts: Contracts to trade (0 when rejected)
        total_cost: Capital committed (net debit or credit x 100 x contracts)
        total_risk: Cost-adjusted max loss in dollars
        potential_profit: Cost-adjusted max profit in dollars
        kelly_fraction: Quarter Kelly on adjusted economics, in [0, 1]
        expected_value: Expected value after transaction costs (dollars)
        cost_breakdown: Transaction cost components (dollars, whole position)
        rejection: Why the strategy was not sized (None when approved)
        limits_applied: Risk-based and concentration-based contract limits
    """

    recommended_contracts: int
    total_cost: float = 0.0
    total_risk: float = 0.0
    potential_profit: float = 0.0
    kelly_fraction: float = 0.0
    expected_value: float = 0.0
    cost_breakdown: dict[str, float] = field(default_factory=dict)
    rejection: Optional[Rejection] = None
    risk_pct: float = 0.0
    position_pct: float = 0.0
    kelly_contracts: int = 0
    adjusted_risk_reward: Optional[float] = None
    transaction_costs: float = 0.0
    limits_applied: dict[str, object] = field(default_factory=dict)
    cost_impact_warning: Optional[str] = None

    def __post_init__(self):
        if self.recommended_contracts < 0:
            raise ValueError(f"recommended_contracts must be >= 0, got {self.recommended_contracts}")
        if not 0.0 <= self.kelly_fraction <= 1.0:
            raise ValueError(f"kelly_fraction must be in [0, 1], got {self.kelly_fraction}")

    @property
    def approved(self) -> bool:
        return self.rejection is None

    @classmethod
    def rejected(cls, rejection: Rejection, adjusted_risk_reward: Optional[float] = None) -> "PositionSizing":
        return cls(recommended_contracts=0, rejection=rejection, adjusted_risk_reward=adjusted_risk_reward)

    def __repr__(self) -> str:
        if self.rejection is not None:
            return f"PositionSizing(REJECTED {self.rejection.code})"
        return (
            f"PositionSizing(contracts={self.recommended_contracts}, "
            f"risk=${self.total_risk:,.2f} ({self.risk_pct:.2f}%), kelly={self.kelly_fraction:.3f})"
        )


class PositionSizer:
    """
    Size strategies against account risk limits.

    Example:
        >>> sizer = PositionSizer(RiskConfig.clamped(max_risk_pct=0.02))
        >>> sizing = sizer.size(spread, account_size=100_000)
        >>> if sizing.approved:
        ...     print(sizing.recommended_contracts)
    """

    def __init__(
        self,
        risk_config: Optional[RiskConfig] = None,
        cost_model: Optional[TransactionCostModel] = None,
    ):
        self.risk_config = risk_config or RiskConfig()
        self.cost_model = cost_model or TransactionCostModel()
        self._log = logger.bind(component="sizing")

    def size(self, strategy: Strategy, account_size: float) -> PositionSizing:
        """
        Raises:
            InvalidRequestError: If account_size is not positive
        """
        account_size = require_account_size(account_size)
        cfg = self.risk_config
        adjusted = self.cost_model.adjust_strategy(strategy, contracts=1)
        adj_rr = adjusted.adjusted_risk_reward

        if adj_rr is None or adj_rr < cfg.min_reward_ratio:
            shown = "undefined" if adj_rr is None else f"{adj_rr:.2f}"
            self._log.debug(f"Sizing rejected {strategy!r}: adjusted R:R {shown}")
            return PositionSizing.rejected(
                Rejection(
                    reason=(
                        f"Risk/reward {shown} below minimum {cfg.min_reward_ratio} "
                        f"(after transaction costs)"
                    ),
                    code="reward_ratio_below_minimum",
                    details={"adjusted_risk_reward": adj_rr},
                ),
                adjusted_risk_reward=adj_rr,
            )

        p = strategy.probability_profit
        if p < cfg.min_prob_profit:
            self._log.debug(f"Sizing rejected {strategy!r}: probability {p:.2f}")
            return PositionSizing.rejected(
                Rejection(
                    reason=f"Probability of profit {p:.1%} below minimum {cfg.min_prob_profit:.1%}",
                    code="probability_below_minimum",
                    details={"probability_profit": p},
                ),
                adjusted_risk_reward=adj_rr,
            )

        risk_per_contract = adjusted.adjusted_max_risk * CONTRACT_MULTIPLIER
        cost_per_contract = abs(strategy.net_amount) * CONTRACT_MULTIPLIER
        profit_per_contract = adjusted.adjusted_max_profit * CONTRACT_MULTIPLIER

        max_risk_dollars = account_size * cfg.max_risk_pct
        max_position_dollars = account_size * cfg.max_concentration
        risk_based = math.floor(max_risk_dollars / risk_per_contract)
        if cost_per_contract > 0:
            concentration_based = math.floor(max_position_dollars / cost_per_contract)
        else:
            concentration_based = risk_based
        contracts = max(1, min(risk_based, concentration_based))

        total_risk = contracts * risk_per_contract
        total_cost = contracts * cost_per_contract
        potential_profit = contracts * profit_per_contract

        position_costs = self.cost_model.adjust_strategy(strategy, contracts=contracts)
        true_ev = self.cost_model.true_expected_value(
            win=potential_profit,
            loss=-total_risk,
            win_probability=p,
            contracts=contracts,
            legs=len(strategy.legs),
        )

        kelly = kelly_fraction(p, adj_rr)
        if cost_per_contract > 0:
            kelly_contracts = max(1, math.floor(account_size * kelly / cost_per_contract))
        else:
            kelly_contracts = 1

        warning = None
        if profit_per_contract > 0 and adjusted.transaction_costs / profit_per_contract > COST_IMPACT_WARNING_RATIO:
            warning = (
                f"Transaction costs are {adjusted.transaction_costs / profit_per_contract:.0%} "
                f"of potential profit"
            )

        sizing = PositionSizing(
            recommended_contracts=contracts,
            total_cost=total_cost,
            total_risk=total_risk,
            potential_profit=potential_profit,
            kelly_fraction=kelly,
            expected_value=true_ev.true_ev,
            cost_breakdown=position_costs.cost_breakdown,
            risk_pct=total_risk / account_size * 100,
            position_pct=total_cost / account_size * 100,
            kelly_contracts=kelly_contracts,
            adjusted_risk_reward=adj_rr,
            transaction_costs=position_costs.transaction_costs,
            limits_applied={
                "risk_based": risk_based,
                "concentration_based": concentration_based,
                "limiting_factor": "risk" if risk_based <= concentration_based else "concentration",
            },
            cost_impact_warning=warning,
        )
        self._log.debug(f"Sized {strategy!r}: {sizing!r}")
        return sizing


@dataclass(slots=True)
class AllocationReport:
    total_strategies: int
    approved: int
    rejected: int
    total_capital: float
    total_risk: float
    total_potential_profit: float
    expected_value: float
    allocation_pct: float
    risk_pct: float
    portfolio_reward_ratio: Optional[float]
    by_type: dict[str, dict[str, float]]
    by_expiration: dict[str, dict[str, float]]
    strategies: list[dict]


def _sizing_frame(sized: Sequence[tuple[Strategy, PositionSizing]]) -> pl.DataFrame:
    rows = [
        {
            "strategy_id": strategy.strategy_id,
            "type": strategy.strategy_type.value,
            "expiration": strategy.legs[0].expiration.isoformat(),
            "contracts": sizing.recommended_contracts,
            "capital": sizing.total_cost,
            "risk": sizing.total_risk,
            "profit": sizing.potential_profit,
            "probability": strategy.probability_profit,
        }
        for strategy, sizing in sized
    ]
    return pl.DataFrame(
        rows,
        schema={
            "strategy_id": pl.Utf8,
            "type": pl.Utf8,
            "expiration": pl.Utf8,
            "contracts": pl.Int64,
            "capital": pl.Float64,
            "risk": pl.Float64,
            "profit": pl.Float64,
            "probability": pl.Float64,
        },
    )


def _breakdown(frame: pl.DataFrame, key: str, total_capital: float) -> dict[str, dict[str, float]]:
    grouped = (
        frame.group_by(key)
        .agg(
            pl.len().alias("count"),
            pl.col("capital").sum(),
            pl.col("risk").sum(),
        )
        .sort(key)
    )
    return {
        row[key]: {
            "count": row["count"],
            "capital": row["capital"],
            "risk": row["risk"],
            "capital_pct": row["capital"] / total_capital * 100 if total_capital > 0 else 0.0,
        }
        for row in grouped.iter_rows(named=True)
    }


def allocation_report(
    sized: Sequence[tuple[Strategy, PositionSizing]],
    account_size: float,
) -> AllocationReport:
    """Summarize capital and risk across sized strategies (approved ones carry the totals)."""
    account_size = require_account_size(account_size)
    approved = [(s, z) for s, z in sized if z.approved]
    frame = _sizing_frame(approved)

    total_capital = float(frame["capital"].sum()) if frame.height else 0.0
    total_risk = float(frame["risk"].sum()) if frame.height else 0.0
    total_profit = float(frame["profit"].sum()) if frame.height else 0.0
    ev = 0.0
    if frame.height:
        ev = float(
            frame.select(
                (pl.col("profit") * pl.col("probability")
                 - pl.col("risk") * (1 - pl.col("probability"))).sum()
            ).item()
        )

    return AllocationReport(
        total_strategies=len(sized),
        approved=len(approved),
        rejected=len(sized) - len(approved),
        total_capital=total_capital,
        total_risk=total_risk,
        total_potential_profit=total_profit,
        expected_value=ev,
        allocation_pct=total_capital / account_size * 100,
        risk_pct=total_risk / account_size * 100,
        portfolio_reward_ratio=total_profit / total_risk if total_risk > 0 else None,
        by_type=_breakdown(frame, "type", total_capital) if frame.height else {},
        by_expiration=_breakdown(frame, "expiration", total_capital) if frame.height else {},
        strategies=[
            {
                "strategy_id": strategy.strategy_id,
                "type": strategy.strategy_type.value,
                "approved": sizing.approved,
                "contracts": sizing.recommended_contracts,
                "capital": sizing.total_cost,
                "risk": sizing.total_risk,
                "rejection": sizing.rejection.reason if sizing.rejection else None,
            }
            for strategy, sizing in sized
        ],
    )


@dataclass(slots=True)
class PortfolioRiskAnalysis:
    total_risk: float
    total_risk_pct: float
    risk_by_expiration: dict[str, float]
    expiration_concentration: float
    diversification_score: float
    warnings: list[str] = field(default_factory=list)

    @property
    def is_healthy(self) -> bool:
        return not self.warnings


def analyze_portfolio_risk(
    positions: Sequence[tuple[Strategy, PositionSizing]],
    account_size: float,
) -> PortfolioRiskAnalysis:
    """
    Concentration and diversification of a set of sized positions.

    Diversification = min(100, expirations*20 + strategy types*20 + (1 - concentration)*60).
    """
    account_size = require_account_size(account_size)
    frame = _sizing_frame([(s, z) for s, z in positions if z.approved])
    total_risk = float(frame["risk"].sum()) if frame.height else 0.0

    by_expiration: dict[str, float] = {}
    if frame.height:
        grouped = frame.group_by("expiration").agg(pl.col("risk").sum()).sort("expiration")
        by_expiration = dict(zip(grouped["expiration"].to_list(), grouped["risk"].to_list()))

    concentration = max(by_expiration.values()) / total_risk if total_risk > 0 else 0.0
    n_types = frame["type"].n_unique() if frame.height else 0
    diversification = min(100.0, len(by_expiration) * 20 + n_types * 20 + (1 - concentration) * 60)

    warnings = []
    if concentration > EXPIRATION_CONCENTRATION_LIMIT:
        warnings.append(f"High concentration: {concentration:.0%} of risk in a single expiration")
    total_risk_pct = total_risk / account_size
    if total_risk_pct > TOTAL_RISK_LIMIT:
        warnings.append(f"Total portfolio risk {total_risk_pct:.1%} exceeds {TOTAL_RISK_LIMIT:.0%} of account")

    for message in warnings:
        logger.warning(f"Portfolio risk: {message}")

    return PortfolioRiskAnalysis(
        total_risk=total_risk,
        total_risk_pct=total_risk_pct * 100,
        risk_by_expiration=by_expiration,
        expiration_concentration=concentration,
        diversification_score=round(diversification, 1),
        warnings=warnings,
    )
