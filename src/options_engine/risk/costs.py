"""
Transaction Cost Model

Commissions, regulatory fees, bid/ask spread capture and market impact.

All dollar amounts are position dollars (per-share price x 100 x contracts)
unless a field says "per share".
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from options_engine.config import TransactionCostConfig
from options_engine.models import CONTRACT_MULTIPLIER, Strategy


@dataclass(slots=True)
class EntryCost:
    entry_price: float
    spread: float
    spread_cost: float
    commission: float
    regulatory_fees: float
    market_impact: float
    total: float
    per_contract: float
    contracts: int


@dataclass(slots=True)
class ExitCost:
    exit_price: float
    spread: float
    spread_cost: float
    commission: float
    regulatory_fees: float
    market_impact: float
    proceeds: float
    per_contract: float
    contracts: int


@dataclass(slots=True)
class RoundTripCosts:
    entry: EntryCost
    exit: ExitCost
    theoretical_profit: float
    real_profit: float
    total_costs: float
    cost_impact_pct: float
    interpretation: str


@dataclass(slots=True)
class SpreadQuality:
    mid: float
    spread: float
    spread_pct: float
    quality: str
    tradeable: bool


@dataclass(slots=True)
class CostAdjustment:
    """
    Strategy economics after round-trip costs.

    Attributes:
        adjusted_max_profit: Per-share max profit net of costs
        adjusted_max_risk: Per-share max risk plus costs
        adjusted_risk_reward: adjusted profit / adjusted risk (None if risk is 0)
        transaction_costs: Total round-trip cost in dollars for `contracts`
        cost_breakdown: Dollar components of transaction_costs
    """

    original_max_profit: float
    original_max_risk: float
    adjusted_max_profit: float
    adjusted_max_risk: float
    adjusted_risk_reward: Optional[float]
    transaction_costs: float
    contracts: int
    cost_breakdown: dict[str, float] = field(default_factory=dict)

    @property
    def profit_reduction_pct(self) -> float:
        original = self.original_max_profit * CONTRACT_MULTIPLIER * self.contracts
        if original <= 0 or math.isinf(original):
            return 0.0
        return self.transaction_costs / original * 100


@dataclass(slots=True)
class TrueExpectedValue:
    theoretical_ev: float
    true_ev: float
    transaction_costs: float

    @property
    def ev_reduction(self) -> float:
        return self.theoretical_ev - self.true_ev

    @property
    def recommendation(self) -> str:
        if self.true_ev > 0:
            return "Positive expected value after costs"
        return "Negative expected value - avoid this trade"


class TransactionCostModel:
    """
    Real-world trading cost estimates.

    Example:
        >>> model = TransactionCostModel()
        >>> model.adjust_strategy(spread).adjusted_risk_reward
    """

    def __init__(self, config: Optional[TransactionCostConfig] = None):
        self.config = config or TransactionCostConfig()

    def entry_price(self, bid: float, ask: float) -> float:
        """Limit buy fill: bid plus the captured share of the spread."""
        return bid + (ask - bid) * self.config.spread_capture_rate

    def exit_price(self, bid: float, ask: float) -> float:
        """Limit sell fill: ask minus the captured share of the spread."""
        return ask - (ask - bid) * self.config.spread_capture_rate

    def market_impact(self, theoretical_price: float, contracts: int) -> float:
        if contracts >= self.config.market_impact_threshold:
            return theoretical_price * self.config.market_impact_rate * contracts
        return 0.0

    def trade_cost(self, contracts: int, bid: float, ask: float) -> float:
        """Fixed and slippage cost of one fill (commission, fees, spread, impact)."""
        cfg = self.config
        mid = (bid + ask) / 2
        spread_cost = (ask - bid) * cfg.spread_capture_rate * CONTRACT_MULTIPLIER * contracts
        fixed = contracts * (cfg.commission_per_contract + cfg.regulatory_fees)
        return fixed + spread_cost + self.market_impact(mid, contracts)

    def entry_cost(self, theoretical_price: float, bid: float, ask: float, contracts: int = 1) -> EntryCost:
        cfg = self.config
        price = self.entry_price(bid, ask)
        commission = contracts * cfg.commission_per_contract
        fees = contracts * cfg.regulatory_fees
        impact = self.market_impact(theoretical_price, contracts)
        total = price * contracts * CONTRACT_MULTIPLIER + commission + fees + impact
        return EntryCost(
            entry_price=price,
            spread=ask - bid,
            spread_cost=(ask - bid) * cfg.spread_capture_rate,
            commission=commission,
            regulatory_fees=fees,
            market_impact=impact,
            total=total,
            per_contract=total / contracts,
            contracts=contracts,
        )

    def exit_cost(self, theoretical_price: float, bid: float, ask: float, contracts: int = 1) -> ExitCost:
        cfg = self.config
        price = self.exit_price(bid, ask)
        commission = contracts * cfg.commission_per_contract
        fees = contracts * cfg.regulatory_fees
        impact = self.market_impact(theoretical_price, contracts)
        proceeds = price * contracts * CONTRACT_MULTIPLIER - commission - fees - impact
        return ExitCost(
            exit_price=price,
            spread=ask - bid,
            spread_cost=(ask - bid) * cfg.spread_capture_rate,
            commission=commission,
            regulatory_fees=fees,
            market_impact=impact,
            proceeds=proceeds,
            per_contract=proceeds / contracts,
            contracts=contracts,
        )

    def round_trip(
        self,
        entry_mid: float,
        entry_bid: float,
        entry_ask: float,
        exit_mid: float,
        exit_bid: float,
        exit_ask: float,
        contracts: int = 1,
    ) -> RoundTripCosts:
        entry = self.entry_cost(entry_mid, entry_bid, entry_ask, contracts)
        exit_ = self.exit_cost(exit_mid, exit_bid, exit_ask, contracts)
        notional = CONTRACT_MULTIPLIER * contracts
        theoretical = (exit_mid - entry_mid) * notional
        real = exit_.proceeds - entry.total
        total_costs = (entry.total - entry_mid * notional) + (exit_mid * notional - exit_.proceeds)

        if theoretical > 0 and real < 0:
            interpretation = "CAUTION: Theoretical profit erased by transaction costs"
        elif real > 0:
            interpretation = "Profitable after costs"
        else:
            interpretation = "Loss after costs"

        return RoundTripCosts(
            entry=entry,
            exit=exit_,
            theoretical_profit=theoretical,
            real_profit=real,
            total_costs=total_costs,
            cost_impact_pct=total_costs / abs(theoretical) * 100 if theoretical else 0.0,
            interpretation=interpretation,
        )

    def bid_ask_quality(self, bid: float, ask: float) -> SpreadQuality:
        mid = (bid + ask) / 2
        spread = ask - bid
        spread_pct = spread / mid * 100 if mid > 0 else math.inf
        if spread_pct < 3:
            quality = "EXCELLENT"
        elif spread_pct < 7:
            quality = "GOOD"
        elif spread_pct < 15:
            quality = "FAIR"
        else:
            quality = "POOR"
        return SpreadQuality(mid=mid, spread=spread, spread_pct=spread_pct, quality=quality,
                             tradeable=spread_pct < 15)

    def adjust_strategy(self, strategy: Strategy, contracts: int = 1) -> CostAdjustment:
        """
        Deduct round-trip costs from a strategy's per-share economics.

        Costs (dollars) = (commission + fees) x 2 (entry and exit) x legs x contracts
        plus an estimated spread cost of max_profit x 100 x 2.5% per leg per contract.
        """
        cfg = self.config
        legs = len(strategy.legs)
        round_trips = 2 * legs * contracts
        commission = round_trips * cfg.commission_per_contract
        fees = round_trips * cfg.regulatory_fees

        spread_basis = strategy.max_risk if math.isinf(strategy.max_profit) else strategy.max_profit
        spread_estimate = spread_basis * CONTRACT_MULTIPLIER * cfg.spread_estimate_pct * legs * contracts
        total = commission + fees + spread_estimate

        per_share = total / (CONTRACT_MULTIPLIER * contracts)
        adjusted_profit = strategy.max_profit - per_share
        adjusted_risk = strategy.max_risk + per_share
        if adjusted_risk <= 0:
            adjusted_rr = None
        elif math.isinf(adjusted_profit):
            adjusted_rr = math.inf
        else:
            adjusted_rr = adjusted_profit / adjusted_risk

        return CostAdjustment(
            original_max_profit=strategy.max_profit,
            original_max_risk=strategy.max_risk,
            adjusted_max_profit=adjusted_profit,
            adjusted_max_risk=adjusted_risk,
            adjusted_risk_reward=adjusted_rr,
            transaction_costs=total,
            contracts=contracts,
            cost_breakdown={
                "entry_commission": commission / 2,
                "exit_commission": commission / 2,
                "entry_fees": fees / 2,
                "exit_fees": fees / 2,
                "estimated_spread_cost": spread_estimate,
            },
        )

    def true_expected_value(
        self,
        win: float,
        loss: float,
        win_probability: float,
        contracts: int = 1,
        legs: int = 2,
    ) -> TrueExpectedValue:
        """
        Expected value after round-trip costs.

        Args:
            win: Dollar gain on a winning outcome
            loss: Signed dollar result of a losing outcome (negative)
            win_probability: Probability of the winning outcome
        """
        cfg = self.config
        fixed = legs * 2 * contracts * (cfg.commission_per_contract + cfg.regulatory_fees)
        spread = max(win, abs(loss)) * cfg.ev_spread_estimate_pct * legs
        costs = fixed + spread

        p = win_probability
        theoretical = p * win + (1 - p) * loss
        true_ev = p * (win - costs) + (1 - p) * (loss - costs)
        return TrueExpectedValue(theoretical_ev=theoretical, true_ev=true_ev, transaction_costs=costs)
