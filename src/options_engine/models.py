"""
Core Data Models

This module provides the shared data model for the analytics pipeline:
option contracts, chain snapshots, multi-leg strategies and rejection values.
Uses dataclasses with slots=True for performance (internal data, validated on entry).

Key patterns:
- dataclass(slots=True) for performance
- __post_init__ validation for data integrity
- frozen dataclasses for market snapshots (re-fetched, never mutated)
- Strategy variants as a closed set of subclasses with typed leg lists

Decision tree:
    Is this data internal to my process?
    ├─ Yes → Use dataclass (performance matters) ← WE ARE HERE
    └─ No → Use Pydantic (validation critical)
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar, Iterable, Optional
from uuid import uuid4

import polars as pl

from options_engine.exceptions import MissingMarketDataError

CONTRACT_MULTIPLIER = 100

# Sentinel for unlimited max profit (e.g. a long call with no short leg)
UNBOUNDED = math.inf


class OptionRight(str, Enum):
    """Option right enum (CALL or PUT)."""

    CALL = "call"
    PUT = "put"


class LegAction(str, Enum):
    """Leg action enum (BUY or SELL)."""

    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        """+1 for long legs, -1 for short legs."""
        return 1 if self is LegAction.BUY else -1


class StrategyType(str, Enum):
    """
    Strategy type enum.

    Types of options strategies the generator can construct.
    """

    VERTICAL_SPREAD = "vertical_spread"
    IRON_CONDOR = "iron_condor"
    CALENDAR_SPREAD = "calendar_spread"


class SpreadDirection(str, Enum):
    """Directional bias of a vertical spread."""

    BULLISH = "bullish"
    BEARISH = "bearish"


@dataclass(frozen=True, slots=True)
class Quote:
    """Quote fields for one option contract."""

    bid: float = 0.0
    ask: float = 0.0
    last: float = 0.0
    volume: int = 0
    open_interest: int = 0


@dataclass(frozen=True, slots=True)
class Greeks:
    """Option sensitivities (per share, not multiplier-scaled)."""

    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    rho: float = 0.0


@dataclass(frozen=True, slots=True)
class OptionContract:
    """
    Option contract snapshot.

    Immutable snapshot value: a fresh instance is produced on every fetch.

    Attributes:
        strike: Strike price (positive)
        expiration: Expiration date
        right: CALL or PUT
        quote: Bid/ask/last/volume/open interest
        greeks: Delta/gamma/theta/vega/rho
        implied_volatility: Annualized IV as a decimal (0.25 = 25%)
        symbol: Optional underlying symbol

    Raises:
        ValueError: If strike is not positive
    """

    strike: float
    expiration: date
    right: OptionRight
    quote: Quote = field(default_factory=Quote)
    greeks: Greeks = field(default_factory=Greeks)
    implied_volatility: float = 0.0
    symbol: str = ""

    def __post_init__(self):
        if self.strike <= 0:
            raise ValueError(f"Strike must be positive, got {self.strike}")
        if not isinstance(self.right, OptionRight):
            raise ValueError(f"Invalid option right: {self.right}")

    @property
    def is_call(self) -> bool:
        return self.right is OptionRight.CALL

    @property
    def mid(self) -> float:
        """Mid price when both sides are quoted, else last trade."""
        if self.quote.bid > 0 and self.quote.ask > 0:
            return (self.quote.bid + self.quote.ask) / 2
        return self.quote.last

    @property
    def spread(self) -> float:
        if self.quote.bid > 0 and self.quote.ask > 0:
            return self.quote.ask - self.quote.bid
        return 0.0

    @property
    def premium(self) -> float:
        """Dollar premium traded today (volume x last x multiplier)."""
        return self.quote.volume * self.quote.last * CONTRACT_MULTIPLIER

    def days_to_expiration(self, as_of: Optional[date] = None) -> int:
        as_of = as_of or date.today()
        return max((self.expiration - as_of).days, 0)

    def __repr__(self) -> str:
        return (
            f"OptionContract({self.right.value.upper()} ${self.strike} {self.expiration}, "
            f"last={self.quote.last}, iv={self.implied_volatility:.3f})"
        )


@dataclass(frozen=True, slots=True)
class ExpirationChain:
    """Calls and puts for one expiration."""

    calls: tuple[OptionContract, ...] = ()
    puts: tuple[OptionContract, ...] = ()

    def contracts(self) -> list[OptionContract]:
        return [*self.calls, *self.puts]


@dataclass(frozen=True, slots=True)
class ChainSnapshot:
    """
    Option chain snapshot for one underlying.

    Owned by the caller for the duration of one analysis pass; the engine
    never mutates it.

    Attributes:
        symbol: Underlying symbol
        underlying_price: Spot price (None when the provider could not supply one)
        expirations: Mapping of expiration date to its calls/puts
        as_of: Snapshot date used for days-to-expiration math
    """

    symbol: str
    underlying_price: Optional[float]
    expirations: dict[date, ExpirationChain] = field(default_factory=dict)
    as_of: date = field(default_factory=date.today)

    def require_price(self) -> float:
        """Return the underlying price or raise MissingMarketDataError."""
        if self.underlying_price is None or self.underlying_price <= 0:
            raise MissingMarketDataError(
                f"No underlying price for {self.symbol}",
                symbol=self.symbol,
                field="underlying_price",
            )
        return float(self.underlying_price)

    def require_expirations(self) -> list[date]:
        """Return sorted expirations or raise MissingMarketDataError when empty."""
        if not self.expirations:
            raise MissingMarketDataError(
                f"Option chain for {self.symbol} has no expirations",
                symbol=self.symbol,
                field="expirations",
            )
        return sorted(self.expirations)

    def all_contracts(self) -> list[OptionContract]:
        contracts: list[OptionContract] = []
        for expiration in sorted(self.expirations):
            contracts.extend(self.expirations[expiration].contracts())
        return contracts

    def calls(self, expiration: Optional[date] = None) -> list[OptionContract]:
        if expiration is not None:
            chain = self.expirations.get(expiration)
            return list(chain.calls) if chain else []
        return [c for c in self.all_contracts() if c.is_call]

    def puts(self, expiration: Optional[date] = None) -> list[OptionContract]:
        if expiration is not None:
            chain = self.expirations.get(expiration)
            return list(chain.puts) if chain else []
        return [c for c in self.all_contracts() if not c.is_call]

    def to_frame(self, contracts: Optional[Iterable[OptionContract]] = None) -> pl.DataFrame:
        """Flatten contracts into a polars DataFrame (one row per contract)."""
        rows = [
            {
                "strike": c.strike,
                "expiration": c.expiration,
                "right": c.right.value,
                "bid": c.quote.bid,
                "ask": c.quote.ask,
                "last": c.quote.last,
                "volume": c.quote.volume,
                "open_interest": c.quote.open_interest,
                "delta": c.greeks.delta,
                "gamma": c.greeks.gamma,
                "theta": c.greeks.theta,
                "vega": c.greeks.vega,
                "implied_volatility": c.implied_volatility,
            }
            for c in (self.all_contracts() if contracts is None else contracts)
        ]
        schema = {
            "strike": pl.Float64,
            "expiration": pl.Date,
            "right": pl.Utf8,
            "bid": pl.Float64,
            "ask": pl.Float64,
            "last": pl.Float64,
            "volume": pl.Int64,
            "open_interest": pl.Int64,
            "delta": pl.Float64,
            "gamma": pl.Float64,
            "theta": pl.Float64,
            "vega": pl.Float64,
            "implied_volatility": pl.Float64,
        }
        return pl.DataFrame(rows, schema=schema)

    @classmethod
    def from_records(
        cls,
        symbol: str,
        underlying_price: Optional[float],
        records: Iterable[dict[str, Any]],
        as_of: Optional[date] = None,
    ) -> "ChainSnapshot":
        """
        Build a snapshot from flat contract records.

        Each record needs strike, expiration (date or ISO string) and type
        ("call"/"put"); quote and Greek fields default to zero.
        """
        calls: dict[date, list[OptionContract]] = {}
        puts: dict[date, list[OptionContract]] = {}
        for record in records:
            expiration = record["expiration"]
            if isinstance(expiration, str):
                expiration = date.fromisoformat(expiration)
            contract = OptionContract(
                strike=float(record["strike"]),
                expiration=expiration,
                right=OptionRight(str(record["type"]).lower()),
                quote=Quote(
                    bid=float(record.get("bid", 0.0)),
                    ask=float(record.get("ask", 0.0)),
                    last=float(record.get("last", 0.0)),
                    volume=int(record.get("volume", 0)),
                    open_interest=int(record.get("open_interest", 0)),
                ),
                greeks=Greeks(
                    delta=float(record.get("delta", 0.0)),
                    gamma=float(record.get("gamma", 0.0)),
                    theta=float(record.get("theta", 0.0)),
                    vega=float(record.get("vega", 0.0)),
                    rho=float(record.get("rho", 0.0)),
                ),
                implied_volatility=float(record.get("implied_volatility", 0.0)),
                symbol=symbol,
            )
            bucket = calls if contract.is_call else puts
            bucket.setdefault(expiration, []).append(contract)

        expirations = {
            exp: ExpirationChain(
                calls=tuple(sorted(calls.get(exp, []), key=lambda c: c.strike)),
                puts=tuple(sorted(puts.get(exp, []), key=lambda c: c.strike)),
            )
            for exp in sorted(set(calls) | set(puts))
        }
        return cls(
            symbol=symbol,
            underlying_price=underlying_price,
            expirations=expirations,
            as_of=as_of or date.today(),
        )


@dataclass(slots=True)
class Leg:
    """
    Strategy leg.

    Attributes:
        action: BUY or SELL
        right: CALL or PUT
        strike: Strike price
        expiration: Expiration date
        price: Per-share entry price
        contracts: Number of contracts (positive, action carries direction)
        greeks: Optional per-share Greeks used for portfolio aggregation
        volume: Day volume of the underlying contract (liquidity scoring)
        implied_volatility: IV of the underlying contract
    """

    action: LegAction
    right: OptionRight
    strike: float
    expiration: date
    price: float
    contracts: int = 1
    greeks: Optional[Greeks] = None
    volume: int = 0
    implied_volatility: float = 0.0

    def __post_init__(self):
        if self.strike <= 0:
            raise ValueError(f"Strike must be positive, got {self.strike}")
        if self.contracts <= 0:
            raise ValueError(f"Contracts must be positive, got {self.contracts}")
        if self.price < 0:
            raise ValueError(f"Leg price cannot be negative, got {self.price}")

    @classmethod
    def from_contract(cls, action: LegAction, contract: OptionContract, contracts: int = 1) -> "Leg":
        return cls(
            action=action,
            right=contract.right,
            strike=contract.strike,
            expiration=contract.expiration,
            price=contract.quote.last,
            contracts=contracts,
            greeks=contract.greeks,
            volume=contract.quote.volume,
            implied_volatility=contract.implied_volatility,
        )

    @property
    def signed_price(self) -> float:
        return self.action.sign * self.price

    def intrinsic_value(self, underlying_price: float) -> float:
        if self.right is OptionRight.CALL:
            return max(0.0, underlying_price - self.strike)
        return max(0.0, self.strike - underlying_price)

    def __repr__(self) -> str:
        return (
            f"Leg({self.action.value.upper()} {self.contracts}x "
            f"{self.right.value.upper()} ${self.strike} {self.expiration} @ {self.price:.2f})"
        )


@dataclass(slots=True, kw_only=True)
class Strategy:
    """
    Multi-leg option strategy.

    Base of the closed strategy variant set (VerticalSpread, IronCondor,
    CalendarSpread). Exactly one of net_debit/net_credit is set and the
    signed leg prices reconcile to it.

    Attributes:
        symbol: Underlying symbol
        legs: Ordered leg list
        max_profit: Maximum profit per share (UNBOUNDED for unlimited upside)
        max_risk: Maximum loss per share (non-negative)
        breakevens: One or two breakeven prices
        probability_profit: Estimated probability of profit in [0, 1]
        net_debit: Debit paid per share (debit strategies)
        net_credit: Credit received per share (credit strategies)
        metadata: Generator/ranker annotations (score, signal strikes, ...)

    Raises:
        ValueError: If amounts, probability or leg reconciliation are invalid
    """

    strategy_type: ClassVar[StrategyType]

    symbol: str
    legs: list[Leg]
    max_profit: float
    max_risk: float
    breakevens: list[float]
    probability_profit: float
    net_debit: Optional[float] = None
    net_credit: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    strategy_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Symbol cannot be empty")
        if not self.legs:
            raise ValueError("Strategy must have at least one leg")
        if (self.net_debit is None) == (self.net_credit is None):
            raise ValueError("Exactly one of net_debit or net_credit must be set")
        if self.max_profit < 0 or self.max_risk < 0:
            raise ValueError(
                f"max_profit/max_risk must be non-negative, got {self.max_profit}/{self.max_risk}"
            )
        if not 0.0 <= self.probability_profit <= 1.0:
            raise ValueError(f"probability_profit must be in [0, 1], got {self.probability_profit}")
        if not 1 <= len(self.breakevens) <= 2:
            raise ValueError(f"Strategy needs one or two breakevens, got {len(self.breakevens)}")

        # Signed leg prices must reconcile to the net debit/credit
        signed = sum(leg.signed_price for leg in self.legs)
        expected = self.net_debit if self.net_debit is not None else -self.net_credit
        if abs(signed - expected) > 1e-6:
            raise ValueError(
                f"Leg prices ({signed:.4f}) do not reconcile to net amount ({expected:.4f})"
            )

        self._validate_shape()

    def _validate_shape(self) -> None:
        """Variant-specific leg checks."""

    @property
    def is_credit(self) -> bool:
        return self.net_credit is not None

    @property
    def net_amount(self) -> float:
        """Absolute debit paid or credit received per share."""
        return self.net_credit if self.net_credit is not None else self.net_debit

    @property
    def risk_reward(self) -> Optional[float]:
        """max_profit / max_risk; None when max_risk is zero, UNBOUNDED for unlimited upside."""
        if self.max_risk == 0:
            return None
        if math.isinf(self.max_profit):
            return UNBOUNDED
        return self.max_profit / self.max_risk

    @property
    def contracts(self) -> int:
        return self.legs[0].contracts

    @property
    def strikes(self) -> list[float]:
        return [leg.strike for leg in self.legs]

    @property
    def average_leg_volume(self) -> float:
        return sum(leg.volume for leg in self.legs) / len(self.legs)

    def short_strike(self, right: OptionRight) -> Optional[float]:
        for leg in self.legs:
            if leg.action is LegAction.SELL and leg.right is right:
                return leg.strike
        return None

    def with_contracts(self, contracts: int) -> "Strategy":
        """Return a copy of this strategy with every leg scaled to `contracts`."""
        legs = [
            Leg(
                action=leg.action,
                right=leg.right,
                strike=leg.strike,
                expiration=leg.expiration,
                price=leg.price,
                contracts=contracts,
                greeks=leg.greeks,
                volume=leg.volume,
                implied_volatility=leg.implied_volatility,
            )
            for leg in self.legs
        ]
        kwargs = {
            "symbol": self.symbol,
            "legs": legs,
            "max_profit": self.max_profit,
            "max_risk": self.max_risk,
            "breakevens": list(self.breakevens),
            "probability_profit": self.probability_profit,
            "net_debit": self.net_debit,
            "net_credit": self.net_credit,
            "metadata": dict(self.metadata),
            "strategy_id": self.strategy_id,
            "created_at": self.created_at,
        }
        if isinstance(self, VerticalSpread):
            kwargs["direction"] = self.direction
        return type(self)(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        rr = self.risk_reward
        return {
            "strategy_id": self.strategy_id,
            "type": self.strategy_type.value,
            "symbol": self.symbol,
            "legs": [
                {
                    "action": leg.action.value,
                    "type": leg.right.value,
                    "strike": leg.strike,
                    "expiration": leg.expiration.isoformat(),
                    "price": leg.price,
                    "contracts": leg.contracts,
                }
                for leg in self.legs
            ],
            "net_debit": self.net_debit,
            "net_credit": self.net_credit,
            "max_profit": "unbounded" if math.isinf(self.max_profit) else round(self.max_profit, 2),
            "max_risk": round(self.max_risk, 2),
            "risk_reward": None if rr is None else ("unbounded" if math.isinf(rr) else round(rr, 2)),
            "breakevens": [round(b, 2) for b in self.breakevens],
            "probability_profit": round(self.probability_profit, 4),
            "metadata": dict(self.metadata),
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(symbol={self.symbol}, strikes={self.strikes}, "
            f"net={self.net_amount:.2f}{' cr' if self.is_credit else ' db'}, "
            f"max_profit={self.max_profit:.2f}, max_risk={self.max_risk:.2f})"
        )


@dataclass(slots=True, kw_only=True)
class VerticalSpread(Strategy):
    """Two-leg same-expiration spread (bull call or bear put)."""

    strategy_type: ClassVar[StrategyType] = StrategyType.VERTICAL_SPREAD

    direction: SpreadDirection

    def _validate_shape(self) -> None:
        if len(self.legs) != 2:
            raise ValueError(f"Vertical spread needs 2 legs, got {len(self.legs)}")
        if self.legs[0].expiration != self.legs[1].expiration:
            raise ValueError("Vertical spread legs must share an expiration")

    @property
    def width(self) -> float:
        return abs(self.legs[0].strike - self.legs[1].strike)


@dataclass(slots=True, kw_only=True)
class IronCondor(Strategy):
    """Short put spread plus short call spread (legs: LP, SP, SC, LC)."""

    strategy_type: ClassVar[StrategyType] = StrategyType.IRON_CONDOR

    def _validate_shape(self) -> None:
        if len(self.legs) != 4:
            raise ValueError(f"Iron condor needs 4 legs, got {len(self.legs)}")
        if self.net_credit is None:
            raise ValueError("Iron condor must be opened for a credit")

    @property
    def put_width(self) -> float:
        return self.legs[1].strike - self.legs[0].strike

    @property
    def call_width(self) -> float:
        return self.legs[3].strike - self.legs[2].strike


@dataclass(slots=True, kw_only=True)
class CalendarSpread(Strategy):
    """Sell near-term, buy far-term at the same strike (legs: near SELL, far BUY)."""

    strategy_type: ClassVar[StrategyType] = StrategyType.CALENDAR_SPREAD

    def _validate_shape(self) -> None:
        if len(self.legs) != 2:
            raise ValueError(f"Calendar spread needs 2 legs, got {len(self.legs)}")
        if self.legs[0].strike != self.legs[1].strike:
            raise ValueError("Calendar spread legs must share a strike")
        if self.legs[0].expiration >= self.legs[1].expiration:
            raise ValueError("Calendar near leg must expire before the far leg")

    @property
    def near_expiration(self) -> date:
        return self.legs[0].expiration

    @property
    def far_expiration(self) -> date:
        return self.legs[1].expiration


@dataclass(frozen=True, slots=True)
class Rejection:
    """
    Data-driven rejection value.

    Returned instead of raising for anything driven by market data
    (strategy rejected, sizing criteria unmet, breaker tripped).
    """

    reason: str
    code: str
    details: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Rejection(code={self.code}, reason={self.reason})"


@dataclass(frozen=True, slots=True)
class Bar:
    """Daily OHLCV bar for realized volatility / ATR computation."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
