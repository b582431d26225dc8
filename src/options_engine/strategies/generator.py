"""
Strategy Generator

Combinatorial construction of vertical spreads, iron condors and calendar
spreads from one chain snapshot.

Key patterns:
- Scan with pruning: width window (5%-25% of the long strike), outer loop
  bounded to 80%-120% of spot
- Invalid candidates become Rejection values, never exceptions
- Per-expiration failures are logged and the expiration excluded
- Calendar max profit is a named, overridable policy
- Candidates touching institutional/unusual strikes are tagged for ranking
- Optional liquidity floor on contract selection; every candidate carries
  its worst-leg liquidity score
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Optional, Sequence

from loguru import logger

from options_engine.analytics.liquidity import (
    ContractLiquidity,
    analyze_contract_liquidity,
    filter_by_liquidity,
)
from options_engine.config import GeneratorConfig
from options_engine.models import (
    CalendarSpread,
    ChainSnapshot,
    IronCondor,
    Leg,
    LegAction,
    OptionContract,
    OptionRight,
    Rejection,
    SpreadDirection,
    Strategy,
    VerticalSpread,
)


class StrategyKind(str, Enum):
    """Strategy families the generator can build."""

    BULL_CALL_SPREAD = "bull_call_spread"
    BEAR_PUT_SPREAD = "bear_put_spread"
    IRON_CONDOR = "iron_condor"
    CALENDAR_SPREAD = "calendar_spread"


ALL_KINDS = tuple(StrategyKind)


@dataclass(frozen=True, slots=True)
class CalendarProfitPolicy:
    """
    Calendar max-profit estimate: a fixed fraction of the net debit.

    Coarse on purpose; swap in a volatility-aware estimate by passing a
    different policy to the generator.
    """

    fraction: float = 0.30

    def __call__(self, net_debit: float, near: OptionContract, far: OptionContract) -> float:
        return net_debit * self.fraction


@dataclass(slots=True)
class StrikeSignals:
    """Strikes flagged by exposure (OI walls, GEX magnets) and flow analysis."""

    institutional: set[float] = field(default_factory=set)
    unusual: set[float] = field(default_factory=set)

    @property
    def all(self) -> set[float]:
        return self.institutional | self.unusual


@dataclass(slots=True)
class GenerationResult:
    """Strategies built plus the candidates rejected along the way."""

    strategies: list[Strategy] = field(default_factory=list)
    rejections: list[Rejection] = field(default_factory=list)
    excluded_expirations: list[date] = field(default_factory=list)

    def extend(self, other: "GenerationResult") -> None:
        self.strategies.extend(other.strategies)
        self.rejections.extend(other.rejections)

    def __repr__(self) -> str:
        return (
            f"GenerationResult(strategies={len(self.strategies)}, "
            f"rejections={len(self.rejections)}, excluded={len(self.excluded_expirations)})"
        )


def is_valid_contract(contract: OptionContract) -> bool:
    """Usable for spread legs: traded (last > 0) with a known delta."""
    return contract.quote.last > 0 and contract.greeks.delta != 0


class StrategyGenerator:
    """
    Build candidate strategies from a chain snapshot.

    Example:
        >>> generator = StrategyGenerator()
        >>> result = generator.generate(chain, kinds=[StrategyKind.BULL_CALL_SPREAD])
        >>> result.strategies[0].risk_reward
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        calendar_profit_policy: Optional[CalendarProfitPolicy] = None,
    ):
        self.config = config or GeneratorConfig()
        self.calendar_profit_policy = calendar_profit_policy or CalendarProfitPolicy(
            self.config.calendar_profit_fraction
        )
        self._log = logger.bind(component="generator")

    # ------------------------------------------------------------------
    # Vertical spreads
    # ------------------------------------------------------------------

    def bull_call_spreads(
        self,
        symbol: str,
        calls: Iterable[OptionContract],
        underlying_price: float,
        target_strikes: Optional[Sequence[float]] = None,
    ) -> GenerationResult:
        result = GenerationResult()
        valid = sorted((c for c in calls if is_valid_contract(c)), key=lambda c: c.strike)
        if len(valid) < 2:
            return result

        if target_strikes and len(target_strikes) >= 2:
            by_strike = {c.strike: c for c in valid}
            for low, high in zip(target_strikes, target_strikes[1:]):
                long_leg, short_leg = by_strike.get(low), by_strike.get(high)
                if long_leg and short_leg:
                    self._collect(result, self._build_bull_call(symbol, long_leg, short_leg, underlying_price))
            return result

        atm = next((i for i, c in enumerate(valid) if c.strike >= underlying_price), -1)
        for i in range(max(0, atm - 2), len(valid) - 1):
            long_leg = valid[i]
            if long_leg.strike > underlying_price * self.config.max_long_strike_pct:
                break
            for short_leg in valid[i + 1:]:
                width_pct = (short_leg.strike - long_leg.strike) / long_leg.strike
                if width_pct < self.config.min_width_pct:
                    continue
                if width_pct > self.config.max_width_pct:
                    break
                self._collect(result, self._build_bull_call(symbol, long_leg, short_leg, underlying_price))
        return result

    def bear_put_spreads(
        self,
        symbol: str,
        puts: Iterable[OptionContract],
        underlying_price: float,
        target_strikes: Optional[Sequence[float]] = None,
    ) -> GenerationResult:
        result = GenerationResult()
        valid = sorted((p for p in puts if is_valid_contract(p)), key=lambda p: p.strike, reverse=True)
        if len(valid) < 2:
            return result

        if target_strikes and len(target_strikes) >= 2:
            by_strike = {p.strike: p for p in valid}
            for low, high in zip(target_strikes, target_strikes[1:]):
                long_leg, short_leg = by_strike.get(high), by_strike.get(low)
                if long_leg and short_leg:
                    self._collect(result, self._build_bear_put(symbol, long_leg, short_leg, underlying_price))
            return result

        atm = next((i for i, p in enumerate(valid) if p.strike <= underlying_price), -1)
        for i in range(max(0, atm - 2), len(valid) - 1):
            long_leg = valid[i]
            if long_leg.strike < underlying_price * self.config.min_long_strike_pct:
                break
            for short_leg in valid[i + 1:]:
                width_pct = (long_leg.strike - short_leg.strike) / long_leg.strike
                if width_pct < self.config.min_width_pct:
                    continue
                if width_pct > self.config.max_width_pct:
                    break
                self._collect(result, self._build_bear_put(symbol, long_leg, short_leg, underlying_price))
        return result

    def _build_bull_call(
        self, symbol: str, long_leg: OptionContract, short_leg: OptionContract, underlying_price: float
    ) -> Strategy | Rejection:
        net_debit = long_leg.quote.last - short_leg.quote.last
        strikes = [long_leg.strike, short_leg.strike]
        if net_debit <= 0:
            return Rejection(
                reason=f"Bull call {long_leg.strike}/{short_leg.strike}: non-positive net debit {net_debit:.2f}",
                code="non_positive_debit",
                details={"strikes": strikes, "net_debit": net_debit},
            )
        max_profit = (short_leg.strike - long_leg.strike) - net_debit
        if max_profit <= 0:
            return Rejection(
                reason=f"Bull call {long_leg.strike}/{short_leg.strike}: debit exceeds width",
                code="non_positive_profit",
                details={"strikes": strikes, "net_debit": net_debit},
            )
        breakeven = long_leg.strike + net_debit
        return VerticalSpread(
            symbol=symbol,
            direction=SpreadDirection.BULLISH,
            legs=[Leg.from_contract(LegAction.BUY, long_leg), Leg.from_contract(LegAction.SELL, short_leg)],
            net_debit=net_debit,
            max_profit=max_profit,
            max_risk=net_debit,
            breakevens=[breakeven],
            probability_profit=min(abs(short_leg.greeks.delta or 0.5), 1.0),
            metadata={
                "kind": StrategyKind.BULL_CALL_SPREAD.value,
                "name": f"{long_leg.strike}/{short_leg.strike} Bull Call Spread",
                "expiration": long_leg.expiration.isoformat(),
                "underlying_price": underlying_price,
                "distance_to_breakeven_pct": (breakeven - underlying_price) / underlying_price * 100,
            },
        )

    def _build_bear_put(
        self, symbol: str, long_leg: OptionContract, short_leg: OptionContract, underlying_price: float
    ) -> Strategy | Rejection:
        net_debit = long_leg.quote.last - short_leg.quote.last
        strikes = [long_leg.strike, short_leg.strike]
        if net_debit <= 0:
            return Rejection(
                reason=f"Bear put {long_leg.strike}/{short_leg.strike}: non-positive net debit {net_debit:.2f}",
                code="non_positive_debit",
                details={"strikes": strikes, "net_debit": net_debit},
            )
        max_profit = (long_leg.strike - short_leg.strike) - net_debit
        if max_profit <= 0:
            return Rejection(
                reason=f"Bear put {long_leg.strike}/{short_leg.strike}: debit exceeds width",
                code="non_positive_profit",
                details={"strikes": strikes, "net_debit": net_debit},
            )
        breakeven = long_leg.strike - net_debit
        return VerticalSpread(
            symbol=symbol,
            direction=SpreadDirection.BEARISH,
            legs=[Leg.from_contract(LegAction.BUY, long_leg), Leg.from_contract(LegAction.SELL, short_leg)],
            net_debit=net_debit,
            max_profit=max_profit,
            max_risk=net_debit,
            breakevens=[breakeven],
            probability_profit=min(abs(long_leg.greeks.delta or 0.5), 1.0),
            metadata={
                "kind": StrategyKind.BEAR_PUT_SPREAD.value,
                "name": f"{long_leg.strike}/{short_leg.strike} Bear Put Spread",
                "expiration": long_leg.expiration.isoformat(),
                "underlying_price": underlying_price,
                "distance_to_breakeven_pct": (underlying_price - breakeven) / underlying_price * 100,
            },
        )

    # ------------------------------------------------------------------
    # Iron condors
    # ------------------------------------------------------------------

    def iron_condors(
        self,
        symbol: str,
        calls: Iterable[OptionContract],
        puts: Iterable[OptionContract],
        underlying_price: float,
    ) -> GenerationResult:
        """Short call/put spreads from the first strikes beyond spot, wings within 30% of each other."""
        cfg = self.config
        result = GenerationResult()
        otm_calls = sorted(
            (c for c in calls if c.quote.last > 0 and c.strike > underlying_price), key=lambda c: c.strike
        )
        otm_puts = sorted(
            (p for p in puts if p.quote.last > 0 and p.strike < underlying_price),
            key=lambda p: p.strike,
            reverse=True,
        )
        if len(otm_calls) < 2 or len(otm_puts) < 2:
            return result

        n = cfg.condor_strikes_per_side
        for short_call, long_call in list(zip(otm_calls, otm_calls[1:]))[:n]:
            call_width = long_call.strike - short_call.strike
            for short_put, long_put in list(zip(otm_puts, otm_puts[1:]))[:n]:
                put_width = short_put.strike - long_put.strike
                if abs(call_width - put_width) / call_width > cfg.condor_max_wing_mismatch:
                    continue
                self._collect(
                    result,
                    self._build_iron_condor(symbol, long_put, short_put, short_call, long_call, underlying_price),
                )

        result.strategies.sort(
            key=lambda s: s.max_profit / s.max_risk if s.max_risk > 0 else 0.0, reverse=True
        )
        result.strategies = result.strategies[: cfg.condor_max_results]
        return result

    def _build_iron_condor(
        self,
        symbol: str,
        long_put: OptionContract,
        short_put: OptionContract,
        short_call: OptionContract,
        long_call: OptionContract,
        underlying_price: float,
    ) -> Strategy | Rejection:
        strikes = [long_put.strike, short_put.strike, short_call.strike, long_call.strike]
        net_credit = (
            short_put.quote.last + short_call.quote.last - long_put.quote.last - long_call.quote.last
        )
        if net_credit <= 0:
            return Rejection(
                reason=f"Iron condor {'/'.join(map(str, strikes))}: non-positive net credit {net_credit:.2f}",
                code="non_positive_credit",
                details={"strikes": strikes, "net_credit": net_credit},
            )
        call_width = long_call.strike - short_call.strike
        put_width = short_put.strike - long_put.strike
        max_risk = max(call_width, put_width) - net_credit
        if max_risk <= 0:
            return Rejection(
                reason=f"Iron condor {'/'.join(map(str, strikes))}: credit exceeds wing width",
                code="non_positive_risk",
                details={"strikes": strikes, "net_credit": net_credit},
            )
        short_deltas = abs(short_call.greeks.delta or 0.3) + abs(short_put.greeks.delta or 0.3)
        return IronCondor(
            symbol=symbol,
            legs=[
                Leg.from_contract(LegAction.BUY, long_put),
                Leg.from_contract(LegAction.SELL, short_put),
                Leg.from_contract(LegAction.SELL, short_call),
                Leg.from_contract(LegAction.BUY, long_call),
            ],
            net_credit=net_credit,
            max_profit=net_credit,
            max_risk=max_risk,
            breakevens=[short_put.strike - net_credit, short_call.strike + net_credit],
            probability_profit=min(max(1 - short_deltas, 0.0), 1.0),
            metadata={
                "kind": StrategyKind.IRON_CONDOR.value,
                "name": f"{'/'.join(map(str, strikes))} Iron Condor",
                "expiration": long_call.expiration.isoformat(),
                "underlying_price": underlying_price,
                "profit_range": (short_put.strike, short_call.strike),
            },
        )

    # ------------------------------------------------------------------
    # Calendar spreads
    # ------------------------------------------------------------------

    def calendar_spreads(
        self,
        chain: ChainSnapshot,
        right: OptionRight = OptionRight.CALL,
        expirations: Optional[Sequence[date]] = None,
    ) -> GenerationResult:
        """Sell near / buy next expiration at the same near-the-money strike."""
        cfg = self.config
        result = GenerationResult()
        spot = chain.require_price()
        ordered = sorted(expirations) if expirations else chain.require_expirations()
        if len(ordered) < 2:
            return result

        for near_exp, far_exp in list(zip(ordered, ordered[1:]))[: cfg.calendar_max_pairs]:
            near_side = self.liquid_contracts(
                chain.calls(near_exp) if right is OptionRight.CALL else chain.puts(near_exp), result
            )
            far_side = self.liquid_contracts(
                chain.calls(far_exp) if right is OptionRight.CALL else chain.puts(far_exp), result
            )
            far_by_strike = {f.strike: f for f in far_side if f.quote.last > 0}
            for near in near_side:
                if near.quote.last <= 0:
                    continue
                if abs(near.strike - spot) / spot >= cfg.calendar_strike_window_pct:
                    continue
                far = far_by_strike.get(near.strike)
                if far is not None:
                    self._collect(result, self._build_calendar(chain.symbol, near, far, spot))
        return result

    def _build_calendar(
        self, symbol: str, near: OptionContract, far: OptionContract, underlying_price: float
    ) -> Strategy | Rejection:
        net_debit = far.quote.last - near.quote.last
        if net_debit <= 0:
            return Rejection(
                reason=f"Calendar {near.strike} {near.expiration}/{far.expiration}: non-positive net debit",
                code="non_positive_debit",
                details={"strikes": [near.strike], "net_debit": net_debit},
            )
        return CalendarSpread(
            symbol=symbol,
            legs=[Leg.from_contract(LegAction.SELL, near), Leg.from_contract(LegAction.BUY, far)],
            net_debit=net_debit,
            max_profit=self.calendar_profit_policy(net_debit, near, far),
            max_risk=net_debit,
            breakevens=[near.strike - net_debit, near.strike + net_debit],
            probability_profit=self.config.calendar_probability,
            metadata={
                "kind": StrategyKind.CALENDAR_SPREAD.value,
                "name": f"{near.strike} {near.right.value.upper()} Calendar",
                "near_expiration": near.expiration.isoformat(),
                "far_expiration": far.expiration.isoformat(),
                "underlying_price": underlying_price,
            },
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def generate(
        self,
        chain: ChainSnapshot,
        expiration: Optional[date] = None,
        kinds: Sequence[StrategyKind] = ALL_KINDS,
        target_strikes: Optional[Sequence[float]] = None,
        signals: Optional[StrikeSignals] = None,
    ) -> GenerationResult:
        """
        Generate candidates for the requested strategy kinds.

        Args:
            chain: Chain snapshot (not mutated)
            expiration: Single expiration for vertical/condor candidates; all when None
            kinds: Strategy kinds to build
            target_strikes: Strikes used pairwise instead of the auto-scan
            signals: Institutional/unusual strikes used to tag candidates

        Raises:
            MissingMarketDataError: Missing spot price or empty expiration set
        """
        spot = chain.require_price()
        expirations = chain.require_expirations()
        if expiration is not None:
            expirations = [e for e in expirations if e == expiration]

        result = GenerationResult()
        strikes = sorted(target_strikes) if target_strikes else None
        for exp in expirations:
            try:
                calls = self.liquid_contracts(chain.calls(exp), result)
                puts = self.liquid_contracts(chain.puts(exp), result)
                if StrategyKind.BULL_CALL_SPREAD in kinds:
                    result.extend(self.bull_call_spreads(chain.symbol, calls, spot, strikes))
                if StrategyKind.BEAR_PUT_SPREAD in kinds:
                    result.extend(self.bear_put_spreads(chain.symbol, puts, spot, strikes))
                if StrategyKind.IRON_CONDOR in kinds:
                    result.extend(self.iron_condors(chain.symbol, calls, puts, spot))
            except Exception as e:
                self._log.error(f"Strategy generation failed for {chain.symbol} {exp}: {e}")
                result.excluded_expirations.append(exp)

        if StrategyKind.CALENDAR_SPREAD in kinds:
            usable = [e for e in chain.require_expirations() if e not in result.excluded_expirations]
            result.extend(self.calendar_spreads(chain, expirations=usable))

        self.apply_liquidity(result.strategies, chain)
        if signals is not None:
            self.apply_signals(result.strategies, signals)

        self._log.info(
            f"{chain.symbol}: generated {len(result.strategies)} candidates "
            f"({len(result.rejections)} rejected)"
        )
        return result

    def apply_signals(self, strategies: Iterable[Strategy], signals: StrikeSignals) -> None:
        """Tag strategies whose strikes coincide with flagged strikes."""
        flagged = signals.all
        for strategy in strategies:
            hits = sorted({k for k in strategy.strikes if k in flagged})
            strategy.metadata["signal_strikes"] = hits
            strategy.metadata["signal_bias"] = len(hits)

    def liquid_contracts(
        self, contracts: Sequence[OptionContract], result: GenerationResult
    ) -> list[OptionContract]:
        """Contracts passing the configured liquidity floor; all of them when no floor is set."""
        cfg = self.config
        if cfg.min_liquidity_quality is None:
            return list(contracts)
        filtered = filter_by_liquidity(contracts, cfg.min_liquidity_quality, cfg.min_liquidity_score)
        for assessment, reason in filtered.rejected:
            c = assessment.contract
            result.rejections.append(Rejection(
                reason=f"{c.right.value} {c.strike} {c.expiration}: {reason}",
                code="insufficient_liquidity",
                details={"strikes": [c.strike], "liquidity_score": assessment.score},
            ))
        # Keep strike order for the scans
        return sorted(filtered.contracts, key=lambda c: c.strike)

    def apply_liquidity(self, strategies: Iterable[Strategy], chain: ChainSnapshot) -> None:
        """Tag each strategy with its least liquid leg's score and quality."""
        by_key = {(c.expiration, c.right, c.strike): c for c in chain.all_contracts()}
        cache: dict[tuple, Optional[ContractLiquidity]] = {}
        for strategy in strategies:
            worst: Optional[ContractLiquidity] = None
            for leg in strategy.legs:
                key = (leg.expiration, leg.right, leg.strike)
                if key not in cache:
                    contract = by_key.get(key)
                    cache[key] = analyze_contract_liquidity(contract) if contract is not None else None
                assessment = cache[key]
                if assessment is not None and (worst is None or assessment.score < worst.score):
                    worst = assessment
            if worst is not None:
                strategy.metadata["liquidity_score"] = worst.score
                strategy.metadata["liquidity_quality"] = worst.quality.value

    def _collect(self, result: GenerationResult, candidate: Strategy | Rejection) -> None:
        if isinstance(candidate, Rejection):
            self._log.debug(f"Rejected candidate: {candidate.reason}")
            result.rejections.append(candidate)
        else:
            result.strategies.append(candidate)
