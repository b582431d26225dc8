"""
Dealer Exposure Analyzer

Dealer gamma/vega exposure (GEX/VEX), put/call ratios, max pain and
open-interest walls for one chain snapshot.

Key patterns:
- polars group_by for per-strike and per-expiration aggregation
- Dealers assumed net short options sold to customers:
  call GEX = -gamma * OI * 100 * S^2 * 0.01, put GEX = +gamma * OI * 100 * S^2 * 0.01
- Per-expiration failures are logged and the expiration excluded
- Missing spot price or empty chain raises MissingMarketDataError
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import numpy as np
import polars as pl
from loguru import logger

from options_engine.exceptions import MissingMarketDataError
from options_engine.models import CONTRACT_MULTIPLIER, ChainSnapshot

GEX_SCALING = 0.01
STRONG_GEX = 1_000_000
LEVEL_GEX = 5_000_000
MAGNET_GEX = 10_000_000
MAGNET_WINDOW_PCT = 0.05


@dataclass(slots=True)
class ExpirationExposure:
    """GEX totals for one expiration."""

    expiration: date
    total_gex: float
    call_gex: float
    put_gex: float
    total_vex: float
    regime: str


@dataclass(slots=True)
class DealerExposure:
    """
    Aggregated dealer exposure.

    Attributes:
        total_gex: Net GEX across the chain
        call_gex / put_gex: Per-side GEX totals
        total_vex: Net VEX across the chain
        regime: "Positive Gamma", "Negative Gamma" or "Neutral"
        magnitude: "strong" when |total_gex| > 1e6, else "weak"
        gex_by_strike: Strike -> net GEX (all expirations)
        vex_by_strike: Strike -> net VEX (all expirations)
        by_expiration: Per-expiration totals
        zero_gamma_strike: Strike with the smallest |GEX|
        max_negative_strike: Strike with the most negative GEX (None if no negative GEX)
        support_levels / resistance_levels / magnet_levels: Key strikes
    """

    total_gex: float
    call_gex: float
    put_gex: float
    total_vex: float
    regime: str
    magnitude: str
    gex_by_strike: dict[float, float] = field(default_factory=dict)
    vex_by_strike: dict[float, float] = field(default_factory=dict)
    by_expiration: list[ExpirationExposure] = field(default_factory=list)
    zero_gamma_strike: Optional[float] = None
    max_negative_strike: Optional[float] = None
    support_levels: list[float] = field(default_factory=list)
    resistance_levels: list[float] = field(default_factory=list)
    magnet_levels: list[float] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"DealerExposure(total_gex={self.total_gex:,.0f}, regime={self.regime}, "
            f"zero_gamma={self.zero_gamma_strike})"
        )


@dataclass(slots=True)
class PutCallRatio:
    """One put/call ratio (None when the call side is zero)."""

    ratio: Optional[float]
    call_total: float
    put_total: float
    interpretation: str


@dataclass(slots=True)
class PutCallRatios:
    volume: PutCallRatio
    open_interest: PutCallRatio
    premium: PutCallRatio


@dataclass(slots=True)
class MaxPain:
    """Max pain strike and the pain distribution around spot."""

    strike: float
    total_pain: float
    distance: float
    distance_pct: float
    interpretation: str
    distribution: list[dict[str, float]] = field(default_factory=list)


@dataclass(slots=True)
class OIWall:
    strike: float
    open_interest: int
    pct_of_total: float


@dataclass(slots=True)
class OIWalls:
    """Top open-interest strikes per side plus nearest support/resistance."""

    call_walls: list[OIWall]
    put_walls: list[OIWall]
    resistance: Optional[float]
    support: Optional[float]
    resistance_strength: float
    support_strength: float

    @property
    def expected_range(self) -> Optional[tuple[float, float]]:
        if self.support is None or self.resistance is None:
            return None
        return (self.support, self.resistance)


@dataclass(slots=True)
class ExposureReport:
    """Complete exposure analysis for one snapshot."""

    symbol: str
    underlying_price: float
    dealer: DealerExposure
    put_call: PutCallRatios
    max_pain: MaxPain
    oi_walls: OIWalls
    gamma_squeeze_risk: str
    implications: list[dict[str, Any]] = field(default_factory=list)
    excluded_expirations: list[date] = field(default_factory=list)

    def institutional_strikes(self) -> set[float]:
        """OI walls plus GEX magnets; strikes the generator biases toward."""
        strikes = {w.strike for w in self.oi_walls.call_walls}
        strikes.update(w.strike for w in self.oi_walls.put_walls)
        strikes.update(self.dealer.magnet_levels)
        return strikes


def gamma_regime(total_gex: float) -> str:
    if total_gex > 0:
        return "Positive Gamma"
    if total_gex < 0:
        return "Negative Gamma"
    return "Neutral"


def interpret_put_call_ratio(ratio: Optional[float], kind: str) -> str:
    """Sentiment label for a volume / open_interest / premium ratio."""
    if ratio is None:
        return "No call activity"
    if kind == "volume":
        if ratio > 1.2:
            return "Very bearish sentiment - high put buying"
        if ratio > 0.8:
            return "Moderately bearish sentiment"
        if ratio < 0.5:
            return "Bullish sentiment - high call buying"
        return "Neutral sentiment"
    if kind == "open_interest":
        if ratio > 1.5:
            return "Very bearish positioning - high put open interest"
        if ratio > 1.0:
            return "Moderately bearish positioning"
        if ratio < 0.7:
            return "Bullish positioning - high call open interest"
        return "Neutral positioning"
    if ratio > 1.3:
        return "Very bearish - premium flowing into puts"
    if ratio > 0.9:
        return "Moderately bearish premium flow"
    return "Neutral premium flow"


class ExposureAnalyzer:
    """
    Dealer positioning and market structure analysis.

    Example:
        >>> analyzer = ExposureAnalyzer()
        >>> report = analyzer.analyze(chain)
        >>> report.dealer.regime
        'Negative Gamma'
    """

    def __init__(self, oi_wall_count: int = 5):
        self.oi_wall_count = oi_wall_count
        self._log = logger.bind(component="exposure")

    def exposure_frame(self, chain: ChainSnapshot, expiration: Optional[date] = None) -> pl.DataFrame:
        """Per-contract frame with gex/vex/premium columns added."""
        spot = chain.require_price()
        contracts = (
            chain.all_contracts()
            if expiration is None
            else chain.expirations[expiration].contracts()
        )
        frame = chain.to_frame(contracts)
        side = pl.when(pl.col("right") == "call").then(-1.0).otherwise(1.0)
        return frame.with_columns(
            (
                side * pl.col("gamma") * pl.col("open_interest")
                * CONTRACT_MULTIPLIER * spot * spot * GEX_SCALING
            ).alias("gex"),
            (-pl.col("vega") * pl.col("open_interest") * CONTRACT_MULTIPLIER).alias("vex"),
            (pl.col("last") * pl.col("volume")).alias("premium"),
        )

    def analyze(self, chain: ChainSnapshot) -> ExposureReport:
        """
        Run the full exposure analysis.

        Raises:
            MissingMarketDataError: Missing spot price or no usable expirations
        """
        spot = chain.require_price()
        expirations = chain.require_expirations()

        frames: list[pl.DataFrame] = []
        summaries: list[ExpirationExposure] = []
        excluded: list[date] = []
        for expiration in expirations:
            try:
                frame = self.exposure_frame(chain, expiration)
                summaries.append(self._expiration_summary(expiration, frame))
                frames.append(frame)
            except Exception as e:
                self._log.error(f"Exposure analysis failed for {chain.symbol} {expiration}: {e}")
                excluded.append(expiration)

        if not frames or not any(f.height for f in frames):
            raise MissingMarketDataError(
                f"No expirations of {chain.symbol} could be analyzed",
                symbol=chain.symbol,
                field="expirations",
            )

        frame = pl.concat(frames)
        dealer = self.dealer_exposure(frame, spot)
        dealer.by_expiration = summaries
        walls = self.oi_walls(frame, spot)
        squeeze = self.gamma_squeeze_risk(dealer, spot)

        report = ExposureReport(
            symbol=chain.symbol,
            underlying_price=spot,
            dealer=dealer,
            put_call=self.put_call_ratios(frame),
            max_pain=self.max_pain(frame, spot),
            oi_walls=walls,
            gamma_squeeze_risk=squeeze,
            implications=self.strategy_implications(dealer, squeeze),
            excluded_expirations=excluded,
        )
        self._log.info(
            f"{chain.symbol}: {dealer.regime} ({dealer.magnitude}), "
            f"max pain {report.max_pain.strike}, squeeze risk {squeeze}"
        )
        return report

    def _expiration_summary(self, expiration: date, frame: pl.DataFrame) -> ExpirationExposure:
        totals = frame.select(
            pl.col("gex").sum().alias("total"),
            pl.col("gex").filter(pl.col("right") == "call").sum().alias("call"),
            pl.col("gex").filter(pl.col("right") == "put").sum().alias("put"),
            pl.col("vex").sum().alias("vex"),
        ).row(0, named=True)
        total = float(totals["total"] or 0.0)
        return ExpirationExposure(
            expiration=expiration,
            total_gex=total,
            call_gex=float(totals["call"] or 0.0),
            put_gex=float(totals["put"] or 0.0),
            total_vex=float(totals["vex"] or 0.0),
            regime=gamma_regime(total),
        )

    def dealer_exposure(self, frame: pl.DataFrame, spot: float) -> DealerExposure:
        """Aggregate GEX/VEX by strike and derive key levels."""
        by_strike = (
            frame.group_by("strike")
            .agg(pl.col("gex").sum(), pl.col("vex").sum())
            .sort("strike")
        )
        gex_by_strike = dict(zip(by_strike["strike"].to_list(), by_strike["gex"].to_list()))
        vex_by_strike = dict(zip(by_strike["strike"].to_list(), by_strike["vex"].to_list()))

        total = float(frame["gex"].sum())
        call_gex = float(frame.filter(pl.col("right") == "call")["gex"].sum())
        put_gex = float(frame.filter(pl.col("right") == "put")["gex"].sum())

        zero_gamma = None
        max_negative = None
        if gex_by_strike:
            zero_gamma = min(gex_by_strike, key=lambda k: (abs(gex_by_strike[k]), k))
            most_negative = min(gex_by_strike, key=lambda k: gex_by_strike[k])
            if gex_by_strike[most_negative] < 0:
                max_negative = most_negative

        support = sorted(
            (k for k, v in gex_by_strike.items() if k < spot and v < -LEVEL_GEX),
            key=lambda k: gex_by_strike[k],
        )[:3]
        resistance = sorted(
            (k for k, v in gex_by_strike.items() if k > spot and v > LEVEL_GEX),
            key=lambda k: -gex_by_strike[k],
        )[:3]
        magnets = sorted(
            (
                k for k, v in gex_by_strike.items()
                if v > MAGNET_GEX and abs(k - spot) / spot < MAGNET_WINDOW_PCT
            ),
            key=lambda k: -gex_by_strike[k],
        )[:3]

        return DealerExposure(
            total_gex=total,
            call_gex=call_gex,
            put_gex=put_gex,
            total_vex=float(frame["vex"].sum()),
            regime=gamma_regime(total),
            magnitude="strong" if abs(total) > STRONG_GEX else "weak",
            gex_by_strike=gex_by_strike,
            vex_by_strike=vex_by_strike,
            zero_gamma_strike=zero_gamma,
            max_negative_strike=max_negative,
            support_levels=support,
            resistance_levels=resistance,
            magnet_levels=magnets,
        )

    def put_call_ratios(self, frame: pl.DataFrame) -> PutCallRatios:
        sides = frame.group_by("right").agg(
            pl.col("volume").sum(),
            pl.col("open_interest").sum(),
            pl.col("premium").sum(),
        )
        totals = {row["right"]: row for row in sides.iter_rows(named=True)}
        empty = {"volume": 0, "open_interest": 0, "premium": 0.0}
        calls = totals.get("call", empty)
        puts = totals.get("put", empty)

        def ratio(kind: str) -> PutCallRatio:
            call_total = float(calls[kind])
            put_total = float(puts[kind])
            value = round(put_total / call_total, 3) if call_total > 0 else None
            return PutCallRatio(
                ratio=value,
                call_total=call_total,
                put_total=put_total,
                interpretation=interpret_put_call_ratio(value, kind),
            )

        return PutCallRatios(
            volume=ratio("volume"),
            open_interest=ratio("open_interest"),
            premium=ratio("premium"),
        )

    def max_pain(self, frame: pl.DataFrame, spot: float) -> MaxPain:
        """Strike minimizing aggregate option-holder payout (ties to the lower strike)."""
        strikes = np.sort(frame["strike"].unique().to_numpy())
        calls = frame.filter(pl.col("right") == "call")
        puts = frame.filter(pl.col("right") == "put")

        call_k = calls["strike"].to_numpy()
        call_oi = calls["open_interest"].to_numpy().astype(float)
        put_k = puts["strike"].to_numpy()
        put_oi = puts["open_interest"].to_numpy().astype(float)

        # rows: test strike, columns: contracts
        call_pain = (np.maximum(strikes[:, None] - call_k[None, :], 0.0) * call_oi).sum(axis=1)
        put_pain = (np.maximum(put_k[None, :] - strikes[:, None], 0.0) * put_oi).sum(axis=1)
        pain = (call_pain + put_pain) * CONTRACT_MULTIPLIER

        best = int(np.argmin(pain))
        strike = float(strikes[best])
        distance = strike - spot
        distance_pct = distance / spot * 100

        if abs(distance_pct) < 1:
            interpretation = "Max pain near spot - neutral positioning"
        elif distance_pct > 3:
            interpretation = "Max pain well above spot - upward pull into expiration"
        elif distance_pct < -3:
            interpretation = "Max pain well below spot - downward pull into expiration"
        else:
            interpretation = "Max pain mildly displaced from spot"

        distribution = [
            {"strike": float(k), "pain": float(p)}
            for k, p in zip(strikes, pain)
            if abs(k - spot) <= spot * 0.10
        ]
        return MaxPain(
            strike=strike,
            total_pain=float(pain[best]),
            distance=round(distance, 2),
            distance_pct=round(distance_pct, 2),
            interpretation=interpretation,
            distribution=distribution,
        )

    def oi_walls(self, frame: pl.DataFrame, spot: float) -> OIWalls:
        def walls(right: str) -> tuple[list[OIWall], int]:
            by_strike = (
                frame.filter(pl.col("right") == right)
                .group_by("strike")
                .agg(pl.col("open_interest").sum())
                .sort(["open_interest", "strike"], descending=[True, False])
            )
            total = int(by_strike["open_interest"].sum()) if by_strike.height else 0
            top = [
                OIWall(
                    strike=float(row["strike"]),
                    open_interest=int(row["open_interest"]),
                    pct_of_total=round(row["open_interest"] / total * 100, 2) if total else 0.0,
                )
                for row in by_strike.head(self.oi_wall_count).iter_rows(named=True)
            ]
            return top, total

        call_walls, _ = walls("call")
        put_walls, _ = walls("put")

        above = sorted((w for w in call_walls if w.strike > spot), key=lambda w: w.strike)
        below = sorted((w for w in put_walls if w.strike < spot), key=lambda w: -w.strike)
        resistance = above[0] if above else None
        support = below[0] if below else None

        return OIWalls(
            call_walls=call_walls,
            put_walls=put_walls,
            resistance=resistance.strike if resistance else None,
            support=support.strike if support else None,
            resistance_strength=resistance.pct_of_total if resistance else 0.0,
            support_strength=support.pct_of_total if support else 0.0,
        )

    def gamma_squeeze_risk(self, dealer: DealerExposure, spot: float) -> str:
        """HIGH/MODERATE/LOW from distance to the most negative GEX strike."""
        if dealer.max_negative_strike is None:
            return "LOW"
        distance = abs(spot - dealer.max_negative_strike) / spot
        if distance < 0.03:
            return "HIGH"
        if distance < 0.05:
            return "MODERATE"
        return "LOW"

    def strategy_implications(self, dealer: DealerExposure, squeeze_risk: str) -> list[dict[str, Any]]:
        implications: list[dict[str, Any]] = []
        if dealer.total_gex > 0:
            implications.append({
                "type": "Premium Selling",
                "reason": "Positive gamma - dealer hedging dampens moves",
                "strategies": ["Iron Condor", "Credit Spreads", "Calendar Spreads"],
            })
        elif dealer.total_gex < 0:
            implications.append({
                "type": "Long Gamma",
                "reason": "Negative gamma - dealer hedging amplifies moves",
                "strategies": ["Debit Spreads", "Long Options"],
            })
        if dealer.magnet_levels:
            implications.append({
                "type": "Mean Reversion",
                "reason": f"Strong magnet at {dealer.magnet_levels[0]}",
                "strategies": ["Sell premium around magnet levels", "Calendar Spreads"],
            })
        if squeeze_risk == "HIGH":
            implications.append({
                "type": "Warning",
                "reason": f"Gamma squeeze risk - price near negative GEX strike {dealer.max_negative_strike}",
                "strategies": [],
            })
        return implications
