"""
Volatility Surface Analyzer

Smile/skew metrics, term structure shape, IV rank and implied vs realized
comparison.

Key patterns:
- Pure functions over (strike, IV) / (dte, IV) pairs for testability
- VolatilityAnalyzer wires them to a ChainSnapshot
- Insufficient input returns None with a warning (never raises)
- numpy for rolling realized volatility (volatility cone)
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from options_engine.analytics.probability import TRADING_DAYS, realized_volatility
from options_engine.models import ChainSnapshot

PATTERN_TOLERANCE = 0.01
SKEW_BUCKETS = (0.25, 0.10)
CONE_WINDOWS = (5, 10, 20, 30, 60, 90)


@dataclass(slots=True)
class SmileAnalysis:
    """
    Volatility smile for one expiration.

    Attributes:
        atm_strike: Strike nearest spot
        atm_iv: IV at the ATM strike
        skew: Delta bucket -> put IV minus call IV
        steepness: Mean |dIV| / |d moneyness| between adjacent strikes
        pattern: smile, smirk, reverse-smirk or flat
    """

    atm_strike: float
    atm_iv: float
    skew: dict[float, float]
    steepness: float
    pattern: str
    left_wing_iv: float
    right_wing_iv: float
    interpretation: str


@dataclass(slots=True)
class TermStructure:
    """ATM IV term structure across expirations."""

    shape: str
    slope: Optional[float]
    short_term_iv: Optional[float]
    medium_term_iv: Optional[float]
    long_term_iv: Optional[float]
    percentiles: dict[str, float]
    points: list[tuple[int, float]]
    interpretation: str


@dataclass(slots=True)
class IVRank:
    rank: float
    percentile: float
    current: float
    historical_min: float
    historical_max: float
    interpretation: str


@dataclass(slots=True)
class IVvsRealized:
    implied_volatility: float
    realized_volatility: Optional[float]
    premium_pct: Optional[float]
    interpretation: str
    lookback_days: int = 20


@dataclass(slots=True)
class VolatilityReport:
    """Everything the analyzer can derive from one snapshot and optional history."""

    symbol: str
    smile: Optional[SmileAnalysis]
    term_structure: Optional[TermStructure]
    iv_rank: Optional[IVRank] = None
    iv_vs_realized: Optional[IVvsRealized] = None
    cone: dict[int, dict[str, float]] = field(default_factory=dict)
    excluded_expirations: list[date] = field(default_factory=list)


def _nearest_index(strikes: Sequence[float], target: float) -> int:
    return min(range(len(strikes)), key=lambda i: abs(strikes[i] - target))


def analyze_smile(strikes: Sequence[float], ivs: Sequence[float], spot: float) -> Optional[SmileAnalysis]:
    """Smile/skew metrics for one expiration (None with fewer than 3 points)."""
    if len(strikes) != len(ivs) or len(strikes) < 3:
        logger.warning(f"Smile analysis needs at least 3 strike/IV pairs, got {len(strikes)}")
        return None

    points = sorted(zip(strikes, ivs))
    ordered_strikes = [p[0] for p in points]
    ordered_ivs = [p[1] for p in points]
    atm_index = _nearest_index(ordered_strikes, spot)
    atm_strike = ordered_strikes[atm_index]
    atm_iv = ordered_ivs[atm_index]

    # OTM sides ordered away from spot
    puts = [iv for k, iv in sorted(points, key=lambda p: -p[0]) if k < atm_strike]
    calls = [iv for k, iv in points if k > atm_strike]
    skew: dict[float, float] = {}
    for bucket in SKEW_BUCKETS:
        if puts and calls:
            skew[bucket] = puts[int(len(puts) * bucket)] - calls[int(len(calls) * bucket)]
        else:
            skew[bucket] = 0.0

    slopes = []
    for (k1, iv1), (k2, iv2) in zip(points, points[1:]):
        moneyness_change = abs(k2 - k1) / atm_strike
        if moneyness_change > 0:
            slopes.append(abs(iv2 - iv1) / moneyness_change)
    steepness = float(np.mean(slopes)) if slopes else 0.0

    third = max(len(points) // 3, 1)
    left_wing = float(np.mean(ordered_ivs[:third]))
    right_wing = float(np.mean(ordered_ivs[-third:]))
    if left_wing > atm_iv + PATTERN_TOLERANCE and right_wing > atm_iv + PATTERN_TOLERANCE:
        pattern = "smile"
    elif left_wing - right_wing > PATTERN_TOLERANCE:
        pattern = "smirk"
    elif right_wing - left_wing > PATTERN_TOLERANCE:
        pattern = "reverse-smirk"
    else:
        pattern = "flat"

    interpretation = {
        "smile": "Both wings bid - tail risk demand on both sides",
        "smirk": "OTM puts bid - downside protection demand",
        "reverse-smirk": "OTM calls bid - upside speculation",
        "flat": "Uniform IV across strikes - low skew environment",
    }[pattern]
    if abs(skew[0.25]) > 0.05:
        interpretation += f". Significant 25-delta skew of {skew[0.25] * 100:.1f} vol points"

    return SmileAnalysis(
        atm_strike=atm_strike,
        atm_iv=atm_iv,
        skew=skew,
        steepness=steepness,
        pattern=pattern,
        left_wing_iv=left_wing,
        right_wing_iv=right_wing,
        interpretation=interpretation,
    )


def _bucket_average(values: list[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def analyze_term_structure(points: Sequence[tuple[int, float]]) -> Optional[TermStructure]:
    """
    Term structure from (dte, atm_iv) points.

    Buckets: short <= 30 DTE, medium 31-90, long > 90. When the short or
    long bucket is empty the slope uses the first and last points.
    """
    if len(points) < 2:
        logger.warning(f"Term structure needs at least 2 expirations, got {len(points)}")
        return None

    ordered = sorted(points)
    short = _bucket_average([iv for dte, iv in ordered if dte <= 30])
    medium = _bucket_average([iv for dte, iv in ordered if 30 < dte <= 90])
    long_ = _bucket_average([iv for dte, iv in ordered if dte > 90])

    front = short if short is not None else ordered[0][1]
    back = long_ if long_ is not None else ordered[-1][1]
    slope = (back - front) / front if front > 0 else None

    if slope is not None and slope > 0.05:
        shape, interpretation = "contango", "Market expects higher volatility further out"
    elif slope is not None and slope < -0.05:
        shape, interpretation = "backwardation", "Near-term event risk or elevated short-term volatility"
    else:
        shape, interpretation = "flat", "Stable volatility expectations across time"

    ivs = sorted(iv for _, iv in ordered)
    percentiles = {
        "p25": ivs[int(len(ivs) * 0.25)],
        "p50": ivs[int(len(ivs) * 0.50)],
        "p75": ivs[int(len(ivs) * 0.75)],
    }
    return TermStructure(
        shape=shape,
        slope=slope,
        short_term_iv=short,
        medium_term_iv=medium,
        long_term_iv=long_,
        percentiles=percentiles,
        points=list(ordered),
        interpretation=interpretation,
    )


def iv_rank(current_iv: float, history: Sequence[float]) -> Optional[IVRank]:
    """IV rank and percentile against a history of IV readings."""
    if not history:
        logger.warning("IV rank needs historical IV readings")
        return None

    low = min(history)
    high = max(history)
    rank = (current_iv - low) / (high - low) * 100 if high > low else 50.0
    percentile = sum(1 for iv in history if iv < current_iv) / len(history) * 100

    if rank > 80:
        interpretation = "very high"
    elif rank > 50:
        interpretation = "elevated"
    elif rank > 20:
        interpretation = "normal"
    else:
        interpretation = "low"

    return IVRank(
        rank=round(rank, 2),
        percentile=round(percentile, 2),
        current=current_iv,
        historical_min=low,
        historical_max=high,
        interpretation=interpretation,
    )


def iv_vs_realized(implied_vol: float, closes: Sequence[float], lookback_days: int = 20) -> IVvsRealized:
    """Compare IV against realized volatility over the most recent lookback window."""
    if len(closes) < lookback_days + 1:
        return IVvsRealized(
            implied_volatility=implied_vol,
            realized_volatility=None,
            premium_pct=None,
            interpretation="Insufficient price history",
            lookback_days=lookback_days,
        )

    realized = realized_volatility(closes[-(lookback_days + 1):])
    if realized <= 0:
        return IVvsRealized(implied_vol, realized, None, "No realized volatility", lookback_days)

    premium_pct = (implied_vol - realized) / realized * 100
    if premium_pct > 20:
        interpretation = "rich, favour selling"
    elif premium_pct > 0:
        interpretation = "slightly rich"
    elif premium_pct > -20:
        interpretation = "slightly cheap"
    else:
        interpretation = "cheap, favour buying"

    return IVvsRealized(
        implied_volatility=implied_vol,
        realized_volatility=realized,
        premium_pct=round(premium_pct, 2),
        interpretation=interpretation,
        lookback_days=lookback_days,
    )


def volatility_cone(closes: Sequence[float], windows: Sequence[int] = CONE_WINDOWS) -> dict[int, dict[str, float]]:
    """Rolling realized volatility stats per window; windows longer than the history are skipped."""
    prices = np.asarray(closes, dtype=float)
    if prices.size < 2 or np.any(prices <= 0):
        return {}
    returns = np.diff(np.log(prices))

    cone: dict[int, dict[str, float]] = {}
    for window in windows:
        if returns.size < window or window < 2:
            continue
        rolling = np.lib.stride_tricks.sliding_window_view(returns, window)
        vols = rolling.std(axis=1, ddof=1) * math.sqrt(TRADING_DAYS)
        cone[window] = {
            "min": float(vols.min()),
            "max": float(vols.max()),
            "mean": float(vols.mean()),
            "current": float(vols[-1]),
        }
    return cone


class VolatilityAnalyzer:
    """
    Volatility surface analysis over a chain snapshot.

    Smile uses the nearest expiration (OTM puts below spot, OTM calls at
    or above spot); term structure uses the ATM IV of each expiration.
    """

    def __init__(self, realized_lookback: int = 20):
        self.realized_lookback = realized_lookback
        self._log = logger.bind(component="volatility")

    def smile_points(self, chain: ChainSnapshot, expiration: date) -> tuple[list[float], list[float]]:
        spot = chain.require_price()
        points = [
            (p.strike, p.implied_volatility) for p in chain.puts(expiration)
            if p.strike < spot and p.implied_volatility > 0
        ]
        points += [
            (c.strike, c.implied_volatility) for c in chain.calls(expiration)
            if c.strike >= spot and c.implied_volatility > 0
        ]
        points.sort()
        return [k for k, _ in points], [iv for _, iv in points]

    def atm_iv(self, chain: ChainSnapshot, expiration: date) -> Optional[float]:
        """Average IV of the call/put at the strike nearest spot."""
        spot = chain.require_price()
        contracts = [
            c for c in chain.expirations[expiration].contracts() if c.implied_volatility > 0
        ]
        if not contracts:
            return None
        atm_strike = min((c.strike for c in contracts), key=lambda k: abs(k - spot))
        ivs = [c.implied_volatility for c in contracts if c.strike == atm_strike]
        return sum(ivs) / len(ivs)

    def analyze(
        self,
        chain: ChainSnapshot,
        iv_history: Sequence[float] = (),
        closes: Sequence[float] = (),
    ) -> VolatilityReport:
        """
        Analyze smile, term structure, IV rank, IV vs realized and cone.

        Raises:
            MissingMarketDataError: Missing spot price or empty chain
        """
        spot = chain.require_price()
        expirations = chain.require_expirations()

        term_points: list[tuple[int, float]] = []
        excluded: list[date] = []
        for expiration in expirations:
            try:
                iv = self.atm_iv(chain, expiration)
                if iv is not None:
                    term_points.append(((expiration - chain.as_of).days, iv))
            except Exception as e:
                self._log.error(f"Volatility analysis failed for {chain.symbol} {expiration}: {e}")
                excluded.append(expiration)

        usable = [e for e in expirations if e not in excluded]
        smile = None
        if usable:
            strikes, ivs = self.smile_points(chain, usable[0])
            smile = analyze_smile(strikes, ivs, spot)

        report = VolatilityReport(
            symbol=chain.symbol,
            smile=smile,
            term_structure=analyze_term_structure(term_points),
            excluded_expirations=excluded,
        )

        front_iv = term_points[0][1] if term_points else None
        if front_iv is not None and iv_history:
            report.iv_rank = iv_rank(front_iv, iv_history)
        if front_iv is not None and closes:
            report.iv_vs_realized = iv_vs_realized(front_iv, closes, self.realized_lookback)
        if closes:
            report.cone = volatility_cone(closes)

        self._log.debug(
            f"{chain.symbol}: smile={smile.pattern if smile else None}, "
            f"term={report.term_structure.shape if report.term_structure else None}"
        )
        return report
