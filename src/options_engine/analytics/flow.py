"""
Unusual Options Flow Detector

Flags contracts with unusual volume or premium, scores conviction, and
summarizes put/call flow imbalance.

Key patterns:
- FlowConfig thresholds (volume multiple, premium floor, volume/OI ratio)
- Conviction score = premium tier (<=40) + volume-ratio tier (<=30) + sweep bonus (30)
- Results sorted by conviction, highest first
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from loguru import logger

from options_engine.config import FlowConfig
from options_engine.models import CONTRACT_MULTIPLIER, OptionContract, OptionRight


class FlowDirection(str, Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class FlowConfidence(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(slots=True)
class FlowFlags:
    high_volume: bool = False
    high_premium: bool = False
    high_oi_ratio: bool = False
    sweep: bool = False

    @property
    def any(self) -> bool:
        return self.high_volume or self.high_premium or self.high_oi_ratio or self.sweep


@dataclass(slots=True)
class UnusualContract:
    """
    One contract flagged as unusual.

    Attributes:
        contract: The flagged contract
        flags: Which thresholds were crossed
        volume_ratio: volume / average volume
        volume_oi_ratio: volume / open interest
        premium: Dollar premium spent (volume * price * 100)
        conviction: 0-100 conviction score
        direction: BULLISH for calls, BEARISH for puts (NEUTRAL without volume/sweep)
        confidence: HIGH, MEDIUM or LOW
    """

    contract: OptionContract
    flags: FlowFlags
    volume_ratio: float
    volume_oi_ratio: float
    premium: float
    conviction: int
    direction: FlowDirection
    confidence: FlowConfidence

    @property
    def strike(self) -> float:
        return self.contract.strike

    def __repr__(self) -> str:
        return (
            f"UnusualContract({self.contract.right.value} ${self.strike}, "
            f"premium=${self.premium:,.0f}, conviction={self.conviction}, {self.direction.value})"
        )


@dataclass(slots=True)
class FlowImbalance:
    """Put/call flow imbalance (call premium / put premium)."""

    call_volume: int
    put_volume: int
    call_premium: float
    put_premium: float
    volume_ratio: float
    premium_ratio: float
    sentiment: str
    interpretation: str


@dataclass(slots=True)
class FlowSummary:
    unusual_count: int
    call_count: int
    put_count: int
    call_premium: float
    put_premium: float
    net_bullish: bool
    net_bearish: bool
    text: str


@dataclass(slots=True)
class FlowReport:
    """Result of one flow scan."""

    total_analyzed: int
    unusual: list[UnusualContract]
    summary: FlowSummary
    imbalance: FlowImbalance
    scanned_at: datetime = field(default_factory=datetime.now)

    def unusual_strikes(self) -> set[float]:
        """Strikes with unusual activity; the generator biases toward these."""
        return {u.strike for u in self.unusual}

    @property
    def top(self) -> list[UnusualContract]:
        return self.unusual[:3]


@dataclass(frozen=True, slots=True)
class OptionTrade:
    """A single print from a trade feed."""

    strike: float
    right: OptionRight
    size: int
    price: float
    expiration: Optional[date] = None
    timestamp: Optional[datetime] = None


@dataclass(slots=True)
class BlockTrade:
    trade: OptionTrade
    premium: float
    block_type: str  # BLOCK | LARGE_BLOCK


def conviction_score(flags: FlowFlags, premium: float, volume_ratio: float) -> int:
    score = 0
    if premium > 500_000:
        score += 40
    elif premium > 250_000:
        score += 30
    elif premium > 100_000:
        score += 20
    elif premium > 50_000:
        score += 10

    if volume_ratio > 10:
        score += 30
    elif volume_ratio > 5:
        score += 20
    elif volume_ratio > 3:
        score += 10

    if flags.sweep:
        score += 30
    return min(100, score)


def flow_imbalance(contracts: Iterable[OptionContract]) -> FlowImbalance:
    call_volume = put_volume = 0
    call_premium = put_premium = 0.0
    for c in contracts:
        if c.is_call:
            call_volume += c.quote.volume
            call_premium += c.premium
        else:
            put_volume += c.quote.volume
            put_premium += c.premium

    volume_ratio = call_volume / put_volume if put_volume > 0 else 0.0
    premium_ratio = call_premium / put_premium if put_premium > 0 else 0.0

    if premium_ratio > 2:
        sentiment, interpretation = "STRONGLY_BULLISH", "Heavy call buying - positioning for upside"
    elif premium_ratio > 1.2:
        sentiment, interpretation = "BULLISH", "More call premium than puts"
    elif premium_ratio < 0.5:
        sentiment, interpretation = "STRONGLY_BEARISH", "Heavy put buying - hedging or betting downside"
    elif premium_ratio < 0.8:
        sentiment, interpretation = "BEARISH", "More put premium than calls"
    else:
        sentiment, interpretation = "NEUTRAL", "Balanced call/put flow"

    return FlowImbalance(
        call_volume=call_volume,
        put_volume=put_volume,
        call_premium=round(call_premium, 2),
        put_premium=round(put_premium, 2),
        volume_ratio=round(volume_ratio, 2),
        premium_ratio=round(premium_ratio, 2),
        sentiment=sentiment,
        interpretation=interpretation,
    )


class FlowDetector:
    """
    Detect unusual options activity in a set of contracts.

    Example:
        >>> detector = FlowDetector()
        >>> report = detector.scan(chain.all_contracts())
        >>> report.unusual_strikes()
    """

    def __init__(self, config: Optional[FlowConfig] = None):
        self.config = config or FlowConfig()
        self._log = logger.bind(component="flow")

    def evaluate(self, contract: OptionContract, avg_volume: Optional[float] = None) -> Optional[UnusualContract]:
        """Return an UnusualContract when any flag fires, else None."""
        cfg = self.config
        volume = contract.quote.volume
        oi = contract.quote.open_interest
        price = contract.quote.last or contract.mid
        if volume == 0 or price == 0:
            return None

        average = avg_volume if avg_volume is not None else oi * 0.1
        volume_ratio = volume / average if average > 0 else 0.0
        volume_oi_ratio = volume / oi if oi > 0 else 0.0
        premium = volume * price * CONTRACT_MULTIPLIER

        flags = FlowFlags(
            high_volume=volume >= cfg.min_volume and volume_ratio >= cfg.volume_multiplier,
            high_premium=premium >= cfg.min_premium,
            high_oi_ratio=volume_oi_ratio >= cfg.oi_ratio_threshold,
            sweep=volume > cfg.sweep_min_volume and volume_oi_ratio > cfg.sweep_oi_ratio,
        )
        if not flags.any:
            return None

        if flags.sweep or premium > 100_000:
            confidence = FlowConfidence.HIGH
        elif premium > 50_000:
            confidence = FlowConfidence.MEDIUM
        else:
            confidence = FlowConfidence.LOW

        if flags.sweep or flags.high_volume:
            direction = FlowDirection.BULLISH if contract.is_call else FlowDirection.BEARISH
        else:
            direction = FlowDirection.NEUTRAL

        return UnusualContract(
            contract=contract,
            flags=flags,
            volume_ratio=round(volume_ratio, 2),
            volume_oi_ratio=round(volume_oi_ratio, 2),
            premium=premium,
            conviction=conviction_score(flags, premium, volume_ratio),
            direction=direction,
            confidence=confidence,
        )

    def scan(
        self,
        contracts: Sequence[OptionContract],
        avg_volumes: Optional[dict[tuple[float, date, OptionRight], float]] = None,
    ) -> FlowReport:
        """
        Scan contracts for unusual activity.

        Args:
            contracts: Contracts to scan
            avg_volumes: Optional (strike, expiration, right) -> average daily volume;
                defaults to 10% of open interest
        """
        avg_volumes = avg_volumes or {}
        unusual = []
        for contract in contracts:
            key = (contract.strike, contract.expiration, contract.right)
            result = self.evaluate(contract, avg_volumes.get(key))
            if result is not None:
                unusual.append(result)
        unusual.sort(key=lambda u: u.conviction, reverse=True)

        report = FlowReport(
            total_analyzed=len(contracts),
            unusual=unusual,
            summary=self.summarize(unusual),
            imbalance=flow_imbalance(contracts),
        )
        self._log.debug(f"Flow scan: {len(unusual)}/{len(contracts)} unusual")
        return report

    def summarize(self, unusual: Sequence[UnusualContract]) -> FlowSummary:
        calls = [u for u in unusual if u.contract.is_call]
        puts = [u for u in unusual if not u.contract.is_call]
        call_premium = sum(u.premium for u in calls)
        put_premium = sum(u.premium for u in puts)
        net_bullish = call_premium > put_premium * 2
        net_bearish = put_premium > call_premium * 2

        if not unusual:
            text = "No unusual options activity detected"
        else:
            parts = [f"Detected {len(unusual)} unusual contracts"]
            if calls:
                parts.append(f"{len(calls)} calls (${call_premium / 1000:.0f}K premium)")
            if puts:
                parts.append(f"{len(puts)} puts (${put_premium / 1000:.0f}K premium)")
            if net_bullish:
                parts.append("Net BULLISH flow")
            elif net_bearish:
                parts.append("Net BEARISH flow")
            else:
                parts.append("Mixed sentiment")
            text = ". ".join(parts)

        return FlowSummary(
            unusual_count=len(unusual),
            call_count=len(calls),
            put_count=len(puts),
            call_premium=call_premium,
            put_premium=put_premium,
            net_bullish=net_bullish,
            net_bearish=net_bearish,
            text=text,
        )

    def detect_block_trades(self, trades: Iterable[OptionTrade]) -> list[BlockTrade]:
        cfg = self.config
        blocks = []
        for trade in trades:
            premium = trade.size * trade.price * CONTRACT_MULTIPLIER
            if trade.size >= cfg.block_min_size and premium >= cfg.block_min_premium:
                blocks.append(BlockTrade(
                    trade=trade,
                    premium=premium,
                    block_type="LARGE_BLOCK" if trade.size > cfg.large_block_size else "BLOCK",
                ))
        return blocks

    def persistence(self, scans: Sequence[FlowReport], min_occurrences: int = 2) -> list[dict]:
        """Strike/direction pairs flagged in at least `min_occurrences` scans, by total premium."""
        activity: dict[tuple[float, FlowDirection], dict] = {}
        for scan in scans:
            for u in scan.unusual:
                entry = activity.setdefault(
                    (u.strike, u.direction),
                    {"strike": u.strike, "direction": u.direction, "occurrences": 0,
                     "total_premium": 0.0, "seen_at": []},
                )
                entry["occurrences"] += 1
                entry["total_premium"] += u.premium
                entry["seen_at"].append(scan.scanned_at)

        persistent = [a for a in activity.values() if a["occurrences"] >= min_occurrences]
        persistent.sort(key=lambda a: a["total_premium"], reverse=True)
        return persistent
