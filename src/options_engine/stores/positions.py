"""
Position Store

Tracks open option positions in a DocumentStore shaped as
{"positions": [...], "watchlist": [...]}, computes unrealized P&L and
generates exit signals.

Key patterns:
- dataclass(slots=True) positions, serialized to plain dicts
- Whole-document read/overwrite (single writer)
- Exit signals ordered by severity: CRITICAL, SUCCESS, WARNING, INFO
"""

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Any, Callable, Optional
from uuid import uuid4

from loguru import logger

from options_engine.models import CONTRACT_MULTIPLIER
from options_engine.stores.clock import Clock, SystemClock
from options_engine.stores.documents import DocumentStore, InMemoryDocumentStore

SEVERITY_ORDER = {"CRITICAL": 0, "SUCCESS": 1, "WARNING": 2, "INFO": 3}


@dataclass(slots=True)
class Position:
    """
    Tracked option position.

    Attributes:
        symbol: Underlying symbol
        strategy: Strategy name (e.g. "bull_call_spread", "iron_condor_credit")
        expiration: Expiration date of the (nearest) leg
        contracts: Number of contracts
        entry_price: Debit paid per share (debit positions)
        entry_credit: Credit received per share (credit positions)
        legs: Leg descriptions as plain dicts
        id: Assigned by PositionStore.add
        status: "open" or "closed"
    """

    symbol: str
    strategy: str
    expiration: date
    contracts: int = 1
    entry_price: Optional[float] = None
    entry_credit: Optional[float] = None
    legs: list[dict[str, Any]] = field(default_factory=list)
    id: Optional[str] = None
    status: str = "open"
    entry_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    exit_date: Optional[date] = None
    exit_price: Optional[float] = None
    exit_profit: Optional[float] = None
    closed_at: Optional[datetime] = None
    notes: str = ""

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Position symbol cannot be empty")
        if self.contracts <= 0:
            raise ValueError(f"Contracts must be positive, got {self.contracts}")
        if self.entry_price is None and self.entry_credit is None:
            raise ValueError("Position needs entry_price or entry_credit")

    @property
    def is_credit(self) -> bool:
        return self.entry_credit is not None or "credit" in self.strategy.lower()

    @property
    def entry_amount(self) -> float:
        return self.entry_credit if self.entry_credit is not None else self.entry_price

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    def to_dict(self) -> dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        kwargs = dict(data)
        for name in ("expiration", "entry_date", "exit_date"):
            if isinstance(kwargs.get(name), str):
                kwargs[name] = date.fromisoformat(kwargs[name])
        for name in ("created_at", "updated_at", "closed_at"):
            if isinstance(kwargs.get(name), str):
                kwargs[name] = datetime.fromisoformat(kwargs[name])
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in kwargs.items() if k in known})

    def __repr__(self) -> str:
        return (
            f"Position(id={self.id}, {self.symbol} {self.strategy} x{self.contracts}, "
            f"exp={self.expiration}, status={self.status})"
        )


@dataclass(slots=True)
class PositionMarketData:
    """Current quote for a whole position (per share)."""

    current_price: Optional[float] = None
    current_bid: Optional[float] = None
    current_ask: Optional[float] = None


@dataclass(slots=True)
class PositionPnL:
    entry_value: float
    current_value: float
    unrealized_pnl: float
    profit_pct: float
    days_held: int
    daily_pnl: float


@dataclass(slots=True)
class ExitSignal:
    type: str
    message: str
    action: str
    priority: str


@dataclass(slots=True)
class ExitSignals:
    recommendation: str
    severity: str
    signals: list[ExitSignal]
    days_to_expiration: int

    @property
    def summary(self) -> str:
        return self.signals[0].message if self.signals else "Position on track, no action needed"


@dataclass(slots=True)
class PositionAlert:
    position_id: str
    symbol: str
    severity: str
    recommendation: str
    message: str
    pnl: float
    profit_pct: float


@dataclass(slots=True)
class MonitoringReport:
    total_positions: int
    alerts: list[PositionAlert]
    position_reports: list[dict[str, Any]]
    errors: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.total_positions == 0:
            return "No open positions to monitor"
        if self.alerts:
            return f"{len(self.alerts)} positions need attention"
        return f"All {self.total_positions} positions on track"


def calculate_position_pnl(
    position: Position,
    market: PositionMarketData,
    as_of: Optional[date] = None,
) -> PositionPnL:
    """
    Unrealized P&L of a position.

    Credit positions profit when the spread can be bought back cheaper
    (pnl = entry - current, ask side); debit positions when it sells for
    more (pnl = current - entry, bid side).
    """
    as_of = as_of or date.today()
    notional = position.contracts * CONTRACT_MULTIPLIER
    entry_value = position.entry_amount * notional

    if position.is_credit:
        current_value = (market.current_price or market.current_ask or 0.0) * notional
        pnl = entry_value - current_value
    else:
        current_value = (market.current_price or market.current_bid or 0.0) * notional
        pnl = current_value - entry_value

    profit_pct = pnl / entry_value * 100 if entry_value != 0 else 0.0
    days_held = (as_of - position.entry_date).days if position.entry_date else 0

    return PositionPnL(
        entry_value=round(entry_value, 2),
        current_value=round(current_value, 2),
        unrealized_pnl=round(pnl, 2),
        profit_pct=round(profit_pct, 2),
        days_held=days_held,
        daily_pnl=round(pnl / days_held, 2) if days_held > 0 else 0.0,
    )


def generate_exit_signals(
    position: Position,
    pnl: PositionPnL,
    as_of: Optional[date] = None,
    profit_target_pct: float = 50.0,
    stop_loss_pct: float = 50.0,
    time_stop_dte: int = 7,
) -> ExitSignals:
    as_of = as_of or date.today()
    dte = (position.expiration - as_of).days
    profit = pnl.profit_pct

    signals: list[ExitSignal] = []
    recommendation, severity = "HOLD", "INFO"

    if profit >= profit_target_pct:
        signals.append(ExitSignal(
            type="PROFIT_TARGET",
            message=f"Profit target hit: {profit:.1f}% (target: {profit_target_pct:g}%)",
            action="CLOSE_NOW",
            priority="HIGH",
        ))
        recommendation, severity = "CLOSE", "SUCCESS"

    if profit <= -stop_loss_pct:
        signals.append(ExitSignal(
            type="STOP_LOSS",
            message=f"Stop loss triggered: {profit:.1f}% loss (stop: -{stop_loss_pct:g}%)",
            action="CUT_LOSS",
            priority="CRITICAL",
        ))
        recommendation, severity = "CLOSE", "CRITICAL"

    if 0 < dte <= time_stop_dte:
        signals.append(ExitSignal(
            type="TIME_STOP",
            message=f"{dte} days to expiration (time stop: {time_stop_dte} DTE)",
            action="CONSIDER_CLOSING",
            priority="MEDIUM",
        ))
        if recommendation == "HOLD":
            recommendation, severity = "CONSIDER_CLOSING", "WARNING"

    if profit_target_pct * 0.8 <= profit < profit_target_pct:
        signals.append(ExitSignal(
            type="APPROACHING_TARGET",
            message=f"Near profit target: {profit:.1f}% (target: {profit_target_pct:g}%)",
            action="MONITOR_CLOSELY",
            priority="LOW",
        ))

    if profit > 20 and dte <= 14:
        signals.append(ExitSignal(
            type="SECURE_PROFIT",
            message=f"{profit:.1f}% profit with only {dte} DTE remaining",
            action="CONSIDER_TAKING_PROFIT",
            priority="MEDIUM",
        ))

    return ExitSignals(
        recommendation=recommendation,
        severity=severity,
        signals=signals,
        days_to_expiration=dte,
    )


class PositionStore:
    """
    CRUD over the positions document.

    Example:
        >>> store = PositionStore(JsonFileDocumentStore(".options_engine/positions.json"))
        >>> pos = store.add(Position(symbol="SPY", strategy="bull_call_spread",
        ...                          expiration=date(2026, 3, 20), entry_price=5.0))
        >>> store.close(pos.id, exit_price=7.5)
    """

    def __init__(self, store: Optional[DocumentStore] = None, clock: Optional[Clock] = None):
        self.store = store or InMemoryDocumentStore()
        self.clock = clock or SystemClock()
        self._log = logger.bind(component="positions")

    def _document(self) -> dict[str, Any]:
        document = self.store.load()
        if document is None:
            document = {"positions": [], "watchlist": []}
            self.store.save(document)
        document.setdefault("positions", [])
        document.setdefault("watchlist", [])
        return document

    def _write_positions(self, positions: list[Position]) -> None:
        document = self._document()
        document["positions"] = [p.to_dict() for p in positions]
        self.store.save(document)

    def load(self) -> list[Position]:
        return [Position.from_dict(p) for p in self._document()["positions"]]

    def add(self, position: Position) -> Position:
        now = self.clock.now()
        position.id = f"pos_{int(now.timestamp() * 1000)}_{uuid4().hex[:9]}"
        position.status = "open"
        position.entry_date = position.entry_date or now.date()
        position.created_at = now

        positions = self.load()
        positions.append(position)
        self._write_positions(positions)
        self._log.info(f"Added position {position!r}")
        return position

    def update(self, position_id: str, **updates: Any) -> Position:
        """
        Apply field updates to a position.

        Raises:
            KeyError: If the position does not exist
        """
        positions = self.load()
        for i, position in enumerate(positions):
            if position.id == position_id:
                data = position.to_dict()
                data.update(updates)
                data["updated_at"] = self.clock.now()
                positions[i] = Position.from_dict(data)
                self._write_positions(positions)
                return positions[i]
        raise KeyError(f"Position {position_id} not found")

    def close(
        self,
        position_id: str,
        exit_price: Optional[float] = None,
        exit_profit: Optional[float] = None,
        exit_date: Optional[date] = None,
    ) -> Position:
        now = self.clock.now()
        closed = self.update(
            position_id,
            status="closed",
            exit_date=exit_date or now.date(),
            exit_price=exit_price,
            exit_profit=exit_profit,
            closed_at=now,
        )
        self._log.info(f"Closed position {position_id} (profit={exit_profit})")
        return closed

    def get(self, position_id: str) -> Optional[Position]:
        return next((p for p in self.load() if p.id == position_id), None)

    def get_open(self) -> list[Position]:
        return [p for p in self.load() if p.is_open]

    def delete(self, position_id: str) -> bool:
        positions = self.load()
        remaining = [p for p in positions if p.id != position_id]
        self._write_positions(remaining)
        return len(remaining) != len(positions)

    def watchlist(self) -> list[str]:
        return list(self._document()["watchlist"])

    def add_to_watchlist(self, symbol: str) -> list[str]:
        document = self._document()
        symbol = symbol.upper()
        if symbol not in document["watchlist"]:
            document["watchlist"].append(symbol)
            self.store.save(document)
        return list(document["watchlist"])

    def remove_from_watchlist(self, symbol: str) -> list[str]:
        document = self._document()
        document["watchlist"] = [s for s in document["watchlist"] if s != symbol.upper()]
        self.store.save(document)
        return list(document["watchlist"])

    def monitor(self, market_data: Callable[[Position], PositionMarketData]) -> MonitoringReport:
        """
        Compute P&L and exit signals for every open position.

        A position whose market data cannot be fetched is logged and skipped.
        """
        today = self.clock.today()
        open_positions = self.get_open()
        alerts: list[PositionAlert] = []
        reports: list[dict[str, Any]] = []
        errors: list[str] = []

        for position in open_positions:
            try:
                market = market_data(position)
                pnl = calculate_position_pnl(position, market, as_of=today)
                signals = generate_exit_signals(position, pnl, as_of=today)
            except Exception as e:
                self._log.error(f"Error monitoring position {position.id}: {e}")
                errors.append(f"{position.id}: {e}")
                continue

            reports.append({
                "position_id": position.id,
                "symbol": position.symbol,
                "strategy": position.strategy,
                "pnl": pnl,
                "exit_signals": signals,
            })
            if signals.recommendation != "HOLD":
                alerts.append(PositionAlert(
                    position_id=position.id,
                    symbol=position.symbol,
                    severity=signals.severity,
                    recommendation=signals.recommendation,
                    message=signals.summary,
                    pnl=pnl.unrealized_pnl,
                    profit_pct=pnl.profit_pct,
                ))

        alerts.sort(key=lambda a: SEVERITY_ORDER[a.severity])
        return MonitoringReport(
            total_positions=len(open_positions),
            alerts=alerts,
            position_reports=reports,
            errors=errors,
        )
