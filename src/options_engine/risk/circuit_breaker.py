"""
Risk Circuit Breakers

Halts or restricts trading when account-level loss and risk limits are hit.

Key features:
- Daily loss limits (absolute and percent of account) halt all trading
- Portfolio risk limit blocks new positions
- VIX spike reduces exposure
- Per-position stop-loss and approaching-limit warnings (not trips)
- Daily counters roll over when the clock's date changes
- Manual reset requires a confirmation code

Breakers return values; nothing here raises on a trip.

Usage:
    >>> breaker = RiskCircuitBreaker(CircuitBreakerConfig(), BreakerStateStore(clock=clock))
    >>> result = breaker.check(account_size=25_000, vix_level=22.0)
    >>> if not result.trading_allowed:
    ...     print(result.message)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from loguru import logger

from options_engine.config import CircuitBreakerConfig
from options_engine.models import Rejection
from options_engine.stores.breaker_store import BreakerState, BreakerStateStore
from options_engine.stores.positions import Position, PositionPnL

RESET_CONFIRMATION = "RESET_CONFIRMED"


class BreakerAction(str, Enum):
    """Action attached to a tripped breaker or warning."""

    HALT_ALL_TRADING = "HALT_ALL_TRADING"
    NO_NEW_POSITIONS = "NO_NEW_POSITIONS"
    REDUCE_EXPOSURE = "REDUCE_EXPOSURE"
    CLOSE_POSITION = "CLOSE_POSITION"
    MONITOR_CLOSELY = "MONITOR_CLOSELY"


@dataclass(slots=True)
class BreakerEvent:
    """
    A tripped breaker or a warning.

    Attributes:
        type: MAX_DAILY_LOSS, MAX_DAILY_LOSS_PCT, MAX_PORTFOLIO_RISK, VIX_SPIKE,
            POSITION_STOP_LOSS or APPROACHING_DAILY_LIMIT
        severity: CRITICAL, HIGH or MEDIUM
        message: Human-readable description
        action: What the caller should do
        position_id: Set for position-level warnings
    """

    type: str
    severity: str
    message: str
    action: BreakerAction
    triggered_at: Optional[str] = None
    position_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "action": self.action.value,
        }
        if self.triggered_at:
            data["triggered_at"] = self.triggered_at
        if self.position_id:
            data["position_id"] = self.position_id
        return data


@dataclass(slots=True)
class BreakerCheckResult:
    trading_allowed: bool
    new_positions_allowed: bool
    tripped: list[BreakerEvent] = field(default_factory=list)
    warnings: list[BreakerEvent] = field(default_factory=list)
    state: Optional[BreakerState] = None
    enabled: bool = True

    @property
    def message(self) -> str:
        if not self.enabled:
            return "Circuit breakers disabled"
        if self.tripped:
            return f"{len(self.tripped)} circuit breaker(s) tripped"
        if self.warnings:
            return f"{len(self.warnings)} warning(s)"
        return "All systems normal"

    @property
    def recommendation(self) -> str:
        if self.tripped:
            return "STOP TRADING - Review positions and reset breakers manually"
        if self.warnings:
            return "CAUTION - Monitor positions closely"
        return "Continue trading within risk limits"


class RiskCircuitBreaker:
    """
    Account-level risk circuit breaker.

    Attributes:
        config: Breaker thresholds
        store: Persistent breaker state (daily P&L, trips, trade count)

    Example:
        >>> breaker = RiskCircuitBreaker(store=BreakerStateStore(clock=FrozenClock(now)))
        >>> breaker.record_trade(-300.0)
        >>> breaker.check(account_size=25_000).warnings
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        store: Optional[BreakerStateStore] = None,
    ):
        self.config = config or CircuitBreakerConfig()
        self.store = store or BreakerStateStore()
        self.clock = self.store.clock
        self._log = logger.bind(component="circuit_breaker")

    def check(
        self,
        account_size: Optional[float] = None,
        daily_pnl: Optional[float] = None,
        portfolio_risk: Optional[float] = None,
        vix_level: Optional[float] = None,
        positions: Sequence[tuple[Position, PositionPnL]] = (),
    ) -> BreakerCheckResult:
        """
        Evaluate every breaker.

        Args:
            account_size: Account size in dollars (percent checks skipped without it)
            daily_pnl: Today's realized P&L; defaults to the stored running total
            portfolio_risk: Dollars currently at risk across open positions
            vix_level: Current VIX
            positions: Open positions with their current P&L
        """
        cfg = self.config
        if not cfg.enabled:
            return BreakerCheckResult(trading_allowed=True, new_positions_allowed=True, enabled=False)

        state = self.store.load()
        pnl = state.daily_pnl if daily_pnl is None else daily_pnl
        now = self.clock.now().isoformat()
        tripped: list[BreakerEvent] = []
        warnings: list[BreakerEvent] = []

        if pnl < -cfg.max_daily_loss:
            tripped.append(BreakerEvent(
                type="MAX_DAILY_LOSS",
                severity="CRITICAL",
                message=f"Daily loss ${abs(pnl):.2f} exceeds limit of ${cfg.max_daily_loss:g}",
                action=BreakerAction.HALT_ALL_TRADING,
                triggered_at=now,
            ))

        if account_size and pnl / account_size < -cfg.max_daily_loss_pct:
            tripped.append(BreakerEvent(
                type="MAX_DAILY_LOSS_PCT",
                severity="CRITICAL",
                message=(
                    f"Daily loss {abs(pnl / account_size * 100):.2f}% exceeds limit of "
                    f"{cfg.max_daily_loss_pct * 100:g}%"
                ),
                action=BreakerAction.HALT_ALL_TRADING,
                triggered_at=now,
            ))

        if portfolio_risk and account_size:
            risk_pct = portfolio_risk / account_size
            if risk_pct > cfg.max_portfolio_risk_pct:
                tripped.append(BreakerEvent(
                    type="MAX_PORTFOLIO_RISK",
                    severity="HIGH",
                    message=(
                        f"Portfolio risk {risk_pct * 100:.1f}% exceeds limit of "
                        f"{cfg.max_portfolio_risk_pct * 100:g}%"
                    ),
                    action=BreakerAction.NO_NEW_POSITIONS,
                    triggered_at=now,
                ))

        if vix_level and vix_level > cfg.vix_spike_threshold:
            tripped.append(BreakerEvent(
                type="VIX_SPIKE",
                severity="HIGH",
                message=f"VIX at {vix_level:.1f} exceeds threshold of {cfg.vix_spike_threshold:g}",
                action=BreakerAction.REDUCE_EXPOSURE,
                triggered_at=now,
            ))

        for position, position_pnl in positions:
            if position_pnl.profit_pct <= -cfg.max_position_loss_pct * 100:
                warnings.append(BreakerEvent(
                    type="POSITION_STOP_LOSS",
                    severity="HIGH",
                    message=f"Position {position.symbol} down {abs(position_pnl.profit_pct):.1f}%",
                    action=BreakerAction.CLOSE_POSITION,
                    position_id=position.id,
                ))

        if pnl < -cfg.max_daily_loss * cfg.approaching_limit_ratio:
            warnings.append(BreakerEvent(
                type="APPROACHING_DAILY_LIMIT",
                severity="MEDIUM",
                message=f"Daily P&L ${pnl:.2f} approaching limit of -${cfg.max_daily_loss:g}",
                action=BreakerAction.MONITOR_CLOSELY,
            ))

        state.daily_pnl = pnl
        if tripped:
            state.breakers_tripped.extend(event.to_dict() for event in tripped)
        self.store.save(state)

        for event in tripped:
            self._log.warning(f"Circuit breaker tripped: {event.type} → {event.action.value}: {event.message}")
        for event in warnings:
            self._log.warning(f"Risk warning: {event.type}: {event.message}")

        actions = {event.action for event in tripped}
        return BreakerCheckResult(
            trading_allowed=BreakerAction.HALT_ALL_TRADING not in actions,
            new_positions_allowed=not actions & {BreakerAction.HALT_ALL_TRADING, BreakerAction.NO_NEW_POSITIONS},
            tripped=tripped,
            warnings=warnings,
            state=state,
        )

    def record_trade(self, pnl: float) -> BreakerState:
        """Add a closed trade's P&L to today's running total."""
        state = self.store.load()
        state.daily_pnl += pnl
        state.trades_today += 1
        self.store.save(state)
        self._log.debug(f"Recorded trade P&L {pnl:+.2f} (daily={state.daily_pnl:+.2f})")
        return state

    def reset(self, confirm: str) -> Optional[Rejection]:
        """
        Clear tripped breakers.

        Returns:
            None on success, a Rejection when the confirmation code is wrong
        """
        if confirm != RESET_CONFIRMATION:
            return Rejection(
                reason=f'Invalid reset code. Use "{RESET_CONFIRMATION}" to proceed.',
                code="invalid_reset_code",
            )
        state = self.store.load()
        cleared = len(state.breakers_tripped)
        state.breakers_tripped = []
        self.store.save(state)
        self._log.info(f"Circuit breakers manually reset ({cleared} cleared)")
        return None

    def status(self) -> dict[str, Any]:
        state = self.store.load()
        active = not state.breakers_tripped
        return {
            "status": "ACTIVE" if active else "TRIPPED",
            "daily_pnl": state.daily_pnl,
            "trades_today": state.trades_today,
            "last_reset": state.last_reset_date,
            "breakers_tripped": list(state.breakers_tripped),
            "trading_allowed": active,
        }
