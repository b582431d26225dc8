"""
Tests for PositionStore, position P&L and exit signals.

Tests cover:
- CRUD over the positions document
- Watchlist
- Credit/debit P&L
- Exit signal generation and monitoring report
"""

import re
from datetime import date

import pytest

from options_engine.stores.documents import InMemoryDocumentStore, JsonFileDocumentStore
from options_engine.stores.positions import (
    Position,
    PositionMarketData,
    PositionPnL,
    PositionStore,
    calculate_position_pnl,
    generate_exit_signals,
)

EXPIRY = date(2026, 3, 20)


@pytest.fixture
def store(frozen_clock):
    return PositionStore(InMemoryDocumentStore(), clock=frozen_clock)


def debit_position(**overrides):
    data = dict(symbol="SPY", strategy="bull_call_spread", expiration=EXPIRY, entry_price=5.0)
    data.update(overrides)
    return Position(**data)


def credit_position(**overrides):
    data = dict(symbol="SPY", strategy="iron_condor_credit", expiration=EXPIRY, entry_credit=1.20)
    data.update(overrides)
    return Position(**data)


def pnl_of(profit_pct):
    return PositionPnL(entry_value=500, current_value=0, unrealized_pnl=profit_pct * 5,
                       profit_pct=profit_pct, days_held=1, daily_pnl=0)


class TestPosition:
    """Test Position validation and serialization."""

    def test_requires_entry_amount(self):
        with pytest.raises(ValueError):
            Position(symbol="SPY", strategy="bull_call_spread", expiration=EXPIRY)

    def test_positive_contracts(self):
        with pytest.raises(ValueError):
            debit_position(contracts=0)

    def test_round_trip_keeps_dates(self):
        position = debit_position(entry_date=date(2026, 3, 2))
        restored = Position.from_dict(position.to_dict())

        assert restored.expiration == EXPIRY
        assert restored.entry_date == date(2026, 3, 2)

    def test_credit_detected_from_strategy_name(self):
        position = Position(symbol="SPY", strategy="put_credit_spread", expiration=EXPIRY, entry_price=1.0)
        assert position.is_credit


class TestPositionStore:
    """Test position CRUD."""

    def test_add_assigns_id(self, store):
        position = store.add(debit_position())

        assert re.fullmatch(r"pos_\d+_[0-9a-f]{9}", position.id)
        assert position.entry_date == date(2026, 3, 2)
        assert store.get(position.id).symbol == "SPY"

    def test_update(self, store, frozen_clock):
        position = store.add(debit_position())
        frozen_clock.advance(minutes=5)
        updated = store.update(position.id, notes="rolled")

        assert updated.notes == "rolled"
        assert updated.updated_at == frozen_clock.now()

    def test_update_missing(self, store):
        with pytest.raises(KeyError):
            store.update("pos_missing", notes="x")

    def test_close(self, store):
        position = store.add(debit_position())
        closed = store.close(position.id, exit_price=7.5, exit_profit=250.0)

        assert closed.status == "closed"
        assert closed.exit_date == date(2026, 3, 2)
        assert store.get_open() == []
        assert len(store.load()) == 1

    def test_delete(self, store):
        position = store.add(debit_position())
        assert store.delete(position.id)
        assert not store.delete(position.id)

    def test_watchlist(self, store):
        store.add_to_watchlist("spy")
        store.add_to_watchlist("QQQ")
        store.add_to_watchlist("SPY")

        assert store.watchlist() == ["SPY", "QQQ"]
        assert store.remove_from_watchlist("spy") == ["QQQ"]

    def test_json_persistence(self, tmp_path, frozen_clock):
        path = tmp_path / "state" / "positions.json"
        first = PositionStore(JsonFileDocumentStore(path), clock=frozen_clock)
        position = first.add(credit_position())

        second = PositionStore(JsonFileDocumentStore(path), clock=frozen_clock)
        restored = second.get(position.id)

        assert restored.entry_credit == 1.20
        assert restored.created_at == frozen_clock.now()


class TestPnL:
    """Test calculate_position_pnl."""

    def test_debit_profit(self):
        pnl = calculate_position_pnl(
            debit_position(entry_date=date(2026, 3, 2)),
            PositionMarketData(current_bid=7.5),
            as_of=date(2026, 3, 7),
        )

        assert pnl.entry_value == 500.0
        assert pnl.current_value == 750.0
        assert pnl.unrealized_pnl == 250.0
        assert pnl.profit_pct == 50.0
        assert pnl.days_held == 5
        assert pnl.daily_pnl == 50.0

    def test_credit_profit_uses_ask(self):
        pnl = calculate_position_pnl(
            credit_position(contracts=2), PositionMarketData(current_bid=0.4, current_ask=0.6)
        )
        # 240 received, 120 to buy back
        assert pnl.unrealized_pnl == 120.0
        assert pnl.profit_pct == 50.0

    def test_no_entry_date(self):
        pnl = calculate_position_pnl(debit_position(), PositionMarketData(current_price=4.0))
        assert pnl.days_held == 0
        assert pnl.daily_pnl == 0.0


class TestExitSignals:
    """Test generate_exit_signals."""

    AS_OF = date(2026, 3, 2)

    def test_profit_target(self):
        signals = generate_exit_signals(debit_position(), pnl_of(55.0), as_of=self.AS_OF)

        assert signals.recommendation == "CLOSE"
        assert signals.severity == "SUCCESS"
        assert signals.signals[0].type == "PROFIT_TARGET"

    def test_stop_loss(self):
        signals = generate_exit_signals(debit_position(), pnl_of(-60.0), as_of=self.AS_OF)
        assert signals.severity == "CRITICAL"
        assert signals.signals[0].action == "CUT_LOSS"

    def test_time_stop(self):
        signals = generate_exit_signals(debit_position(), pnl_of(0.0), as_of=date(2026, 3, 16))

        assert signals.days_to_expiration == 4
        assert signals.recommendation == "CONSIDER_CLOSING"
        assert signals.severity == "WARNING"

    def test_approaching_target_and_secure_profit(self):
        signals = generate_exit_signals(debit_position(), pnl_of(42.0), as_of=date(2026, 3, 10))
        types = [s.type for s in signals.signals]

        assert signals.recommendation == "HOLD"
        assert types == ["APPROACHING_TARGET", "SECURE_PROFIT"]

    def test_on_track(self):
        signals = generate_exit_signals(debit_position(), pnl_of(5.0), as_of=self.AS_OF)
        assert signals.signals == []
        assert signals.summary == "Position on track, no action needed"


class TestMonitor:
    """Test PositionStore.monitor."""

    def test_alerts_sorted_by_severity(self, store):
        winner = store.add(debit_position(notes="winner"))
        loser = store.add(debit_position(notes="loser"))
        store.add(debit_position(notes="flat"))

        quotes = {"winner": 8.0, "loser": 2.0, "flat": 5.1}
        report = store.monitor(lambda p: PositionMarketData(current_price=quotes[p.notes]))

        assert report.total_positions == 3
        assert [a.position_id for a in report.alerts] == [loser.id, winner.id]
        assert report.alerts[0].severity == "CRITICAL"
        assert report.summary == "2 positions need attention"

    def test_market_data_errors_are_collected(self, store):
        store.add(debit_position())

        def broken(position):
            raise ConnectionError("quote feed down")

        report = store.monitor(broken)
        assert report.position_reports == []
        assert "quote feed down" in report.errors[0]

    def test_empty(self, store):
        assert store.monitor(lambda p: PositionMarketData()).summary == "No open positions to monitor"
