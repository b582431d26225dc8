"""
Strategy fixtures with hand-checked economics.

Usage:
    def test_sizing(wide_bull_call):
        sizing = PositionSizer().size(wide_bull_call, 100_000)
        assert sizing.contracts == 3
"""

import pytest

from options_engine.models import (
    CalendarSpread,
    Greeks,
    IronCondor,
    Leg,
    LegAction,
    OptionRight,
    SpreadDirection,
    VerticalSpread,
)
from tests.fixtures.chain_fixtures import FAR_EXPIRY, NEAR_EXPIRY


def make_leg(action, right, strike, price, expiration=NEAR_EXPIRY, greeks=None, volume=500, iv=0.16):
    return Leg(
        action=action,
        right=right,
        strike=strike,
        expiration=expiration,
        price=price,
        greeks=greeks,
        volume=volume,
        implied_volatility=iv,
    )


@pytest.fixture
def bull_call_spread():
    """
    570/580 bull call spread.

    Debit 5.00, max profit 5.00, max risk 5.00, breakeven 575.00,
    risk/reward 1.0, net delta +0.23 per share.
    """
    return VerticalSpread(
        symbol="SPY",
        direction=SpreadDirection.BULLISH,
        legs=[
            make_leg(LegAction.BUY, OptionRight.CALL, 570.0, 8.50,
                     greeks=Greeks(delta=0.58, gamma=0.020, theta=-0.25, vega=0.60)),
            make_leg(LegAction.SELL, OptionRight.CALL, 580.0, 3.50,
                     greeks=Greeks(delta=0.35, gamma=0.018, theta=-0.22, vega=0.55)),
        ],
        net_debit=5.0,
        max_profit=5.0,
        max_risk=5.0,
        breakevens=[575.0],
        probability_profit=0.45,
    )


@pytest.fixture
def wide_bull_call():
    """
    570/590 bull call spread: debit 5.00, max profit 15.00, probability 0.50.

    After transaction costs the risk/reward is about 2.46.
    """
    return VerticalSpread(
        symbol="SPY",
        direction=SpreadDirection.BULLISH,
        legs=[
            make_leg(LegAction.BUY, OptionRight.CALL, 570.0, 8.50),
            make_leg(LegAction.SELL, OptionRight.CALL, 590.0, 3.50),
        ],
        net_debit=5.0,
        max_profit=15.0,
        max_risk=5.0,
        breakevens=[575.0],
        probability_profit=0.5,
    )


@pytest.fixture
def iron_condor():
    """
    540/550/600/610 iron condor.

    Credit 1.20, max risk 8.80, breakevens 548.80 and 601.20.
    Net per-share Greeks: delta +0.01, gamma -0.008, theta +0.06, vega -0.27.
    """
    return IronCondor(
        symbol="SPY",
        legs=[
            make_leg(LegAction.BUY, OptionRight.PUT, 540.0, 0.80,
                     greeks=Greeks(delta=-0.05, gamma=0.004, theta=-0.03, vega=0.20)),
            make_leg(LegAction.SELL, OptionRight.PUT, 550.0, 1.40,
                     greeks=Greeks(delta=-0.12, gamma=0.008, theta=-0.06, vega=0.35)),
            make_leg(LegAction.SELL, OptionRight.CALL, 600.0, 1.20,
                     greeks=Greeks(delta=0.10, gamma=0.007, theta=-0.05, vega=0.30)),
            make_leg(LegAction.BUY, OptionRight.CALL, 610.0, 0.60,
                     greeks=Greeks(delta=0.04, gamma=0.003, theta=-0.02, vega=0.18)),
        ],
        net_credit=1.20,
        max_profit=1.20,
        max_risk=8.80,
        breakevens=[548.80, 601.20],
        probability_profit=0.7,
    )


@pytest.fixture
def calendar_spread():
    """575 call calendar: sell near @ 7.00, buy far @ 11.00 (debit 4.00)."""
    return CalendarSpread(
        symbol="SPY",
        legs=[
            make_leg(LegAction.SELL, OptionRight.CALL, 575.0, 7.00),
            make_leg(LegAction.BUY, OptionRight.CALL, 575.0, 11.00, expiration=FAR_EXPIRY, iv=0.18),
        ],
        net_debit=4.0,
        max_profit=1.2,
        max_risk=4.0,
        breakevens=[571.0, 579.0],
        probability_profit=0.55,
    )
