"""Shared pytest fixtures for options engine tests."""

import sys
from datetime import datetime
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Import all fixtures for global availability
from tests.fixtures.chain_fixtures import *
from tests.fixtures.strategy_fixtures import *

from options_engine.stores.clock import FrozenClock


@pytest.fixture
def frozen_clock():
    """
    Clock pinned to 2026-03-02 10:00 (the chain snapshot date).

    Example:
        def test_ttl(frozen_clock):
            frozen_clock.advance(minutes=5)
    """
    return FrozenClock(datetime(2026, 3, 2, 10, 0))
