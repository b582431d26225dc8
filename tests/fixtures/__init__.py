"""Test fixtures for the options engine.

This package provides reusable test fixtures for:
- Option chain snapshots (Black-Scholes priced SPY chain, tiny explicit chains)
- Daily bars
- Hand-built strategies (bull call spread, iron condor, calendar)

Fixtures are auto-discovered by pytest through conftest.py.
"""
