"""Core records, criteria and statistics for the trend backtest engine.

This package contains pure, sport-agnostic building blocks:

- ``records``      — game records and derived spread/total results
- ``sport_config`` — per-sport defaults (season window, situational flags)
- ``odds_math``    — -110 unit payout, ROI strategies, confidence tiers
- ``criteria``     — immutable backtest filters and their validation
- ``classifier``   — criteria filter and W/L/P outcome classification
- ``aggregator``   — chronological record, streak and drawdown folding

Nothing in this package imports from ``backend.services`` or ``backend.models``.
All modules are side-effect-free and unit-testable in isolation.
"""
