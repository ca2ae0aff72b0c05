"""Unit, ROI and confidence mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The pillars exposed are:

1. **Flat-stake payout** — every backtested bet risks 1 unit at -110, so a
   win returns :data:`WIN_PAYOUT_UNITS` and a loss costs 1 unit.
2. **Record metrics** — win percentage, units profit and exact ROI from a
   win/loss record.  Pushes return the stake and never enter a denominator.
3. **ROI strategies** — the exact units formula and the break-even
   approximation, registered by name in :data:`ROI_STRATEGIES`.
4. **Confidence tier** — a descriptive sample-size bucket.

Design decisions
----------------
* The payout is the rounded 0.91 rather than 100/110 = 0.9091.  Stored
  trend records and the per-season breakdowns were all produced with 0.91
  and must stay comparable.
* The break-even ROI ``(win_pct − 52.38) / 52.38 × 100`` is used for
  one-sided record shapes (situational and contrarian groups) where a clean
  units ledger is not meaningful.  It is a separate named strategy rather
  than a branch inside :func:`exact_roi`.
* Every division guards against an empty record and resolves to 0.0.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

from typing import Callable, Final

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Units returned on a winning 1-unit bet at -110.
WIN_PAYOUT_UNITS: Final[float] = 0.91

#: Units lost on a losing 1-unit bet.
LOSS_UNITS: Final[float] = 1.0

#: Win rate needed to break even at -110 (110 / 210).
BREAK_EVEN_WIN_PCT: Final[float] = 52.38

#: Sample-size floors for the descriptive confidence tiers, highest first.
CONFIDENCE_TIERS: Final[tuple[tuple[int, str], ...]] = (
    (200, "Very High"),
    (100, "High"),
    (50, "Medium"),
)
CONFIDENCE_LOW: Final[str] = "Low"

ROI_EXACT_UNITS: Final[str] = "exact_units"
ROI_BREAK_EVEN: Final[str] = "break_even"


# ---------------------------------------------------------------------------
# Record metrics
# ---------------------------------------------------------------------------


def win_pct(wins: int, losses: int) -> float:
    """Win percentage over decided bets (0-100).

    Examples::

        win_pct(4, 3) → 57.142857...
        win_pct(0, 0) → 0.0
    """
    decided = wins + losses
    return wins / decided * 100.0 if decided > 0 else 0.0


def units_profit(wins: int, losses: int) -> float:
    """Net units at -110 flat stakes: ``wins × 0.91 − losses``."""
    return wins * WIN_PAYOUT_UNITS - losses * LOSS_UNITS


def exact_roi(wins: int, losses: int) -> float:
    """Units profit per unit risked, as a percentage.

    Only decided bets are risked; pushes return the stake.

    Examples::

        exact_roi(4, 3) → 9.142857...   (0.64 units over 7 bets)
        exact_roi(0, 0) → 0.0
    """
    decided = wins + losses
    return units_profit(wins, losses) / decided * 100.0 if decided > 0 else 0.0


def break_even_roi(win_percentage: float) -> float:
    """Approximate ROI from distance to the -110 break-even win rate.

    ``(win_pct − 52.38) / 52.38 × 100``.  Takes a win percentage on the
    0-100 scale, not a record.
    """
    return (win_percentage - BREAK_EVEN_WIN_PCT) / BREAK_EVEN_WIN_PCT * 100.0


def _roi_exact_units(wins: int, losses: int) -> float:
    return exact_roi(wins, losses)


def _roi_break_even(wins: int, losses: int) -> float:
    return break_even_roi(win_pct(wins, losses))


#: Named ROI strategies.  Each takes ``(wins, losses)`` from the lean side
#: and returns ROI as a percentage.
ROI_STRATEGIES: Final[dict[str, Callable[[int, int], float]]] = {
    ROI_EXACT_UNITS: _roi_exact_units,
    ROI_BREAK_EVEN: _roi_break_even,
}


def roi_for_strategy(strategy: str, wins: int, losses: int) -> float:
    """Dispatch to a named ROI strategy.

    Raises:
        KeyError: If ``strategy`` is not registered in :data:`ROI_STRATEGIES`.
    """
    return ROI_STRATEGIES[strategy](wins, losses)


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------


def confidence_tier(sample_size: int) -> str:
    """Descriptive sample-size bucket: Low / Medium / High / Very High.

    ``sample_size`` counts wins, losses **and** pushes.  The tier never
    excludes a result; it is a label for display.
    """
    for floor, label in CONFIDENCE_TIERS:
        if sample_size >= floor:
            return label
    return CONFIDENCE_LOW


def round1(value: float) -> float:
    """Round to one decimal place for the caller-facing result shape."""
    return round(value, 1)
