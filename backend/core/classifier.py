"""Criteria filter and outcome classifier.

``classify(record, criteria)`` answers two questions for one game:

1. Does the game match the criteria?  If not it is *excluded* (``None``),
   which is different from a loss: excluded games never reach the
   aggregator.
2. If it matches, which side was picked and how did that side do?

Exclusion order
---------------
sport → season range → season type → market result present → situational
flags → spread magnitude bounds → total bounds → public-percentage bounds →
favourite/underdog branch.

The favourite/underdog branch dispatches on
:attr:`~backend.core.criteria.BacktestCriteria.favorite_filter_mode`; the
two branches intentionally do not share code.

Spread comparisons use the raw signed spread.  A missing spread is read as
0.0 for side selection (a pick'em), the same way the stored lines default.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Final, Iterable

from backend.core.criteria import (
    BET_TYPE_MONEYLINE,
    BET_TYPE_SPREAD,
    BET_TYPE_TOTAL,
    SEASON_TYPE_ALL,
    BacktestCriteria,
    FavoriteFilterMode,
)
from backend.core.records import AWAY_COVER, HOME_COVER, OVER, UNDER, GameRecord

RESULT_WIN: Final[str] = "W"
RESULT_LOSS: Final[str] = "L"
RESULT_PUSH: Final[str] = "P"

#: Underdog magnitude ceiling used when ``spread_max`` is unset.
_NO_SPREAD_CEILING: Final[float] = 999.0


@dataclass(frozen=True, slots=True)
class Outcome:
    """Per-game result of applying a criteria specification.

    Ephemeral: produced and consumed within one backtest run.
    """

    result: str          # W | L | P
    pick_side: str       # "KC -3.5", "BUF +3.5", "O 47.5"
    record: GameRecord
    bet_type: str = BET_TYPE_SPREAD

    @property
    def game_date(self):
        return self.record.game_date

    @property
    def season(self) -> int:
        return self.record.season


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _outside(value: float | None, lo: float | None, hi: float | None) -> bool:
    """True when ``value`` violates a specified bound.  Missing data violates."""
    if lo is None and hi is None:
        return False
    if value is None:
        return True
    if lo is not None and value < lo:
        return True
    if hi is not None and value > hi:
        return True
    return False


def _home_qualified_excludes(criteria: BacktestCriteria, home_spread: float) -> bool:
    if criteria.home_only and criteria.favorite_only and home_spread >= 0:
        return True
    if criteria.home_only and criteria.underdog_only and home_spread < 0:
        return True
    if criteria.away_only and criteria.favorite_only and home_spread <= 0:
        return True
    if criteria.away_only and criteria.underdog_only and home_spread > 0:
        return True
    return False


def _magnitude_only_excludes(criteria: BacktestCriteria, home_spread: float) -> bool:
    if criteria.favorite_only and abs(home_spread) < (criteria.spread_min or 0.0):
        return True
    if criteria.underdog_only and abs(home_spread) > (
        criteria.spread_max if criteria.spread_max is not None else _NO_SPREAD_CEILING
    ):
        return True
    return False


_FAVORITE_BRANCHES = {
    FavoriteFilterMode.HOME_QUALIFIED: _home_qualified_excludes,
    FavoriteFilterMode.MAGNITUDE_ONLY: _magnitude_only_excludes,
}


def is_excluded(record: GameRecord, criteria: BacktestCriteria) -> bool:
    """Return True when ``record`` does not match ``criteria``."""
    if record.sport != criteria.sport:
        return True
    if not criteria.effective_season_start <= record.season <= criteria.effective_season_end:
        return True
    if criteria.season_type != SEASON_TYPE_ALL and record.season_type != criteria.season_type:
        return True

    if criteria.bet_type == BET_TYPE_TOTAL:
        if record.total_result is None:
            return True
    elif record.spread_result is None:
        return True

    if criteria.primetime_only and not record.primetime:
        return True
    if criteria.divisional_only and not record.divisional:
        return True

    home_spread = record.point_spread or 0.0

    if criteria.spread_min is not None or criteria.spread_max is not None:
        if _outside(abs(home_spread), criteria.spread_min, criteria.spread_max):
            return True
    if _outside(record.over_under, criteria.total_min, criteria.total_max):
        return True
    if _outside(record.public_home_pct, criteria.public_pct_min, criteria.public_pct_max):
        return True

    return _FAVORITE_BRANCHES[criteria.favorite_filter_mode](criteria, home_spread)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def picks_home(criteria: BacktestCriteria, home_spread: float) -> bool:
    """Home is picked when home-only, the home favourite, or the home dog."""
    return (
        criteria.home_only
        or (criteria.favorite_only and home_spread < 0)
        or (criteria.underdog_only and home_spread >= 0)
    )


def _signed(value: float) -> str:
    value = value + 0.0  # -0.0 renders as "0"
    return f"+{value:g}" if value > 0 else f"{value:g}"


def _spread_pick(record: GameRecord, home: bool) -> str:
    home_spread = record.point_spread or 0.0
    if home:
        return f"{record.home_team_abbr} {_signed(home_spread)}"
    return f"{record.away_team_abbr} {_signed(-home_spread)}"


def _classify_side(record: GameRecord, criteria: BacktestCriteria) -> Outcome:
    home = picks_home(criteria, record.point_spread or 0.0)

    if criteria.bet_type == BET_TYPE_MONEYLINE:
        team = record.home_team_abbr if home else record.away_team_abbr
        margin = record.home_score - record.away_score
        if not home:
            margin = -margin
        result = RESULT_WIN if margin > 0 else RESULT_LOSS if margin < 0 else RESULT_PUSH
        return Outcome(
            result=result, pick_side=f"{team} ML", record=record, bet_type=BET_TYPE_MONEYLINE
        )

    picked_cover = HOME_COVER if home else AWAY_COVER
    other_cover = AWAY_COVER if home else HOME_COVER
    if record.spread_result == picked_cover:
        result = RESULT_WIN
    elif record.spread_result == other_cover:
        result = RESULT_LOSS
    else:
        result = RESULT_PUSH
    return Outcome(result=result, pick_side=_spread_pick(record, home), record=record)


def _classify_total(record: GameRecord) -> Outcome:
    if record.total_result == OVER:
        result = RESULT_WIN
    elif record.total_result == UNDER:
        result = RESULT_LOSS
    else:
        result = RESULT_PUSH
    line = f"O {record.over_under:g}" if record.over_under is not None else "O"
    return Outcome(result=result, pick_side=line, record=record, bet_type=BET_TYPE_TOTAL)


def classify(record: GameRecord, criteria: BacktestCriteria) -> Outcome | None:
    """Classify one record against ``criteria``; ``None`` means excluded."""
    if is_excluded(record, criteria):
        return None
    if criteria.bet_type == BET_TYPE_TOTAL:
        return _classify_total(record)
    if criteria.bet_type in (BET_TYPE_SPREAD, BET_TYPE_MONEYLINE):
        return _classify_side(record, criteria)
    return None


def classify_all(records: Iterable[GameRecord], criteria: BacktestCriteria) -> list[Outcome]:
    """Outcomes for every non-excluded record, in input order."""
    outcomes = []
    for record in records:
        outcome = classify(record, criteria)
        if outcome is not None:
            outcomes.append(outcome)
    return outcomes


def invert_outcome(outcome: Outcome) -> Outcome:
    """Flip an outcome to the opposite side of the same market.

    W ↔ L, pushes stay pushes.  The pick text swaps ``O``/``U`` for totals,
    or the team and spread sign for sides.
    """
    flipped = {RESULT_WIN: RESULT_LOSS, RESULT_LOSS: RESULT_WIN}.get(outcome.result, RESULT_PUSH)
    pick = outcome.pick_side
    record = outcome.record
    if outcome.bet_type == BET_TYPE_TOTAL:
        pick = ("U" if pick.startswith("O") else "O") + pick[1:]
    elif outcome.bet_type == BET_TYPE_MONEYLINE:
        home = pick == f"{record.home_team_abbr} ML"
        pick = f"{record.away_team_abbr if home else record.home_team_abbr} ML"
    else:
        home = pick.startswith(record.home_team_abbr + " ")
        pick = _spread_pick(record, not home)
    return replace(outcome, result=flipped, pick_side=pick)


def invert_outcomes(outcomes: Iterable[Outcome]) -> list[Outcome]:
    return [invert_outcome(o) for o in outcomes]
