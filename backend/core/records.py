"""Game records — the unit of analysis for every backtest.

A :class:`GameRecord` is one completed contest with its closing market lines
and the derived betting results.  Records are immutable and slotted so a
fetched slice can be shared across pattern-discovery worker threads without
copying.

Invariant: ``spread_result`` / ``total_result`` are ``None`` only when the
game had no market line.  Consumers must treat null-lined games as
*excluded*, never as losses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Final

# ---------------------------------------------------------------------------
# Result vocabularies (string values match the historical_games columns)
# ---------------------------------------------------------------------------

HOME_COVER: Final[str] = "home_cover"
AWAY_COVER: Final[str] = "away_cover"
PUSH: Final[str] = "push"

OVER: Final[str] = "over"
UNDER: Final[str] = "under"

SPREAD_RESULTS: Final[frozenset[str]] = frozenset({HOME_COVER, AWAY_COVER, PUSH})
TOTAL_RESULTS: Final[frozenset[str]] = frozenset({OVER, UNDER, PUSH})

SEASON_TYPE_REGULAR: Final[str] = "regular"
SEASON_TYPE_POSTSEASON: Final[str] = "postseason"
SEASON_TYPE_PRESEASON: Final[str] = "preseason"


@dataclass(frozen=True, slots=True)
class GameRecord:
    """One completed game with closing lines.

    Attributes:
        game_id: Feed identifier, stable across re-imports.
        sport: Lower-case sport id (``"nfl"``).
        season: Season year.  For sports spanning two calendar years this is
            the year the season started.
        season_type: ``"regular"``, ``"postseason"`` or ``"preseason"``.
        game_date: Calendar date of the game.
        home_team / away_team: Full team names (grouping keys).
        home_team_abbr / away_team_abbr: Abbreviations used in pick strings.
        home_score / away_score: Final scores (non-negative).
        point_spread: Home-relative closing spread; negative = home favoured.
        over_under: Closing total.
        spread_result: ``home_cover`` | ``away_cover`` | ``push`` | None.
        total_result: ``over`` | ``under`` | ``push`` | None.
        public_home_pct: Share of spread tickets on the home side (0-100).
        primetime: Nationally televised slot.
        divisional: In-division matchup.
    """

    game_id: str
    sport: str
    season: int
    season_type: str
    game_date: date
    home_team: str
    away_team: str
    home_team_abbr: str
    away_team_abbr: str
    home_score: int
    away_score: int
    point_spread: float | None = None
    over_under: float | None = None
    spread_result: str | None = None
    total_result: str | None = None
    public_home_pct: float | None = None
    primetime: bool = False
    divisional: bool = False

    @property
    def matchup(self) -> str:
        return f"{self.away_team_abbr} @ {self.home_team_abbr}"


def derive_betting_results(
    home_score: int,
    away_score: int,
    spread: float | None,
    total: float | None,
) -> tuple[str | None, str | None]:
    """Compute ``(spread_result, total_result)`` from a final score and lines.

    Cover condition: ``home_score + spread`` against ``away_score``; equal is
    a push.  Totals compare combined score to the line.  A missing line
    yields ``None`` for that market.

    Examples::

        derive_betting_results(24, 20, -3.5, 44.5) → ("home_cover", "under")
        derive_betting_results(24, 21, -3.0, 45.0) → ("push", "push")
        derive_betting_results(24, 21, None, None) → (None, None)
    """
    spread_result: str | None = None
    total_result: str | None = None

    if spread is not None:
        adjusted_home = home_score + spread
        if adjusted_home > away_score:
            spread_result = HOME_COVER
        elif adjusted_home < away_score:
            spread_result = AWAY_COVER
        else:
            spread_result = PUSH

    if total is not None:
        combined = home_score + away_score
        if combined > total:
            total_result = OVER
        elif combined < total:
            total_result = UNDER
        else:
            total_result = PUSH

    return spread_result, total_result
