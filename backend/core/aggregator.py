"""Aggregator — fold classified outcomes into a backtest result.

Streaks and drawdown are path-dependent, so outcomes are first sorted
ascending by game date.  The sort is stable: games on the same date keep
the order the classifier produced them in.

Recent games and the current streak
-----------------------------------
Only the :data:`RECENT_GAMES_CAP` most recent matching games are kept for
display, newest first.  The current streak is derived from that capped list
alone, so a streak longer than the cap reports as the cap.  Longest streaks
and drawdown are computed over the full history.

Rounding to one decimal happens in :meth:`BacktestResult.to_dict` only;
every intermediate value keeps full precision.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Final, Iterable, Optional

from backend.core.classifier import RESULT_LOSS, RESULT_PUSH, RESULT_WIN, Outcome
from backend.core.criteria import BacktestCriteria
from backend.core.odds_math import (
    LOSS_UNITS,
    WIN_PAYOUT_UNITS,
    confidence_tier,
    exact_roi,
    round1,
    units_profit,
    win_pct,
)

#: Size of the most-recent-first display sample; also bounds current streak.
RECENT_GAMES_CAP: Final[int] = 20

NO_GAMES_MESSAGE: Final[str] = "No games found matching criteria. Try adjusting your filters."


@dataclass
class SeasonBreakdown:
    season: int
    wins: int = 0
    losses: int = 0
    pushes: int = 0

    def add(self, result: str) -> None:
        if result == RESULT_WIN:
            self.wins += 1
        elif result == RESULT_LOSS:
            self.losses += 1
        else:
            self.pushes += 1

    @property
    def record(self) -> str:
        base = f"{self.wins}-{self.losses}"
        return f"{base}-{self.pushes}" if self.pushes else base

    def to_dict(self) -> dict[str, Any]:
        return {
            "season": self.season,
            "record": self.record,
            "win_pct": round1(win_pct(self.wins, self.losses)),
            "units": round1(units_profit(self.wins, self.losses)),
            "roi": round1(exact_roi(self.wins, self.losses)),
        }


@dataclass(frozen=True)
class RecentGame:
    game_id: str
    date: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    spread: Optional[float]
    total: Optional[float]
    result: str
    pick_side: str

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> RecentGame:
        rec = outcome.record
        return cls(
            game_id=rec.game_id,
            date=rec.game_date.isoformat(),
            home_team=rec.home_team_abbr,
            away_team=rec.away_team_abbr,
            home_score=rec.home_score,
            away_score=rec.away_score,
            spread=rec.point_spread,
            total=rec.over_under,
            result=outcome.result,
            pick_side=outcome.pick_side,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "game_id": self.game_id,
            "date": self.date,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "spread": self.spread,
            "total": self.total,
            "result": self.result,
            "pick_side": self.pick_side,
        }


@dataclass
class BacktestResult:
    """Aggregate over an outcome stream.

    Attributes mirror the caller-facing result shape.  ``message`` is set
    only for empty or rejected runs.
    """

    criteria: Optional[BacktestCriteria]
    wins: int = 0
    losses: int = 0
    pushes: int = 0
    by_season: list[SeasonBreakdown] = field(default_factory=list)
    recent_games: list[RecentGame] = field(default_factory=list)
    current_streak: int = 0
    current_streak_type: str = RESULT_WIN
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    max_drawdown: float = 0.0
    message: Optional[str] = None

    @property
    def sample_size(self) -> int:
        return self.wins + self.losses + self.pushes

    @property
    def decided(self) -> int:
        return self.wins + self.losses

    @property
    def win_pct(self) -> float:
        return win_pct(self.wins, self.losses)

    @property
    def units_profit(self) -> float:
        return units_profit(self.wins, self.losses)

    @property
    def roi(self) -> float:
        return exact_roi(self.wins, self.losses)

    @property
    def confidence(self) -> str:
        return confidence_tier(self.sample_size)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "criteria": self.criteria.to_dict() if self.criteria is not None else None,
            "sample_size": self.sample_size,
            "wins": self.wins,
            "losses": self.losses,
            "pushes": self.pushes,
            "win_pct": round1(self.win_pct),
            "units_profit": round1(self.units_profit),
            "roi": round1(self.roi),
            "confidence": self.confidence,
            "by_season": [s.to_dict() for s in self.by_season],
            "recent_games": [g.to_dict() for g in self.recent_games],
            "current_streak": self.current_streak,
            "current_streak_type": self.current_streak_type,
            "longest_win_streak": self.longest_win_streak,
            "longest_loss_streak": self.longest_loss_streak,
            "max_drawdown": round1(self.max_drawdown),
        }
        if self.message:
            data["message"] = self.message
        return data


def current_streak(recent: Iterable[RecentGame]) -> tuple[int, str]:
    """Streak length and type, scanning newest first.

    Pushes are skipped.  The scan stops at the first decided game of the
    other type.  With no decided games the type defaults to ``"W"``.
    """
    streak = 0
    streak_type = RESULT_WIN
    for game in recent:
        if game.result == RESULT_PUSH:
            continue
        if streak == 0:
            streak_type = game.result
            streak = 1
        elif game.result == streak_type:
            streak += 1
        else:
            break
    return streak, streak_type


def aggregate(
    outcomes: Iterable[Outcome],
    criteria: Optional[BacktestCriteria] = None,
) -> BacktestResult:
    """Fold ``outcomes`` (any order) into a :class:`BacktestResult`."""
    ordered = sorted(outcomes, key=lambda o: o.game_date)
    result = BacktestResult(criteria=criteria)

    seasons: dict[int, SeasonBreakdown] = {}
    recent: deque[RecentGame] = deque(maxlen=RECENT_GAMES_CAP)

    win_run = 0
    loss_run = 0
    running = 0.0
    peak = 0.0

    for outcome in ordered:
        if outcome.result == RESULT_WIN:
            result.wins += 1
            running += WIN_PAYOUT_UNITS
            win_run += 1
            loss_run = 0
            result.longest_win_streak = max(result.longest_win_streak, win_run)
        elif outcome.result == RESULT_LOSS:
            result.losses += 1
            running -= LOSS_UNITS
            loss_run += 1
            win_run = 0
            result.longest_loss_streak = max(result.longest_loss_streak, loss_run)
        else:
            result.pushes += 1

        peak = max(peak, running)
        result.max_drawdown = max(result.max_drawdown, peak - running)

        bucket = seasons.get(outcome.season)
        if bucket is None:
            bucket = seasons[outcome.season] = SeasonBreakdown(season=outcome.season)
        bucket.add(outcome.result)

        recent.append(RecentGame.from_outcome(outcome))

    # deque holds the newest RECENT_GAMES_CAP oldest-first
    result.recent_games = list(reversed(recent))
    result.current_streak, result.current_streak_type = current_streak(result.recent_games)
    result.by_season = sorted(seasons.values(), key=lambda s: s.season, reverse=True)

    if not ordered:
        result.message = NO_GAMES_MESSAGE
    return result


def empty_result(criteria: Optional[BacktestCriteria], message: str) -> BacktestResult:
    """Zero-valued result shape carrying an explanatory ``message``."""
    return BacktestResult(criteria=criteria, message=message)
