"""Shared test setup: in-memory database, dev API key, record factory."""

import os

# Must be set before backend.models / backend.auth are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "development")

from datetime import date, timedelta

import pytest

from backend.core.records import GameRecord, derive_betting_results


def make_record(
    day: int = 1,
    home: str = "Kansas City Chiefs",
    away: str = "Buffalo Bills",
    home_abbr: str = "KC",
    away_abbr: str = "BUF",
    home_score: int = 24,
    away_score: int = 20,
    spread: float | None = -3.5,
    total: float | None = 44.5,
    sport: str = "nfl",
    season: int = 2023,
    season_type: str = "regular",
    public_home_pct: float | None = None,
    primetime: bool = False,
    divisional: bool = False,
    spread_result: str | None = "derive",
    total_result: str | None = "derive",
    game_id: str | None = None,
) -> GameRecord:
    """Build a GameRecord dated ``day`` days into the season."""
    derived_spread, derived_total = derive_betting_results(home_score, away_score, spread, total)
    return GameRecord(
        game_id=game_id or f"{sport}-{season}-{day}-{home_abbr}-{away_abbr}",
        sport=sport,
        season=season,
        season_type=season_type,
        game_date=date(season, 9, 1) + timedelta(days=day),
        home_team=home,
        away_team=away,
        home_team_abbr=home_abbr,
        away_team_abbr=away_abbr,
        home_score=home_score,
        away_score=away_score,
        point_spread=spread,
        over_under=total,
        spread_result=derived_spread if spread_result == "derive" else spread_result,
        total_result=derived_total if total_result == "derive" else total_result,
        public_home_pct=public_home_pct,
        primetime=primetime,
        divisional=divisional,
    )


@pytest.fixture
def record():
    return make_record
