"""
Pydantic request/response schemas for the Trend Engine API.

Backtest criteria arrive as query parameters and are parsed by
BacktestCriteria.from_params; the bodies below cover the admin routes and
document the result shapes in the OpenAPI docs.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from backend.core.sport_config import normalize_sport


# ---------------------------------------------------------------------------
# Backtest result
# ---------------------------------------------------------------------------

class SeasonBreakdownResponse(BaseModel):
    season: int
    record: str = Field(..., description='"W-L" or "W-L-P"')
    win_pct: float
    units: float
    roi: float


class RecentGameResponse(BaseModel):
    game_id: str
    date: str
    home_team: str
    away_team: str
    home_score: int
    away_score: int
    spread: Optional[float]
    total: Optional[float]
    result: Literal["W", "L", "P"]
    pick_side: str


class BacktestResponse(BaseModel):
    """Aggregate record for one criteria specification.

    Numeric fields are rounded to one decimal place.
    """

    criteria: Optional[dict]
    sample_size: int
    wins: int
    losses: int
    pushes: int
    win_pct: float
    units_profit: float
    roi: float
    confidence: Literal["Low", "Medium", "High", "Very High"]
    by_season: list[SeasonBreakdownResponse]
    recent_games: list[RecentGameResponse]
    current_streak: int
    current_streak_type: Literal["W", "L"]
    longest_win_streak: int
    longest_loss_streak: int
    max_drawdown: float
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

class PatternResponse(BaseModel):
    pattern_id: str
    sport: str
    category: str
    bet_type: str
    dimension: str
    name: str
    description: Optional[str]
    conditions: Optional[dict]
    criteria: Optional[dict]
    win_pct: Optional[float]
    roi: Optional[float]
    sample_size: Optional[int]
    confidence_score: Optional[int]
    hot_streak: Optional[bool]
    backtest: Optional[dict] = None
    discovered_at: Optional[str] = None
    updated_at: Optional[str] = None


class PatternListResponse(BaseModel):
    count: int
    patterns: list[PatternResponse]


class DiscoveryRequest(BaseModel):
    """
    Payload for POST /admin/patterns/discover.

    Omitting ``sports`` sweeps PATTERN_DISCOVERY_SPORTS.  The request-level
    filters apply after each dimension's own qualification thresholds.
    """

    sports: Optional[list[str]] = Field(None, description='e.g. ["nfl", "nba"]')
    season_start: Optional[int] = Field(None, ge=1900, le=2100)
    season_end: Optional[int] = Field(None, ge=1900, le=2100)
    season_type: Literal["regular", "postseason", "all"] = "all"
    min_sample_size: int = Field(20, ge=0)
    min_win_pct: float = Field(53.0, ge=0.0, le=100.0)
    persist: bool = Field(True, description="Upsert qualified patterns into trend_patterns")

    @field_validator("sports")
    @classmethod
    def normalise_sports(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        if v is None:
            return v
        return [normalize_sport(s) for s in v if normalize_sport(s)]

    model_config = {
        "json_schema_extra": {
            "example": {"sports": ["nfl"], "min_sample_size": 20, "min_win_pct": 53.0}
        }
    }


class DiscoveryResponse(BaseModel):
    message: str
    sports: list[str]
    patterns_found: int
    patterns_written: int
    dimensions_run: int
    errors: list[str]
    stopped: bool
    patterns: list[PatternResponse]


# ---------------------------------------------------------------------------
# Hypotheses
# ---------------------------------------------------------------------------

class EstimatedRecord(BaseModel):
    wins: Optional[int] = Field(None, ge=0)
    losses: Optional[int] = Field(None, ge=0)
    pushes: Optional[int] = Field(None, ge=0)
    win_rate: Optional[float] = Field(None, ge=0.0, le=100.0)
    roi: Optional[float] = None


class HypothesisCandidateIn(BaseModel):
    sport: str = Field(..., min_length=2, max_length=10)
    conditions: list[str] = Field(..., min_length=1)
    estimated_record: Optional[EstimatedRecord] = None
    name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("conditions")
    @classmethod
    def strip_conditions(cls, v: list[str]) -> list[str]:
        cleaned = [c.strip() for c in v if c and c.strip()]
        if not cleaned:
            raise ValueError("conditions must contain at least one non-blank entry")
        return cleaned

    model_config = {
        "json_schema_extra": {
            "example": {
                "sport": "nfl",
                "name": "Home Dogs in Divisional Games",
                "conditions": ["Home team", "Underdog +3+", "Divisional game"],
                "estimated_record": {"wins": 280, "losses": 220, "win_rate": 56.0, "roi": 8.5},
            }
        }
    }


class HypothesisBatchRequest(BaseModel):
    """Payload for POST /admin/hypotheses/validate."""
    candidates: list[HypothesisCandidateIn] = Field(..., min_length=1, max_length=200)
    min_sample: Optional[int] = Field(None, ge=1)
    persist: bool = True


class HypothesisValidationResponse(BaseModel):
    hypothesis_id: str
    sport: str
    name: Optional[str]
    status: Literal["validated", "needs_review"]
    reasons: list[str]
    unmatched_conditions: list[str]
    criteria: Optional[dict]
    lean: Optional[str]
    realized_sample_size: Optional[int]
    realized_win_pct: Optional[float]
    realized_roi: Optional[float]
    win_rate_drift: Optional[float]


class HypothesisBatchResponse(BaseModel):
    validated: int
    needs_review: int
    results: list[HypothesisValidationResponse]
