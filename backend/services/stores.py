"""
Record, pattern and hypothesis stores backed by SQLAlchemy.

The engine consumes a record store through one call:

    fetch(sport, season_start, season_end, season_type=None, extra_bounds=None)
        -> List[GameRecord]   (no ordering guarantee)

Each store wraps a caller-owned Session; stores never open, commit on
behalf of, or close sessions they were not given, except ``upsert`` which
commits its own write.  Any SQLAlchemyError is re-raised as
RecordStoreUnavailable so callers (HTTP layer, scheduler) can answer 503 or
retry on the next run.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.records import GameRecord, derive_betting_results
from backend.models import HistoricalGame, Hypothesis, TrendPattern

logger = logging.getLogger(__name__)

# extra_bounds keys that map directly onto historical_games columns
_BOUND_COLUMNS = {
    "total_min": (HistoricalGame.over_under, ">="),
    "total_max": (HistoricalGame.over_under, "<="),
    "public_pct_min": (HistoricalGame.public_home_pct, ">="),
    "public_pct_max": (HistoricalGame.public_home_pct, "<="),
}


class RecordStoreUnavailable(Exception):
    """The backing store could not be queried or written.

    ``retryable`` is always True: the engine itself never retries, callers
    decide whether to.
    """

    retryable = True

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Record store unavailable during {operation}: {cause}")


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

class RecordStore(ABC):
    """Source of completed games for one sport and season window."""

    @abstractmethod
    def fetch(
        self,
        sport: str,
        season_start: int,
        season_end: int,
        season_type: Optional[str] = None,
        extra_bounds: Optional[Mapping[str, float]] = None,
    ) -> List[GameRecord]:
        ...


def row_to_record(row: HistoricalGame) -> GameRecord:
    """Convert an ORM row, deriving results the feed left blank."""
    spread_result = row.spread_result
    total_result = row.total_result
    if spread_result is None or total_result is None:
        derived_spread, derived_total = derive_betting_results(
            row.home_score, row.away_score, row.point_spread, row.over_under
        )
        spread_result = spread_result or derived_spread
        total_result = total_result or derived_total

    return GameRecord(
        game_id=row.external_id or str(row.id),
        sport=row.sport,
        season=row.season,
        season_type=row.season_type or "regular",
        game_date=row.game_date,
        home_team=row.home_team,
        away_team=row.away_team,
        home_team_abbr=row.home_team_abbr or row.home_team,
        away_team_abbr=row.away_team_abbr or row.away_team,
        home_score=row.home_score,
        away_score=row.away_score,
        point_spread=row.point_spread,
        over_under=row.over_under,
        spread_result=spread_result,
        total_result=total_result,
        public_home_pct=row.public_home_pct,
        primetime=bool(row.primetime),
        divisional=bool(row.divisional),
    )


class SqlRecordStore(RecordStore):
    """RecordStore over the historical_games table."""

    def __init__(self, db: Session):
        self.db = db

    def fetch(
        self,
        sport: str,
        season_start: int,
        season_end: int,
        season_type: Optional[str] = None,
        extra_bounds: Optional[Mapping[str, float]] = None,
    ) -> List[GameRecord]:
        query = self.db.query(HistoricalGame).filter(
            HistoricalGame.sport == sport,
            HistoricalGame.season >= season_start,
            HistoricalGame.season <= season_end,
        )
        if season_type and season_type != "all":
            query = query.filter(HistoricalGame.season_type == season_type)

        for key, value in (extra_bounds or {}).items():
            if value is None or key not in _BOUND_COLUMNS:
                continue
            column, op = _BOUND_COLUMNS[key]
            query = query.filter(column >= value if op == ">=" else column <= value)

        try:
            rows = query.all()
        except SQLAlchemyError as exc:
            logger.error("historical_games fetch failed for %s: %s", sport, exc, exc_info=True)
            raise RecordStoreUnavailable("fetch", exc) from exc

        logger.debug(
            "Fetched %d %s records for seasons %d-%d (%s)",
            len(rows), sport, season_start, season_end, season_type or "all",
        )
        return [row_to_record(r) for r in rows]


# ---------------------------------------------------------------------------
# Pattern store
# ---------------------------------------------------------------------------

_PATTERN_FIELDS = (
    "sport", "category", "bet_type", "dimension", "name", "description",
    "conditions", "criteria", "win_pct", "roi", "sample_size",
    "confidence_score", "hot_streak", "backtest",
)


class SqlPatternStore:
    """Upsert and list qualified patterns in trend_patterns."""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, pattern: Any) -> TrendPattern:
        """Insert or overwrite the row keyed by ``pattern.pattern_id``.

        ``pattern`` is anything with a ``to_dict()`` carrying ``pattern_id``
        and the trend_patterns fields.
        """
        data = pattern.to_dict()
        try:
            row = (
                self.db.query(TrendPattern)
                .filter(TrendPattern.pattern_id == data["pattern_id"])
                .first()
            )
            if row is None:
                row = TrendPattern(pattern_id=data["pattern_id"])
                self.db.add(row)
            for name in _PATTERN_FIELDS:
                setattr(row, name, data.get(name))
            row.is_active = True
            row.updated_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Pattern upsert failed for %s: %s", data["pattern_id"], exc, exc_info=True)
            raise RecordStoreUnavailable("pattern upsert", exc) from exc
        return row

    def list(
        self,
        sport: Optional[str] = None,
        category: Optional[str] = None,
        min_sample_size: int = 0,
        min_win_pct: float = 0.0,
        limit: int = 100,
    ) -> List[Dict]:
        query = self.db.query(TrendPattern).filter(TrendPattern.is_active.is_(True))
        if sport:
            query = query.filter(TrendPattern.sport == sport)
        if category:
            query = query.filter(TrendPattern.category == category)
        if min_sample_size:
            query = query.filter(TrendPattern.sample_size >= min_sample_size)
        if min_win_pct:
            query = query.filter(TrendPattern.win_pct >= min_win_pct)
        query = query.order_by(TrendPattern.confidence_score.desc(), TrendPattern.pattern_id)

        try:
            rows = query.limit(limit).all()
        except SQLAlchemyError as exc:
            logger.error("Pattern listing failed: %s", exc, exc_info=True)
            raise RecordStoreUnavailable("pattern list", exc) from exc
        return [pattern_row_to_dict(r) for r in rows]


def pattern_row_to_dict(row: TrendPattern) -> Dict:
    data = {name: getattr(row, name) for name in _PATTERN_FIELDS}
    data["pattern_id"] = row.pattern_id
    data["discovered_at"] = row.discovered_at.isoformat() if row.discovered_at else None
    data["updated_at"] = row.updated_at.isoformat() if row.updated_at else None
    return data


# ---------------------------------------------------------------------------
# Hypothesis store
# ---------------------------------------------------------------------------

_HYPOTHESIS_FIELDS = (
    "sport", "name", "description", "conditions", "estimated_record",
    "status", "reasons", "unmatched_conditions", "criteria",
    "realized_sample_size", "realized_win_pct", "realized_roi",
    "win_rate_drift", "backtest",
)


class SqlHypothesisStore:
    """Upsert hypothesis validations keyed by hypothesis_id."""

    def __init__(self, db: Session):
        self.db = db

    def upsert(self, validation: Any) -> Hypothesis:
        data = validation.to_dict()
        try:
            row = (
                self.db.query(Hypothesis)
                .filter(Hypothesis.hypothesis_id == data["hypothesis_id"])
                .first()
            )
            if row is None:
                row = Hypothesis(hypothesis_id=data["hypothesis_id"])
                self.db.add(row)
            for name in _HYPOTHESIS_FIELDS:
                setattr(row, name, data.get(name))
            row.validated_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "Hypothesis upsert failed for %s: %s", data["hypothesis_id"], exc, exc_info=True
            )
            raise RecordStoreUnavailable("hypothesis upsert", exc) from exc
        return row
