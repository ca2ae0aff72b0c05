"""Tests for the SQLAlchemy-backed record, pattern and hypothesis stores."""

from datetime import date
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.core.records import AWAY_COVER, HOME_COVER, OVER
from backend.models import Base, HistoricalGame, Hypothesis, TrendPattern
from backend.services.hypothesis_intake import HypothesisCandidate, validate_hypothesis
from backend.services.pattern_discovery import DEFAULT_DIMENSIONS, evaluate_dimension
from backend.services.stores import (
    RecordStoreUnavailable,
    SqlHypothesisStore,
    SqlPatternStore,
    SqlRecordStore,
)


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _game(ext_id, season=2023, sport="nfl", **overrides):
    values = dict(
        external_id=ext_id,
        sport=sport,
        season=season,
        season_type="regular",
        game_date=date(season, 10, 1),
        home_team="Kansas City Chiefs",
        away_team="Buffalo Bills",
        home_team_abbr="KC",
        away_team_abbr="BUF",
        home_score=27,
        away_score=20,
        point_spread=-3.5,
        over_under=44.5,
        public_home_pct=60.0,
    )
    values.update(overrides)
    return HistoricalGame(**values)


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

class TestSqlRecordStore:
    def test_filters_sport_and_season_window(self, db):
        db.add_all([
            _game("a", season=2019),
            _game("b", season=2021),
            _game("c", season=2023),
            _game("d", season=2021, sport="nba"),
        ])
        db.commit()

        records = SqlRecordStore(db).fetch("nfl", 2020, 2023)
        assert sorted(r.game_id for r in records) == ["b", "c"]

    def test_season_type_all_is_unfiltered(self, db):
        db.add_all([_game("a"), _game("b", season_type="postseason")])
        db.commit()
        store = SqlRecordStore(db)
        assert len(store.fetch("nfl", 2023, 2023, "all")) == 2
        assert [r.game_id for r in store.fetch("nfl", 2023, 2023, "postseason")] == ["b"]

    def test_extra_bounds_pushed_down(self, db):
        db.add_all([
            _game("low", over_under=38.0, public_home_pct=80.0),
            _game("high", over_under=51.0, public_home_pct=40.0),
        ])
        db.commit()
        store = SqlRecordStore(db)
        assert [r.game_id for r in store.fetch("nfl", 2023, 2023, None, {"total_min": 45})] == ["high"]
        assert [r.game_id for r in store.fetch("nfl", 2023, 2023, None, {"public_pct_min": 70})] == ["low"]

    def test_missing_results_are_derived(self, db):
        db.add(_game("a", home_score=27, away_score=20, point_spread=-3.5, over_under=44.5))
        db.commit()
        rec = SqlRecordStore(db).fetch("nfl", 2023, 2023)[0]
        assert rec.spread_result == HOME_COVER
        assert rec.total_result == OVER
        assert rec.home_team_abbr == "KC"

    def test_stored_results_win_over_derivation(self, db):
        db.add(_game("a", spread_result=AWAY_COVER))
        db.commit()
        assert SqlRecordStore(db).fetch("nfl", 2023, 2023)[0].spread_result == AWAY_COVER

    def test_query_failure_raises_unavailable(self):
        session = MagicMock()
        session.query.return_value.filter.return_value.all.side_effect = OperationalError(
            "SELECT", {}, Exception("database is locked")
        )
        with pytest.raises(RecordStoreUnavailable) as excinfo:
            SqlRecordStore(session).fetch("nfl", 2020, 2023)
        assert excinfo.value.retryable is True
        assert excinfo.value.operation == "fetch"


# ---------------------------------------------------------------------------
# Pattern store
# ---------------------------------------------------------------------------

def _kc_pattern(record, wins, losses):
    recs = [record(day=i, home_score=28, away_score=20) for i in range(wins)]
    recs += [record(day=wins + i, home_score=21, away_score=20) for i in range(losses)]
    home_ats = next(d for d in DEFAULT_DIMENSIONS if d.key == "home-ats")
    return evaluate_dimension(home_ats, "nfl", recs, 2015, 2025)[0]


class TestSqlPatternStore:
    def test_upsert_is_idempotent_and_overwrites(self, db, record):
        store = SqlPatternStore(db)
        store.upsert(_kc_pattern(record, 15, 10))
        store.upsert(_kc_pattern(record, 20, 10))

        rows = db.query(TrendPattern).all()
        assert len(rows) == 1
        assert rows[0].pattern_id == "nfl-kansas-city-chiefs-home-ats"
        assert rows[0].sample_size == 30
        assert rows[0].backtest["wins"] == 20
        assert rows[0].criteria["home_only"] is True

    def test_list_filters_and_orders(self, db, record):
        store = SqlPatternStore(db)
        store.upsert(_kc_pattern(record, 15, 10))
        listed = store.list(sport="nfl")
        assert [p["pattern_id"] for p in listed] == ["nfl-kansas-city-chiefs-home-ats"]
        assert listed[0]["confidence_score"] == 62
        assert store.list(sport="nba") == []
        assert store.list(min_sample_size=30) == []
        assert store.list(min_win_pct=65) == []


# ---------------------------------------------------------------------------
# Hypothesis store
# ---------------------------------------------------------------------------

def test_hypothesis_upsert_keyed_by_id(db):
    store = SqlHypothesisStore(db)
    candidate = HypothesisCandidate(sport="nfl", conditions=["Home team", "Revenge game"])
    empty = MagicMock()
    validation = validate_hypothesis(candidate, empty)

    store.upsert(validation)
    store.upsert(validation)

    rows = db.query(Hypothesis).all()
    assert len(rows) == 1
    assert rows[0].hypothesis_id == candidate.hypothesis_id
    assert rows[0].status == "needs_review"
    assert rows[0].unmatched_conditions == ["Revenge game"]
    assert rows[0].validated_at is not None
