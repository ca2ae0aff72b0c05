"""Tests for the pattern qualifier: thresholds, leans, ids, fan-out, stop."""

import threading
from unittest.mock import MagicMock

import pytest

from backend.core.odds_math import break_even_roi, exact_roi
from backend.services.pattern_discovery import (
    CATEGORY_CONTRARIAN,
    CATEGORY_SITUATIONAL,
    DEFAULT_DIMENSIONS,
    discover_patterns,
    evaluate_dimension,
    pattern_id_for,
    persist_patterns,
    slugify,
)

DIMS = {d.key: d for d in DEFAULT_DIMENSIONS}


def _team_home_games(record, team, abbr, results, opponent="Buffalo Bills", **extra):
    recs = []
    for i, r in enumerate(results):
        home_score = {"W": 28, "L": 21, "P": 23}[r]
        spread = -3.0 if r == "P" else -3.5
        recs.append(record(
            day=i + 1, home=team, home_abbr=abbr, away=opponent,
            home_score=home_score, away_score=20, spread=spread,
            game_id=f"{abbr}-{i}", **extra,
        ))
    return recs


def _store(records):
    store = MagicMock()
    store.fetch.return_value = records
    return store


# ---------------------------------------------------------------------------
# Team home/away ATS
# ---------------------------------------------------------------------------

class TestTeamSpreadDimensions:
    def test_covers_at_home_qualifies(self, record):
        recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
        patterns = evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025)
        kc = [p for p in patterns if p.conditions.get("team") == "Kansas City Chiefs"]

        assert len(kc) == 1
        p = kc[0]
        assert p.pattern_id == "nfl-kansas-city-chiefs-home-ats"
        assert p.win_pct == pytest.approx(60.0)
        assert p.sample_size == 25
        assert p.roi == pytest.approx(exact_roi(15, 10))
        assert p.backtest.max_drawdown == pytest.approx(10.0)
        assert p.conditions["side"] == "back"
        assert "covers at home 60.0%" in p.description

    def test_under_threshold_sample_skipped(self, record):
        recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 19)
        assert evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025) == []

    def test_pushes_do_not_count_toward_sample(self, record):
        recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 19 + "P" * 5)
        assert evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025) == []

    def test_middling_record_not_qualified(self, record):
        recs = _team_home_games(record, "Kansas City Chiefs", "KC", "WL" * 15)
        assert evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025) == []

    def test_low_record_becomes_fade(self, record):
        recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 8 + "L" * 17)
        p = evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025)[0]

        assert p.conditions["side"] == "fade"
        assert p.criteria.away_only and not p.criteria.home_only
        assert p.win_pct == pytest.approx(68.0)
        assert p.backtest.wins == 17
        assert p.backtest.recent_games[0].pick_side == "BUF +3.5"
        assert "fade them" in p.description

    def test_away_dimension_groups_by_away_team(self, record):
        recs = [
            record(day=i, away="Buffalo Bills", away_abbr="BUF", home_score=20, away_score=24)
            for i in range(1, 22)
        ]
        patterns = evaluate_dimension(DIMS["away-ats"], "nfl", recs, 2015, 2025)
        assert [p.pattern_id for p in patterns] == ["nfl-buffalo-bills-away-ats"]
        assert patterns[0].win_pct == pytest.approx(100.0)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------

class TestTotalsDimension:
    def _totals_games(self, record, overs, unders):
        recs = []
        for i in range(overs):
            recs.append(record(day=i, home_score=30, away_score=24, total=44.5, game_id=f"o{i}"))
        for i in range(unders):
            recs.append(record(day=overs + i, home_score=10, away_score=13, total=44.5, game_id=f"u{i}"))
        return recs

    def test_under_lean_inverts_outcomes(self, record):
        recs = self._totals_games(record, overs=10, unders=25)
        patterns = evaluate_dimension(DIMS["totals"], "nfl", recs, 2015, 2025)

        # Both teams in every game, so both qualify
        assert {p.pattern_id for p in patterns} == {
            "nfl-buffalo-bills-totals", "nfl-kansas-city-chiefs-totals",
        }
        p = patterns[0]
        assert p.conditions["side"] == "under"
        assert p.name.endswith("Unders")
        assert p.backtest.wins == 25
        assert p.win_pct == pytest.approx(25 / 35 * 100)
        assert p.roi == pytest.approx(break_even_roi(25 / 35 * 100))
        assert p.backtest.recent_games[0].pick_side == "U 44.5"

    def test_over_lean(self, record):
        recs = self._totals_games(record, overs=20, unders=10)
        p = evaluate_dimension(DIMS["totals"], "nfl", recs, 2015, 2025)[0]
        assert p.conditions["side"] == "over"
        assert p.backtest.wins == 20


# ---------------------------------------------------------------------------
# Situational and contrarian
# ---------------------------------------------------------------------------

def test_primetime_away_lean_uses_break_even_roi(record):
    recs = [
        record(day=i, home=f"Team {i % 9}", home_abbr=f"T{i % 9}",
               primetime=True, home_score=20, away_score=24)
        for i in range(30)
    ] + [
        record(day=30 + i, home=f"Team {i % 9}", home_abbr=f"T{i % 9}",
               primetime=True, home_score=28, away_score=20)
        for i in range(20)
    ]
    p = evaluate_dimension(DIMS["primetime-ats"], "nfl", recs, 2015, 2025)[0]

    assert p.pattern_id == "nfl-primetime-ats"
    assert p.category == CATEGORY_SITUATIONAL
    assert p.conditions == {"primetime": True, "side": "away"}
    assert p.win_pct == pytest.approx(60.0)
    assert p.roi == pytest.approx(break_even_roi(60.0))


def test_contrarian_fade_heavy_public(record):
    fades_win = [
        record(day=i, public_home_pct=75.0, home_score=20, away_score=24) for i in range(20)
    ]
    fades_lose = [
        record(day=20 + i, public_home_pct=80.0, home_score=28, away_score=20) for i in range(12)
    ]
    light_public = [record(day=40 + i, public_home_pct=50.0) for i in range(30)]

    patterns = evaluate_dimension(
        DIMS["fade-heavy-public"], "nfl", fades_win + fades_lose + light_public, 2015, 2025
    )
    assert len(patterns) == 1
    p = patterns[0]
    assert p.pattern_id == "nfl-fade-heavy-public"
    assert p.category == CATEGORY_CONTRARIAN
    assert p.sample_size == 32
    assert p.win_pct == pytest.approx(62.5)


def test_contrarian_is_single_sided(record):
    recs = [record(day=i, public_home_pct=75.0, home_score=28, away_score=20) for i in range(40)]
    assert evaluate_dimension(DIMS["fade-heavy-public"], "nfl", recs, 2015, 2025) == []


# ---------------------------------------------------------------------------
# Pattern scoring and ids
# ---------------------------------------------------------------------------

def test_confidence_score_and_hot_streak(record):
    recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
    p = evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025)[0]
    assert p.confidence_score == 62        # floor(60 + 25/10)
    assert p.hot_streak is True            # roi 14.6 > 10, win% 60 > 55
    d = p.to_dict()
    assert d["win_pct"] == 60.0
    assert d["backtest"]["max_drawdown"] == 10.0


def test_slugify_and_ids():
    assert slugify("San Francisco 49ers") == "san-francisco-49ers"
    assert pattern_id_for("nfl", DIMS["totals"], "St. Louis Cardinals") == "nfl-st-louis-cardinals-totals"
    assert pattern_id_for("nfl", DIMS["divisional-ats"]) == "nfl-divisional-ats"


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

def test_discover_fetches_once_per_sport_and_is_deterministic(record):
    recs = (
        _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
        + _team_home_games(record, "Denver Broncos", "DEN", "L" * 20 + "W" * 5)
    )
    store = _store(recs)

    first = discover_patterns(store, sports=["nfl"], season_start=2015, season_end=2025, max_workers=4)
    second = discover_patterns(store, sports=["nfl"], season_start=2015, season_end=2025, max_workers=1)

    assert store.fetch.call_count == 2
    store.fetch.assert_called_with("nfl", 2015, 2025, "all", None)
    ids = [p.pattern_id for p in first.patterns]
    assert ids == sorted(ids)
    assert ids == [p.pattern_id for p in second.patterns]
    assert "nfl-kansas-city-chiefs-home-ats" in ids
    assert "nfl-denver-broncos-home-ats" in ids
    assert first.stopped is False


def test_request_level_filters(record):
    recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
    result = discover_patterns(
        _store(recs), sports=["nfl"], season_start=2015, season_end=2025,
        min_sample_size=30,
    )
    assert result.patterns == []


def test_situational_dimensions_skipped_for_untracked_sport(record):
    recs = [record(sport="ncaab", day=i, primetime=True, home_score=30) for i in range(60)]
    result = discover_patterns(_store(recs), sports=["ncaab"], season_start=2015, season_end=2025)
    assert all(p.dimension != "primetime-ats" for p in result.patterns)


def test_stop_event_skips_remaining_dimensions(record):
    stop = threading.Event()
    stop.set()
    store = _store([record()])
    result = discover_patterns(store, sports=["nfl", "nba"], stop_event=stop)
    assert result.stopped is True
    assert result.patterns == []
    store.fetch.assert_not_called()


def test_store_failure_propagates():
    from backend.services.stores import RecordStoreUnavailable

    store = MagicMock()
    store.fetch.side_effect = RecordStoreUnavailable("fetch")
    with pytest.raises(RecordStoreUnavailable):
        discover_patterns(store, sports=["nfl"])


def test_persist_patterns_upserts_each(record):
    recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
    patterns = evaluate_dimension(DIMS["home-ats"], "nfl", recs, 2015, 2025)
    pattern_store = MagicMock()
    assert persist_patterns(pattern_store, patterns) == len(patterns)
    assert pattern_store.upsert.call_count == len(patterns)


def test_duplicate_sports_swept_once(record):
    recs = _team_home_games(record, "Kansas City Chiefs", "KC", "W" * 15 + "L" * 10)
    store = _store(recs)
    result = discover_patterns(store, sports=["nfl", "NFL", "nfl"], season_start=2015, season_end=2025)

    assert result.sports == ["nfl"]
    assert store.fetch.call_count == 1
    ids = [p.pattern_id for p in result.patterns]
    assert len(ids) == len(set(ids))


def test_unsupported_sport_skipped_and_reported(record):
    store = _store([record()])
    result = discover_patterns(store, sports=["curling", "nfl"], season_start=2015, season_end=2025)

    assert result.sports == ["nfl"]
    assert result.errors == ["Unsupported sport 'curling'"]
    store.fetch.assert_called_once()
    assert result.summary()["errors"] == ["Unsupported sport 'curling'"]
