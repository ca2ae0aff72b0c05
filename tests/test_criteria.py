"""Tests for BacktestCriteria validation, parsing and branch selection."""

from datetime import date

import pytest

from backend.core.criteria import (
    BET_TYPE_MONEYLINE,
    BET_TYPE_SPREAD,
    BET_TYPE_TOTAL,
    BacktestCriteria,
    FavoriteFilterMode,
)
from backend.core.sport_config import get_sport_config, is_supported_sport, supported_sports


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def test_defaults():
    c = BacktestCriteria(sport="nfl")
    assert c.bet_type == BET_TYPE_SPREAD
    assert c.season_type == "all"
    assert c.effective_season_start == get_sport_config("nfl").default_season_start
    assert c.effective_season_end == date.today().year
    assert c.is_valid()


def test_unknown_sport_season_start_falls_back():
    assert BacktestCriteria(sport="cricket").effective_season_start == 2017


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("kwargs, fragment", [
    ({"home_only": True, "away_only": True}, "home_only and away_only"),
    ({"favorite_only": True, "underdog_only": True}, "favorite_only and underdog_only"),
    ({"spread_min": 7, "spread_max": 3}, "spread_min"),
    ({"total_min": 50, "total_max": 40}, "total_min"),
    ({"public_pct_min": 120}, "between 0 and 100"),
    ({"season_start": 2022, "season_end": 2020}, "season_start"),
    ({"bet_type": "teaser"}, "Unknown bet type"),
    ({"season_type": "exhibition"}, "Unknown season type"),
])
def test_validate_reports_contradictions(kwargs, fragment):
    errors = BacktestCriteria(sport="nfl", **kwargs).validate()
    assert any(fragment in e for e in errors)


def test_validate_unknown_sport():
    assert BacktestCriteria(sport="cricket").validate() == ["Unknown sport 'cricket'"]


def test_construction_never_raises_on_contradiction():
    c = BacktestCriteria(sport="nfl", home_only=True, away_only=True)
    assert not c.is_valid()


# ---------------------------------------------------------------------------
# Favourite filter mode
# ---------------------------------------------------------------------------

def test_mode_home_qualified_with_side_flag():
    assert BacktestCriteria(sport="nfl", home_only=True).favorite_filter_mode is FavoriteFilterMode.HOME_QUALIFIED
    assert BacktestCriteria(sport="nfl", away_only=True).favorite_filter_mode is FavoriteFilterMode.HOME_QUALIFIED


def test_mode_magnitude_only_without_side_flag():
    c = BacktestCriteria(sport="nfl", favorite_only=True)
    assert c.favorite_filter_mode is FavoriteFilterMode.MAGNITUDE_ONLY


# ---------------------------------------------------------------------------
# from_params
# ---------------------------------------------------------------------------

def test_from_params_camel_case_query_strings():
    c = BacktestCriteria.from_params({
        "sport": "NFL",
        "betType": "ats",
        "homeOnly": "true",
        "underdogOnly": "true",
        "spreadMin": "3",
        "seasonStart": "2019",
        "seasonType": "Regular",
    })
    assert c.sport == "nfl"
    assert c.bet_type == BET_TYPE_SPREAD
    assert c.home_only is True
    assert c.underdog_only is True
    assert c.away_only is False
    assert c.spread_min == 3.0
    assert c.season_start == 2019
    assert c.season_type == "regular"


@pytest.mark.parametrize("alias, expected", [
    ("ml", BET_TYPE_MONEYLINE),
    ("ou", BET_TYPE_TOTAL),
    ("totals", BET_TYPE_TOTAL),
    ("spread", BET_TYPE_SPREAD),
])
def test_from_params_bet_type_aliases(alias, expected):
    assert BacktestCriteria.from_params({"sport": "nba", "bet_type": alias}).bet_type == expected


def test_from_params_legacy_names_and_blanks():
    c = BacktestCriteria.from_params({
        "sport": "nfl",
        "publicTicketPctMin": "70",
        "primetimeGame": "1",
        "totalMax": "",
        "homeOnly": "false",
    })
    assert c.public_pct_min == 70.0
    assert c.primetime_only is True
    assert c.total_max is None
    assert c.home_only is False


def test_from_params_bad_number_raises():
    with pytest.raises(ValueError):
        BacktestCriteria.from_params({"sport": "nfl", "spreadMin": "three"})


def test_from_params_missing_sport_is_invalid():
    assert not BacktestCriteria.from_params({}).is_valid()


def test_to_dict_resolves_seasons_and_drops_unset():
    d = BacktestCriteria(sport="nfl", home_only=True, season_end=2023).to_dict()
    assert d["sport"] == "nfl"
    assert d["home_only"] is True
    assert d["season_start"] == get_sport_config("nfl").default_season_start
    assert d["season_end"] == 2023
    assert "spread_min" not in d
    assert "away_only" not in d


# ---------------------------------------------------------------------------
# Sport registry
# ---------------------------------------------------------------------------

def test_sport_registry_case_insensitive():
    assert is_supported_sport(" NFL ")
    assert get_sport_config("Nba").sport_id == "nba"


def test_sport_registry_unknown_raises():
    with pytest.raises(KeyError):
        get_sport_config("cricket")


def test_supported_sports_sorted():
    assert supported_sports() == sorted(supported_sports())
    assert {"nfl", "nba", "nhl", "mlb"} <= set(supported_sports())
