"""Criteria specifications — immutable, declarative backtest filters.

A :class:`BacktestCriteria` is built by a caller (HTTP query, pattern
qualifier, hypothesis intake) and consumed read-only by the classifier.
Construction never raises on contradictory input; :meth:`validate` returns
the list of problems so callers can answer with an empty result shape and
an explanatory message instead of an exception.

Favourite / underdog dispatch
-----------------------------
Favourite and underdog filtering follows one of two deliberately distinct
paths, exposed as :class:`FavoriteFilterMode`:

* ``HOME_QUALIFIED`` — a home/away flag is set, so favourite/underdog is
  decided by the sign of the home spread.
* ``MAGNITUDE_ONLY`` — no home/away flag, so favourite/underdog bounds the
  absolute spread using ``spread_min`` / ``spread_max``.

``spread_min`` and ``spread_max`` therefore serve both as general magnitude
bounds and as the favourite/underdog thresholds of the magnitude-only path.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, fields
from datetime import date
from typing import Any, Final, Mapping

from backend.core.sport_config import get_sport_config, is_supported_sport, normalize_sport

BET_TYPE_SPREAD: Final[str] = "spread"
BET_TYPE_MONEYLINE: Final[str] = "moneyline"
BET_TYPE_TOTAL: Final[str] = "total"
BET_TYPES: Final[frozenset[str]] = frozenset({BET_TYPE_SPREAD, BET_TYPE_MONEYLINE, BET_TYPE_TOTAL})

#: Short aliases accepted from query strings (``betType=ats``).
_BET_TYPE_ALIASES: Final[dict[str, str]] = {
    "ats": BET_TYPE_SPREAD,
    "spread": BET_TYPE_SPREAD,
    "ml": BET_TYPE_MONEYLINE,
    "moneyline": BET_TYPE_MONEYLINE,
    "ou": BET_TYPE_TOTAL,
    "total": BET_TYPE_TOTAL,
    "totals": BET_TYPE_TOTAL,
}

#: Legacy query-parameter names mapped onto field names.
_PARAM_ALIASES: Final[dict[str, str]] = {
    "public_ticket_pct_min": "public_pct_min",
    "public_ticket_pct_max": "public_pct_max",
    "primetime_game": "primetime_only",
    "divisional_game": "divisional_only",
}

SEASON_TYPE_ALL: Final[str] = "all"
SEASON_TYPE_FILTERS: Final[frozenset[str]] = frozenset({"regular", "postseason", SEASON_TYPE_ALL})


class FavoriteFilterMode(enum.Enum):
    """Which favourite/underdog branch a criteria specification takes."""

    HOME_QUALIFIED = "home_qualified"
    MAGNITUDE_ONLY = "magnitude_only"


@dataclass(frozen=True)
class BacktestCriteria:
    """Declarative filter for a backtest.

    Attributes:
        sport: Lower-case sport id.
        bet_type: ``"spread"``, ``"moneyline"`` or ``"total"``.
        spread_min / spread_max: Bounds on ``|point_spread|``.  Also the
            favourite/underdog thresholds when no home/away flag is set.
        home_only / away_only: Restrict to (and pick) one side.
        favorite_only / underdog_only: Restrict by favourite status.
        total_min / total_max: Bounds on the closing total.
        public_pct_min / public_pct_max: Bounds on home public backing.
        season_start / season_end: Inclusive season range.  ``None`` means
            the sport default start / the current year.
        season_type: ``"regular"``, ``"postseason"`` or ``"all"``.
        primetime_only / divisional_only: Situational flags.
    """

    sport: str
    bet_type: str = BET_TYPE_SPREAD
    spread_min: float | None = None
    spread_max: float | None = None
    home_only: bool = False
    away_only: bool = False
    favorite_only: bool = False
    underdog_only: bool = False
    total_min: float | None = None
    total_max: float | None = None
    public_pct_min: float | None = None
    public_pct_max: float | None = None
    season_start: int | None = None
    season_end: int | None = None
    season_type: str = SEASON_TYPE_ALL
    primetime_only: bool = False
    divisional_only: bool = False

    # ------------------------------------------------------------------ #
    #  Derived properties                                                  #
    # ------------------------------------------------------------------ #

    @property
    def favorite_filter_mode(self) -> FavoriteFilterMode:
        if self.home_only or self.away_only:
            return FavoriteFilterMode.HOME_QUALIFIED
        return FavoriteFilterMode.MAGNITUDE_ONLY

    @property
    def effective_season_start(self) -> int:
        if self.season_start is not None:
            return self.season_start
        if is_supported_sport(self.sport):
            return get_sport_config(self.sport).default_season_start
        return 2017

    @property
    def effective_season_end(self) -> int:
        return self.season_end if self.season_end is not None else date.today().year

    # ------------------------------------------------------------------ #
    #  Validation                                                          #
    # ------------------------------------------------------------------ #

    def validate(self) -> list[str]:
        """Return human-readable problems; an empty list means valid."""
        errors: list[str] = []

        if not is_supported_sport(self.sport):
            errors.append(f"Unknown sport {self.sport!r}")
        if self.bet_type not in BET_TYPES:
            errors.append(f"Unknown bet type {self.bet_type!r}")
        if self.season_type not in SEASON_TYPE_FILTERS:
            errors.append(f"Unknown season type {self.season_type!r}")

        if self.home_only and self.away_only:
            errors.append("home_only and away_only cannot both be set")
        if self.favorite_only and self.underdog_only:
            errors.append("favorite_only and underdog_only cannot both be set")

        for label, lo, hi in (
            ("spread", self.spread_min, self.spread_max),
            ("total", self.total_min, self.total_max),
            ("public_pct", self.public_pct_min, self.public_pct_max),
        ):
            if lo is not None and hi is not None and lo > hi:
                errors.append(f"{label}_min ({lo}) is greater than {label}_max ({hi})")

        for label, value in (("public_pct_min", self.public_pct_min), ("public_pct_max", self.public_pct_max)):
            if value is not None and not 0.0 <= value <= 100.0:
                errors.append(f"{label} must be between 0 and 100, got {value}")

        if self.effective_season_start > self.effective_season_end:
            errors.append(
                f"season_start ({self.effective_season_start}) is after "
                f"season_end ({self.effective_season_end})"
            )
        return errors

    def is_valid(self) -> bool:
        return not self.validate()

    # ------------------------------------------------------------------ #
    #  Serialisation                                                       #
    # ------------------------------------------------------------------ #

    def to_dict(self) -> dict[str, Any]:
        """Serialise with resolved season bounds; unset optional bounds dropped."""
        data = {k: v for k, v in asdict(self).items() if v is not None and v is not False}
        data["season_start"] = self.effective_season_start
        data["season_end"] = self.effective_season_end
        return data

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> BacktestCriteria:
        """Build criteria from loose inputs (query strings, JSON bodies).

        Accepts snake_case or camelCase keys, ``"true"``/``"false"``
        strings for flags, numeric strings for bounds and the short bet
        type aliases ``ats`` / ``ml`` / ``ou``.  Blank values are treated
        as unset.  Unparseable numbers raise ``ValueError``.
        """
        normalised = {}
        for key, value in params.items():
            name = _snake(key)
            normalised[_PARAM_ALIASES.get(name, name)] = value
        kwargs: dict[str, Any] = {}

        for f in fields(cls):
            if f.name not in normalised:
                continue
            raw = normalised[f.name]
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            if f.name == "sport":
                kwargs["sport"] = normalize_sport(str(raw))
            elif f.name == "bet_type":
                key = str(raw).strip().lower()
                kwargs["bet_type"] = _BET_TYPE_ALIASES.get(key, key)
            elif f.name == "season_type":
                kwargs["season_type"] = str(raw).strip().lower()
            elif f.name in ("season_start", "season_end"):
                kwargs[f.name] = int(raw)
            elif f.type in ("bool", bool):
                kwargs[f.name] = _truthy(raw)
            else:
                kwargs[f.name] = float(raw)

        kwargs.setdefault("sport", "")
        return cls(**kwargs)


def _snake(key: str) -> str:
    out = []
    for ch in key:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}
