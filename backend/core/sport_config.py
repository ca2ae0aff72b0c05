"""Sport-level configuration — all sport-specific constants in one place.

This module is the **registry** for every constant that differs between
sports.  Nowhere else in the codebase should default backtest windows,
situational-flag coverage, or display names be hard-coded.

Architecture
------------
:class:`SportConfig` is a frozen dataclass carrying all per-sport constants.
Named constructors (:meth:`SportConfig.nfl`, :meth:`SportConfig.nba`, ...)
return pre-populated instances, and :func:`get_sport_config` resolves a
sport id (case-insensitive) to its config.  To add a new sport:

1. Add a ``@classmethod`` constructor here.
2. Register it in ``_REGISTRY``.
3. The criteria parser, the backtest service and the pattern qualifier pick
   the sport up automatically.

Typical usage::

    from backend.core.sport_config import get_sport_config

    cfg = get_sport_config("NFL")
    criteria = BacktestCriteria(sport=cfg.sport_id, season_start=cfg.default_season_start)

    # Override a single constant for an experiment:
    from dataclasses import replace
    custom_cfg = replace(cfg, default_season_start=2010)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

#: Sport identifier strings used in API routes and DB records.
SPORT_ID_NFL: Final[str] = "nfl"
SPORT_ID_NBA: Final[str] = "nba"
SPORT_ID_NHL: Final[str] = "nhl"
SPORT_ID_MLB: Final[str] = "mlb"
SPORT_ID_NCAAF: Final[str] = "ncaaf"
SPORT_ID_NCAAB: Final[str] = "ncaab"

#: First season with reliable closing lines in the historical store.  Lines
#: before this are sparse, so unbounded backtests would be dominated by
#: null-lined (excluded) games.
_DEFAULT_SEASON_START: Final[int] = int(os.getenv("DEFAULT_SEASON_START", "2017"))


@dataclass(frozen=True)
class SportConfig:
    """Immutable configuration bundle for a single sport.

    Attributes:
        sport_id: Short lower-case identifier (``"nfl"``, ``"nba"``, ...)
            used in API routes, pattern ids and DB records.
        sport_name: Human-readable name for logging and pattern names.
        default_season_start: First season included when a criteria
            specification leaves ``season_start`` unset.
        tracks_primetime: Whether the historical feed flags nationally
            televised games for this sport.  Situational primetime
            dimensions are skipped for sports that never set the flag.
        tracks_divisional: Same, for in-division matchups.
    """

    sport_id: str
    sport_name: str
    default_season_start: int = _DEFAULT_SEASON_START
    tracks_primetime: bool = False
    tracks_divisional: bool = False

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def nfl(cls) -> SportConfig:
        """NFL: primetime (SNF/MNF/TNF) and divisional flags are tracked."""
        return cls(
            sport_id=SPORT_ID_NFL,
            sport_name="NFL",
            tracks_primetime=True,
            tracks_divisional=True,
        )

    @classmethod
    def nba(cls) -> SportConfig:
        return cls(
            sport_id=SPORT_ID_NBA,
            sport_name="NBA",
            tracks_primetime=True,
            tracks_divisional=True,
        )

    @classmethod
    def nhl(cls) -> SportConfig:
        return cls(sport_id=SPORT_ID_NHL, sport_name="NHL", tracks_divisional=True)

    @classmethod
    def mlb(cls) -> SportConfig:
        return cls(sport_id=SPORT_ID_MLB, sport_name="MLB", tracks_divisional=True)

    @classmethod
    def ncaa_football(cls) -> SportConfig:
        return cls(
            sport_id=SPORT_ID_NCAAF,
            sport_name="NCAA Football",
            tracks_primetime=True,
        )

    @classmethod
    def ncaa_basketball(cls) -> SportConfig:
        return cls(sport_id=SPORT_ID_NCAAB, sport_name="NCAA Basketball")

    def __repr__(self) -> str:
        return (
            f"SportConfig(sport_id={self.sport_id!r}, "
            f"season_start={self.default_season_start}, "
            f"primetime={self.tracks_primetime}, "
            f"divisional={self.tracks_divisional})"
        )


_REGISTRY: Final[dict[str, SportConfig]] = {
    cfg.sport_id: cfg
    for cfg in (
        SportConfig.nfl(),
        SportConfig.nba(),
        SportConfig.nhl(),
        SportConfig.mlb(),
        SportConfig.ncaa_football(),
        SportConfig.ncaa_basketball(),
    )
}

#: Sports swept by scheduled pattern discovery unless overridden.
DEFAULT_DISCOVERY_SPORTS: Final[tuple[str, ...]] = tuple(
    s.strip().lower()
    for s in os.getenv("PATTERN_DISCOVERY_SPORTS", "nfl,nba,nhl,mlb").split(",")
    if s.strip()
)


def normalize_sport(sport: str | None) -> str:
    """Lower-case and strip a sport id (``"NFL "`` → ``"nfl"``)."""
    return (sport or "").strip().lower()


def is_supported_sport(sport: str | None) -> bool:
    return normalize_sport(sport) in _REGISTRY


def get_sport_config(sport: str) -> SportConfig:
    """Return the registered :class:`SportConfig` for ``sport``.

    Raises:
        KeyError: If the sport is not registered.
    """
    key = normalize_sport(sport)
    if key not in _REGISTRY:
        raise KeyError(f"Unknown sport {sport!r}. Known: {sorted(_REGISTRY)}")
    return _REGISTRY[key]


def supported_sports() -> list[str]:
    return sorted(_REGISTRY)
