"""
Pattern discovery: sweep a catalogue of grouping dimensions over historical
records and keep the groups whose record clears the dimension's threshold.

Scheduled job:
  run_discovery()  - daily (DISCOVERY_CRON_HOUR UTC): discover + upsert patterns

Each GroupingDimension carries its own minimum decided sample, qualifying
thresholds and ROI strategy.  A qualifying group becomes a Pattern holding
the full backtest of that group from the lean side:

  * spread groups below the low threshold are faded (home_only ↔ away_only
    on the same subset),
  * totals groups below the low threshold lean under (outcomes inverted),
  * single-sided dimensions (contrarian) have no low threshold.

Records are fetched once per sport on the calling thread.  Dimensions are
pure and fan out on a ThreadPoolExecutor; results are merged and sorted by
pattern id so identical inputs yield identical output.  A threading.Event
stop signal is checked before each dimension starts; a stopped sweep keeps
whatever finished.
"""

import logging
import math
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from backend.core.aggregator import BacktestResult, aggregate
from backend.core.classifier import RESULT_LOSS, RESULT_WIN, classify_all, invert_outcomes
from backend.core.criteria import BET_TYPE_SPREAD, BET_TYPE_TOTAL, BacktestCriteria
from backend.core.odds_math import (
    ROI_BREAK_EVEN,
    ROI_EXACT_UNITS,
    roi_for_strategy,
    round1,
    win_pct,
)
from backend.core.records import GameRecord
from backend.core.sport_config import (
    DEFAULT_DISCOVERY_SPORTS,
    get_sport_config,
    is_supported_sport,
    normalize_sport,
)
from backend.models import SessionLocal
from backend.services.stores import RecordStore, SqlPatternStore, SqlRecordStore

logger = logging.getLogger(__name__)

PATTERN_DISCOVERY_WORKERS = int(os.getenv("PATTERN_DISCOVERY_WORKERS", "4"))

CATEGORY_TEAM = "team"
CATEGORY_SITUATIONAL = "situational"
CATEGORY_CONTRARIAN = "contrarian"

# Grouping keys
GROUP_HOME_TEAM = "home_team"
GROUP_AWAY_TEAM = "away_team"
GROUP_ANY_TEAM = "team"
GROUP_SPORT = "sport"

HEAVY_PUBLIC_PCT = 70.0


# ---------------------------------------------------------------------------
# Dimension catalogue
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GroupingDimension:
    """One candidate grouping the qualifier evaluates.

    high_threshold: qualify (natural lean) when win% >= this.
    low_threshold:  qualify (opposite lean) when win% <= this; None means
                    the dimension is single-sided.
    base_criteria:  BacktestCriteria fields applied to every group.
    requires:       SportConfig flag that must be True for the dimension
                    to run (e.g. "tracks_primetime").
    """

    key: str
    category: str
    bet_type: str
    grouping: str
    min_decided: int
    high_threshold: float
    low_threshold: Optional[float]
    roi_strategy: str
    base_criteria: Dict = field(default_factory=dict)
    requires: Optional[str] = None


DEFAULT_DIMENSIONS: Tuple[GroupingDimension, ...] = (
    GroupingDimension(
        key="home-ats",
        category=CATEGORY_TEAM,
        bet_type=BET_TYPE_SPREAD,
        grouping=GROUP_HOME_TEAM,
        min_decided=20,
        high_threshold=54.0,
        low_threshold=46.0,
        roi_strategy=ROI_EXACT_UNITS,
        base_criteria={"home_only": True},
    ),
    GroupingDimension(
        key="away-ats",
        category=CATEGORY_TEAM,
        bet_type=BET_TYPE_SPREAD,
        grouping=GROUP_AWAY_TEAM,
        min_decided=20,
        high_threshold=54.0,
        low_threshold=46.0,
        roi_strategy=ROI_EXACT_UNITS,
        base_criteria={"away_only": True},
    ),
    GroupingDimension(
        key="totals",
        category=CATEGORY_TEAM,
        bet_type=BET_TYPE_TOTAL,
        grouping=GROUP_ANY_TEAM,
        min_decided=30,
        high_threshold=55.0,
        low_threshold=45.0,
        roi_strategy=ROI_BREAK_EVEN,
    ),
    GroupingDimension(
        key="primetime-ats",
        category=CATEGORY_SITUATIONAL,
        bet_type=BET_TYPE_SPREAD,
        grouping=GROUP_SPORT,
        min_decided=50,
        high_threshold=54.0,
        low_threshold=46.0,
        roi_strategy=ROI_BREAK_EVEN,
        base_criteria={"home_only": True, "primetime_only": True},
        requires="tracks_primetime",
    ),
    GroupingDimension(
        key="divisional-ats",
        category=CATEGORY_SITUATIONAL,
        bet_type=BET_TYPE_SPREAD,
        grouping=GROUP_SPORT,
        min_decided=50,
        high_threshold=54.0,
        low_threshold=46.0,
        roi_strategy=ROI_BREAK_EVEN,
        base_criteria={"home_only": True, "divisional_only": True},
        requires="tracks_divisional",
    ),
    GroupingDimension(
        key="fade-heavy-public",
        category=CATEGORY_CONTRARIAN,
        bet_type=BET_TYPE_SPREAD,
        grouping=GROUP_SPORT,
        min_decided=30,
        high_threshold=52.0,
        low_threshold=None,
        roi_strategy=ROI_BREAK_EVEN,
        base_criteria={"away_only": True, "public_pct_min": HEAVY_PUBLIC_PCT},
    ),
)


# ---------------------------------------------------------------------------
# Pattern
# ---------------------------------------------------------------------------

@dataclass
class Pattern:
    """A qualified trend: criteria + the backtest of its group."""

    pattern_id: str
    sport: str
    category: str
    bet_type: str
    dimension: str
    name: str
    description: str
    conditions: Dict
    criteria: BacktestCriteria
    win_pct: float
    roi: float
    sample_size: int
    backtest: BacktestResult

    @property
    def confidence_score(self) -> int:
        return min(100, math.floor(self.win_pct + self.sample_size / 10))

    @property
    def hot_streak(self) -> bool:
        return self.roi > 10 and self.win_pct > 55

    def to_dict(self) -> Dict:
        return {
            "pattern_id": self.pattern_id,
            "sport": self.sport,
            "category": self.category,
            "bet_type": self.bet_type,
            "dimension": self.dimension,
            "name": self.name,
            "description": self.description,
            "conditions": dict(self.conditions),
            "criteria": self.criteria.to_dict(),
            "win_pct": round1(self.win_pct),
            "roi": round1(self.roi),
            "sample_size": self.sample_size,
            "confidence_score": self.confidence_score,
            "hot_streak": self.hot_streak,
            "backtest": self.backtest.to_dict(),
        }


def slugify(text: str) -> str:
    """'Kansas City Chiefs' → 'kansas-city-chiefs'."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def pattern_id_for(sport: str, dimension: GroupingDimension, entity: Optional[str] = None) -> str:
    if entity is None:
        return f"{sport}-{dimension.key}"
    return f"{sport}-{slugify(entity)}-{dimension.key}"


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------

def _group_records(
    records: Sequence[GameRecord], grouping: str
) -> Dict[Optional[str], List[GameRecord]]:
    if grouping == GROUP_SPORT:
        return {None: list(records)}

    groups: Dict[Optional[str], List[GameRecord]] = {}
    for rec in records:
        if grouping in (GROUP_HOME_TEAM, GROUP_ANY_TEAM):
            groups.setdefault(rec.home_team, []).append(rec)
        if grouping in (GROUP_AWAY_TEAM, GROUP_ANY_TEAM):
            groups.setdefault(rec.away_team, []).append(rec)
    return groups


def _fade_criteria(criteria: BacktestCriteria) -> BacktestCriteria:
    return replace(criteria, home_only=criteria.away_only, away_only=criteria.home_only)


def _decided(outcomes) -> Tuple[int, int]:
    wins = sum(1 for o in outcomes if o.result == RESULT_WIN)
    losses = sum(1 for o in outcomes if o.result == RESULT_LOSS)
    return wins, losses


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

_SITUATION_LABELS = {
    "primetime-ats": ("Primetime", "in primetime"),
    "divisional-ats": ("Divisional Game", "in divisional games"),
}


def _describe(
    dimension: GroupingDimension,
    entity: Optional[str],
    natural: bool,
    pct: float,
) -> Tuple[str, str, Dict]:
    """Return (name, description, conditions) for a qualifying group."""
    key = dimension.key

    if key in ("home-ats", "away-ats"):
        location = "home" if key == "home-ats" else "away"
        where = "at home" if location == "home" else "on the road"
        name = f"{entity} {'Home' if location == 'home' else 'Away'} ATS"
        if natural:
            description = f"{entity} covers {where} {pct:.1f}% of the time"
        else:
            description = f"{entity} fails to cover {where} {pct:.1f}% - fade them"
        side = "back" if natural else "fade"
        return name, description, {"team": entity, "location": location, "side": side}

    if key == "totals":
        lean = "over" if natural else "under"
        name = f"{entity} {'Overs' if natural else 'Unders'}"
        description = f"{entity} games go {lean} {pct:.1f}% of the time"
        return name, description, {"team": entity, "side": lean}

    if key in _SITUATION_LABELS:
        label, phrase = _SITUATION_LABELS[key]
        side = "home" if natural else "away"
        name = f"{label} {side.title()} Teams ATS"
        description = f"{side.title()} teams cover {phrase} {pct:.1f}% of the time"
        return name, description, {key.split("-")[0]: True, "side": side}

    if key == "fade-heavy-public":
        name = f"Fade Heavy Public ({HEAVY_PUBLIC_PCT:.0f}%+)"
        description = (
            f"Fading teams with {HEAVY_PUBLIC_PCT:.0f}%+ public support hits {pct:.1f}%"
        )
        return name, description, {"public_pct_min": HEAVY_PUBLIC_PCT, "side": "fade"}

    name = f"{entity or dimension.category.title()} {key}"
    return name, f"{name} hits {pct:.1f}%", {"team": entity}


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate_dimension(
    dimension: GroupingDimension,
    sport: str,
    records: Sequence[GameRecord],
    season_start: Optional[int] = None,
    season_end: Optional[int] = None,
    season_type: str = "all",
) -> List[Pattern]:
    """Evaluate one dimension over one sport's records.  Pure; thread-safe."""
    base = BacktestCriteria(
        sport=sport,
        bet_type=dimension.bet_type,
        season_start=season_start,
        season_end=season_end,
        season_type=season_type,
        **dimension.base_criteria,
    )

    patterns: List[Pattern] = []
    for entity, group in sorted(
        _group_records(records, dimension.grouping).items(), key=lambda kv: kv[0] or ""
    ):
        outcomes = classify_all(group, base)
        wins, losses = _decided(outcomes)
        if wins + losses < dimension.min_decided:
            continue

        pct = win_pct(wins, losses)
        if pct >= dimension.high_threshold:
            natural = True
            criteria = base
        elif dimension.low_threshold is not None and pct <= dimension.low_threshold:
            natural = False
            if dimension.bet_type == BET_TYPE_TOTAL:
                criteria = base
                outcomes = invert_outcomes(outcomes)
            else:
                criteria = _fade_criteria(base)
                outcomes = classify_all(group, criteria)
        else:
            continue

        backtest = aggregate(outcomes, criteria)
        lean_pct = backtest.win_pct
        name, description, conditions = _describe(dimension, entity, natural, lean_pct)
        patterns.append(Pattern(
            pattern_id=pattern_id_for(sport, dimension, entity),
            sport=sport,
            category=dimension.category,
            bet_type=dimension.bet_type,
            dimension=dimension.key,
            name=name,
            description=description,
            conditions=conditions,
            criteria=criteria,
            win_pct=lean_pct,
            roi=roi_for_strategy(dimension.roi_strategy, backtest.wins, backtest.losses),
            sample_size=backtest.sample_size,
            backtest=backtest,
        ))

    return patterns


def _applies(dimension: GroupingDimension, sport: str) -> bool:
    if dimension.requires is None:
        return True
    return bool(getattr(get_sport_config(sport), dimension.requires, False))


def _passes_request_filters(pattern: Pattern, min_sample_size: int, min_win_pct: float) -> bool:
    if pattern.sample_size < min_sample_size:
        return False
    return pattern.win_pct >= min_win_pct or pattern.win_pct <= 100 - min_win_pct


@dataclass
class DiscoveryResult:
    patterns: List[Pattern] = field(default_factory=list)
    sports: List[str] = field(default_factory=list)
    dimensions_run: int = 0
    errors: List[str] = field(default_factory=list)
    stopped: bool = False

    def summary(self) -> Dict:
        return {
            "sports": list(self.sports),
            "patterns_found": len(self.patterns),
            "dimensions_run": self.dimensions_run,
            "errors": list(self.errors),
            "stopped": self.stopped,
        }


def discover_patterns(
    store: RecordStore,
    sports: Optional[Iterable[str]] = None,
    dimensions: Sequence[GroupingDimension] = DEFAULT_DIMENSIONS,
    season_start: Optional[int] = None,
    season_end: Optional[int] = None,
    season_type: str = "all",
    min_sample_size: int = 0,
    min_win_pct: float = 0.0,
    max_workers: Optional[int] = None,
    stop_event: Optional[threading.Event] = None,
) -> DiscoveryResult:
    """Sweep ``dimensions`` over every sport in ``sports``.

    Records are fetched once per sport (calling thread) and shared across
    that sport's dimensions.  RecordStoreUnavailable propagates.
    Duplicate sports are swept once; unsupported ones are skipped and
    reported in ``errors``.

    Args:
        min_sample_size / min_win_pct: request-level filters applied after
            qualification (win% is tested two-sided, as in
            ``>= m or <= 100 - m``).
        stop_event: when set, dimensions not yet started are skipped and
            the finished ones are returned.
    """
    stop_event = stop_event or threading.Event()
    result = DiscoveryResult()
    for sport in dict.fromkeys(normalize_sport(s) for s in (sports or DEFAULT_DISCOVERY_SPORTS)):
        if is_supported_sport(sport):
            result.sports.append(sport)
        else:
            logger.warning("Pattern discovery: skipping unsupported sport %r", sport)
            result.errors.append(f"Unsupported sport {sport!r}")

    jobs: List[Tuple[GroupingDimension, str, List[GameRecord], Optional[int], Optional[int]]] = []
    for sport in result.sports:
        if stop_event.is_set():
            break
        cfg = get_sport_config(sport)
        start = season_start if season_start is not None else cfg.default_season_start
        end = season_end if season_end is not None else datetime.utcnow().year
        records = store.fetch(sport, start, end, season_type, None)
        logger.info("Pattern discovery: %d %s records for seasons %d-%d", len(records), sport, start, end)
        for dimension in dimensions:
            if _applies(dimension, sport):
                jobs.append((dimension, sport, records, start, end))

    def _run(job) -> Optional[List[Pattern]]:
        if stop_event.is_set():
            return None
        dimension, sport, records, start, end = job
        return evaluate_dimension(dimension, sport, records, start, end, season_type)

    found: List[Pattern] = []
    with ThreadPoolExecutor(max_workers=max_workers or PATTERN_DISCOVERY_WORKERS) as executor:
        futures = {executor.submit(_run, job): f"{job[1]}:{job[0].key}" for job in jobs}
        for future in as_completed(futures):
            task_name = futures[future]
            try:
                patterns = future.result()
            except Exception as exc:
                logger.error("Dimension %s failed: %s", task_name, exc, exc_info=True)
                result.errors.append(f"{task_name} failed: {exc}")
                continue
            if patterns is None:
                result.stopped = True
                continue
            result.dimensions_run += 1
            found.extend(patterns)
            logger.debug("Dimension %s qualified %d patterns", task_name, len(patterns))

    if stop_event.is_set():
        result.stopped = True

    result.patterns = sorted(
        (p for p in found if _passes_request_filters(p, min_sample_size, min_win_pct)),
        key=lambda p: p.pattern_id,
    )
    logger.info(
        "Pattern discovery complete: %d patterns from %d dimensions across %s%s",
        len(result.patterns),
        result.dimensions_run,
        ",".join(result.sports),
        " (stopped early)" if result.stopped else "",
    )
    return result


def persist_patterns(pattern_store, patterns: Iterable[Pattern]) -> int:
    """Upsert every pattern; returns how many were written."""
    written = 0
    for pattern in patterns:
        pattern_store.upsert(pattern)
        written += 1
    logger.info("Upserted %d trend patterns", written)
    return written


# ---------------------------------------------------------------------------
# Scheduled entry point
# ---------------------------------------------------------------------------

def run_discovery(
    session_factory: Optional[Callable] = None,
    sports: Optional[Iterable[str]] = None,
    stop_event: Optional[threading.Event] = None,
) -> Dict:
    """Discover and persist patterns for the configured sports.

    Opens its own session.  Returns the discovery summary plus
    ``patterns_written``.
    """
    factory = session_factory or SessionLocal
    db = factory()
    try:
        discovery = discover_patterns(SqlRecordStore(db), sports=sports, stop_event=stop_event)
        written = persist_patterns(SqlPatternStore(db), discovery.patterns)
        summary = discovery.summary()
        summary["patterns_written"] = written
        return summary
    finally:
        db.close()
