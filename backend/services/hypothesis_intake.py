"""
Hypothesis intake: re-validate externally proposed trend hypotheses.

A candidate arrives as

    {"sport": "nfl",
     "conditions": ["Home team", "Underdog +3+", "Divisional game"],
     "estimated_record": {"wins": 280, "losses": 220, "pushes": 10,
                          "win_rate": 56.0, "roi": 8.5}}

Each free-text condition is translated by a fixed rule table into
BacktestCriteria fields, then the criteria are backtested against real
records.  Nothing here invents criteria: a condition no rule matches, an
invalid translation, or a realised sample under HYPOTHESIS_MIN_SAMPLE all
leave the hypothesis as ``needs_review``.  Nothing is rejected outright.
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from backend.core.aggregator import BacktestResult, aggregate
from backend.core.classifier import classify_all, invert_outcomes
from backend.core.criteria import BET_TYPE_MONEYLINE, BET_TYPE_SPREAD, BET_TYPE_TOTAL, BacktestCriteria
from backend.core.odds_math import round1
from backend.core.sport_config import is_supported_sport, normalize_sport
from backend.services.backtest import store_bounds
from backend.services.stores import RecordStore

logger = logging.getLogger(__name__)

HYPOTHESIS_MIN_SAMPLE = int(os.getenv("HYPOTHESIS_MIN_SAMPLE", "100"))

STATUS_VALIDATED = "validated"
STATUS_NEEDS_REVIEW = "needs_review"

# Marker key for an under lean; not a BacktestCriteria field
_UNDER = "_under"

_NUM = r"(\d+(?:\.\d+)?)"


# ---------------------------------------------------------------------------
# Condition rule table
# ---------------------------------------------------------------------------

def _const(**params) -> Callable[[re.Match], Dict[str, Any]]:
    return lambda m: dict(params)


def _num(name: str, group: int = 1, **extra) -> Callable[[re.Match], Dict[str, Any]]:
    def build(m: re.Match) -> Dict[str, Any]:
        out = dict(extra)
        out[name] = float(m.group(group))
        return out
    return build


def _season_range(m: re.Match) -> Dict[str, Any]:
    return {"season_start": int(m.group(1)), "season_end": int(m.group(2))}


# Every rule that matches a condition contributes its fields; a condition
# matched by no rule is untranslatable.
CONDITION_RULES: List[Tuple[re.Pattern, Callable[[re.Match], Dict[str, Any]]]] = [
    (re.compile(r"\bhome\b"), _const(home_only=True)),
    (re.compile(r"\b(road|away|visiting|visitors?)\b"), _const(away_only=True)),
    (re.compile(r"\b(favou?rites?|favou?red|chalk)\b"), _const(favorite_only=True)),
    (re.compile(r"\b(favou?rites?|favou?red)\D{0,6}" + _NUM + r"\s*\+"), _num("spread_min", 2)),
    (re.compile(r"\b(under)?dogs?\b"), _const(underdog_only=True)),
    (re.compile(r"\b(?:under)?dogs?\s*\+?" + _NUM + r"\s*\+"), _num("spread_min")),
    (re.compile(r"\bspread\s*(?:within|<=?|under|below|of at most)\s*" + _NUM), _num("spread_max")),
    (re.compile(r"\bspread\s*(?:>=?|over|above|of at least)\s*" + _NUM), _num("spread_min")),
    (re.compile(r"\btotal\s*(?:>=?|over|above)\s*" + _NUM), _num("total_min")),
    (re.compile(r"\btotal\s*(?:<=?|under|below)\s*" + _NUM), _num("total_max")),
    (re.compile(r"\b(overs?)\b(?!\s*\d)"), _const(bet_type=BET_TYPE_TOTAL)),
    (re.compile(r"\b(unders?)\b(?!\s*\d)"), _const(bet_type=BET_TYPE_TOTAL, **{_UNDER: True})),
    (re.compile(r"\b(ats|against the spread)\b"), _const(bet_type=BET_TYPE_SPREAD)),
    (re.compile(r"\b(moneyline|straight up|ml|su)\b"), _const(bet_type=BET_TYPE_MONEYLINE)),
    (re.compile(r"\b(prime ?time|snf|mnf|tnf|nationally televised|national tv)\b"), _const(primetime_only=True)),
    (re.compile(r"\bdivision(al)?\b"), _const(divisional_only=True)),
    (re.compile(_NUM + r"\s*%\s*\+?\s*(?:of\s+)?(?:the\s+)?public"), _num("public_pct_min")),
    (re.compile(r"\bpublic\D{0,12}?" + _NUM + r"\s*%"), _num("public_pct_min")),
    (re.compile(r"\b(playoffs?|post-?season)\b"), _const(season_type="postseason")),
    (re.compile(r"\bregular season\b"), _const(season_type="regular")),
    (re.compile(r"\bsince\s*(\d{4})\b"), lambda m: {"season_start": int(m.group(1))}),
    (re.compile(r"\b(\d{4})\s*[-–]\s*(\d{4})\b"), _season_range),
]


# Words a condition may carry beyond what the rules consume
FILLER_WORDS = frozenset({
    "team", "teams", "game", "games", "the", "on", "side", "a", "an", "in", "at",
})

_WORD = re.compile(r"[a-z0-9]+")


@dataclass
class Translation:
    params: Dict[str, Any] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)
    under: bool = False


def _leftover_words(text: str, spans: List[Tuple[int, int]]) -> List[str]:
    chars = list(text)
    for start, end in spans:
        chars[start:end] = " " * (end - start)
    return [w for w in _WORD.findall("".join(chars)) if w not in FILLER_WORDS]


def translate_conditions(conditions: Iterable[str]) -> Translation:
    """Translate free-text conditions into BacktestCriteria parameters.

    A condition counts as translated only when the rule matches cover every
    word in it apart from FILLER_WORDS.  Anything else ("coming off a bye
    week", "fewer than 7 points") makes the whole condition unmatched and
    none of its fields are applied.
    """
    out = Translation()
    for raw in conditions:
        text = (raw or "").strip().lower()
        params: Dict[str, Any] = {}
        spans: List[Tuple[int, int]] = []
        under = False
        for pattern, build in CONDITION_RULES:
            m = pattern.search(text)
            if not m:
                continue
            spans.append(m.span())
            for key, value in build(m).items():
                if key == _UNDER:
                    under = True
                else:
                    params[key] = value

        if not spans or _leftover_words(text, spans):
            out.unmatched.append(raw)
            continue
        out.params.update(params)
        out.under = out.under or under
    return out


# ---------------------------------------------------------------------------
# Candidate / validation
# ---------------------------------------------------------------------------

def normalise_condition(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def hypothesis_id_for(sport: str, conditions: Iterable[str]) -> str:
    canonical = normalize_sport(sport) + "|" + "|".join(sorted(normalise_condition(c) for c in conditions))
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


@dataclass
class HypothesisCandidate:
    sport: str
    conditions: List[str]
    estimated_record: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HypothesisCandidate":
        return cls(
            sport=str(data.get("sport") or ""),
            conditions=[str(c) for c in (data.get("conditions") or [])],
            estimated_record=dict(data.get("estimated_record") or {}),
            name=data.get("name"),
            description=data.get("description"),
        )

    @property
    def hypothesis_id(self) -> str:
        return hypothesis_id_for(self.sport, self.conditions)


@dataclass
class HypothesisValidation:
    candidate: HypothesisCandidate
    status: str
    reasons: List[str] = field(default_factory=list)
    criteria: Optional[BacktestCriteria] = None
    unmatched_conditions: List[str] = field(default_factory=list)
    lean_under: bool = False
    backtest: Optional[BacktestResult] = None

    @property
    def hypothesis_id(self) -> str:
        return self.candidate.hypothesis_id

    @property
    def win_rate_drift(self) -> Optional[float]:
        estimated = self.candidate.estimated_record.get("win_rate")
        if estimated is None or self.backtest is None or self.backtest.decided == 0:
            return None
        return self.backtest.win_pct - float(estimated)

    def to_dict(self) -> Dict:
        drift = self.win_rate_drift
        bt = self.backtest
        return {
            "hypothesis_id": self.hypothesis_id,
            "sport": normalize_sport(self.candidate.sport),
            "name": self.candidate.name,
            "description": self.candidate.description,
            "conditions": list(self.candidate.conditions),
            "estimated_record": dict(self.candidate.estimated_record),
            "status": self.status,
            "reasons": list(self.reasons),
            "unmatched_conditions": list(self.unmatched_conditions),
            "criteria": self.criteria.to_dict() if self.criteria is not None else None,
            "lean": "under" if self.lean_under else None,
            "realized_sample_size": bt.sample_size if bt else None,
            "realized_win_pct": round1(bt.win_pct) if bt else None,
            "realized_roi": round1(bt.roi) if bt else None,
            "win_rate_drift": round1(drift) if drift is not None else None,
            "backtest": bt.to_dict() if bt else None,
        }


def _needs_review(candidate, reasons, **kwargs) -> HypothesisValidation:
    return HypothesisValidation(candidate=candidate, status=STATUS_NEEDS_REVIEW, reasons=reasons, **kwargs)


def validate_hypothesis(
    candidate: HypothesisCandidate,
    store: RecordStore,
    min_sample: Optional[int] = None,
    _cache: Optional[Dict[Tuple, list]] = None,
) -> HypothesisValidation:
    """Translate and backtest one candidate.  RecordStoreUnavailable propagates."""
    floor = HYPOTHESIS_MIN_SAMPLE if min_sample is None else min_sample
    sport = normalize_sport(candidate.sport)

    if not is_supported_sport(sport):
        return _needs_review(candidate, [f"Unsupported sport {candidate.sport!r}"])
    if not candidate.conditions:
        return _needs_review(candidate, ["No conditions to translate"])

    translation = translate_conditions(candidate.conditions)
    if translation.unmatched:
        return _needs_review(
            candidate,
            [f"Untranslatable condition: {c}" for c in translation.unmatched],
            unmatched_conditions=list(translation.unmatched),
        )

    try:
        criteria = BacktestCriteria.from_params({**translation.params, "sport": sport})
    except ValueError as exc:
        return _needs_review(candidate, [f"Could not build criteria: {exc}"])

    errors = criteria.validate()
    if errors:
        return _needs_review(candidate, errors, criteria=criteria, lean_under=translation.under)

    key = (
        sport,
        criteria.effective_season_start,
        criteria.effective_season_end,
        criteria.season_type,
        tuple(sorted(store_bounds(criteria).items())),
    )
    cache = _cache if _cache is not None else {}
    if key not in cache:
        cache[key] = store.fetch(sport, key[1], key[2], criteria.season_type, store_bounds(criteria) or None)

    outcomes = classify_all(cache[key], criteria)
    if translation.under:
        outcomes = invert_outcomes(outcomes)
    backtest = aggregate(outcomes, criteria)

    if backtest.sample_size < floor:
        return _needs_review(
            candidate,
            [f"Realised sample {backtest.sample_size} below minimum {floor}"],
            criteria=criteria,
            lean_under=translation.under,
            backtest=backtest,
        )

    return HypothesisValidation(
        candidate=candidate,
        status=STATUS_VALIDATED,
        criteria=criteria,
        lean_under=translation.under,
        backtest=backtest,
    )


def validate_hypotheses(
    candidates: Iterable[Any],
    store: RecordStore,
    min_sample: Optional[int] = None,
) -> List[HypothesisValidation]:
    """Validate candidates (dicts or HypothesisCandidate) in input order.

    Identical record windows are fetched once per call.
    """
    cache: Dict[Tuple, list] = {}
    results = []
    for raw in candidates:
        candidate = raw if isinstance(raw, HypothesisCandidate) else HypothesisCandidate.from_dict(raw)
        validation = validate_hypothesis(candidate, store, min_sample=min_sample, _cache=cache)
        results.append(validation)

    validated = sum(1 for v in results if v.status == STATUS_VALIDATED)
    logger.info(
        "Hypothesis intake: %d validated, %d need review", validated, len(results) - validated
    )
    return results


def persist_hypotheses(hypothesis_store, validations: Iterable[HypothesisValidation]) -> int:
    written = 0
    for validation in validations:
        hypothesis_store.upsert(validation)
        written += 1
    return written
