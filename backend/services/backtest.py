"""
Backtest service: validate → fetch → classify → aggregate.

    run_backtest(store, criteria)  -> BacktestResult
    backtest_to_dict(store, criteria) -> rounded caller-facing dict

Contradictory criteria never reach the store; the caller gets the empty
result shape with the validation problems as its message.  Store failures
(RecordStoreUnavailable) propagate untouched.
"""

import logging
from typing import Dict, Iterable, Optional

from backend.core.aggregator import BacktestResult, aggregate, empty_result
from backend.core.classifier import classify_all
from backend.core.criteria import BacktestCriteria
from backend.core.records import GameRecord
from backend.services.stores import RecordStore

logger = logging.getLogger(__name__)


def store_bounds(criteria: BacktestCriteria) -> Dict[str, float]:
    """Bounds the store can push down into its query."""
    bounds = {
        "total_min": criteria.total_min,
        "total_max": criteria.total_max,
        "public_pct_min": criteria.public_pct_min,
        "public_pct_max": criteria.public_pct_max,
    }
    return {k: v for k, v in bounds.items() if v is not None}


def backtest_records(
    records: Iterable[GameRecord],
    criteria: BacktestCriteria,
) -> BacktestResult:
    """Classify and aggregate an already fetched record slice."""
    return aggregate(classify_all(records, criteria), criteria)


def run_backtest(
    store: RecordStore,
    criteria: BacktestCriteria,
    records: Optional[Iterable[GameRecord]] = None,
) -> BacktestResult:
    """Run one backtest.

    Args:
        store:    Record source; queried once unless ``records`` is given.
        criteria: Immutable filter.
        records:  Optional pre-fetched slice for the same sport and season
                  window (pattern discovery and hypothesis intake reuse one
                  fetch across many criteria).

    Raises:
        RecordStoreUnavailable: the store could not be queried.
    """
    errors = criteria.validate()
    if errors:
        logger.info("Rejected backtest criteria for %r: %s", criteria.sport, "; ".join(errors))
        return empty_result(criteria, "Invalid criteria: " + "; ".join(errors))

    if records is None:
        records = store.fetch(
            criteria.sport,
            criteria.effective_season_start,
            criteria.effective_season_end,
            criteria.season_type,
            store_bounds(criteria) or None,
        )

    result = backtest_records(records, criteria)
    logger.info(
        "Backtest %s/%s seasons %d-%d: %d-%d-%d (%.1f%%, ROI %.1f%%)",
        criteria.sport,
        criteria.bet_type,
        criteria.effective_season_start,
        criteria.effective_season_end,
        result.wins,
        result.losses,
        result.pushes,
        result.win_pct,
        result.roi,
    )
    return result


def backtest_to_dict(store: RecordStore, criteria: BacktestCriteria) -> Dict:
    return run_backtest(store, criteria).to_dict()
