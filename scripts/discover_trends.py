"""
discover_trends.py — Run a pattern discovery sweep from the command line.

Usage
-----
  python scripts/discover_trends.py                      # dry-run, default sports
  python scripts/discover_trends.py --sport nfl --sport nba
  python scripts/discover_trends.py --execute            # upsert into trend_patterns
  python scripts/discover_trends.py --min-sample 30 --min-win-pct 55
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure the project root is on sys.path when run directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def main() -> None:
    parser = argparse.ArgumentParser(description="Discover qualified betting trends.")
    parser.add_argument(
        "--sport",
        action="append",
        dest="sports",
        help="Sport id to sweep (repeatable).  Defaults to PATTERN_DISCOVERY_SPORTS.",
    )
    parser.add_argument("--season-start", type=int, default=None)
    parser.add_argument("--season-end", type=int, default=None)
    parser.add_argument(
        "--season-type", choices=["regular", "postseason", "all"], default="all"
    )
    parser.add_argument("--min-sample", type=int, default=0, help="Request-level sample floor.")
    parser.add_argument("--min-win-pct", type=float, default=0.0, help="Request-level win%% floor.")
    parser.add_argument("--workers", type=int, default=None, help="Thread pool size.")
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Upsert patterns.  Without this flag the script only prints them.",
    )
    args = parser.parse_args()

    from backend.core.sport_config import normalize_sport, supported_sports

    unknown = [s for s in (args.sports or []) if normalize_sport(s) not in supported_sports()]
    if unknown:
        parser.error(f"unsupported sport(s) {unknown}; choose from {supported_sports()}")

    from backend.models import SessionLocal
    from backend.services.pattern_discovery import discover_patterns, persist_patterns
    from backend.services.stores import RecordStoreUnavailable, SqlPatternStore, SqlRecordStore

    db = SessionLocal()
    try:
        discovery = discover_patterns(
            SqlRecordStore(db),
            sports=args.sports,
            season_start=args.season_start,
            season_end=args.season_end,
            season_type=args.season_type,
            min_sample_size=args.min_sample,
            min_win_pct=args.min_win_pct,
            max_workers=args.workers,
        )
    except RecordStoreUnavailable as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        db.close()
        sys.exit(2)

    try:
        label = "" if args.execute else "[DRY RUN] "
        for p in discovery.patterns:
            print(
                f"{label}{p.pattern_id:<45} {p.win_pct:5.1f}%  "
                f"ROI {p.roi:6.1f}%  n={p.sample_size:<4} {p.name}"
            )
        print(f"{label}{len(discovery.patterns)} patterns "
              f"from {discovery.dimensions_run} dimensions")

        if args.execute:
            written = persist_patterns(SqlPatternStore(db), discovery.patterns)
            print(f"Upserted {written} patterns into trend_patterns.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
