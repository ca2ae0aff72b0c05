#!/usr/bin/env python3
"""
Database initialization script
Creates all tables and optionally seeds a synthetic season for development
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Load .env file
from dotenv import load_dotenv
load_dotenv()

from backend.models import Base, engine, SessionLocal, HistoricalGame
from backend.core.records import derive_betting_results
from datetime import date, timedelta
import logging
import random
from sqlalchemy import text, inspect

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEED_TEAMS = [
    ("Kansas City Chiefs", "KC"),
    ("Buffalo Bills", "BUF"),
    ("Philadelphia Eagles", "PHI"),
    ("San Francisco 49ers", "SF"),
    ("Dallas Cowboys", "DAL"),
    ("Detroit Lions", "DET"),
    ("Baltimore Ravens", "BAL"),
    ("Miami Dolphins", "MIA"),
]


def init_database(drop_existing: bool = False):
    """
    Initialize database tables

    Args:
        drop_existing: If True, drops all tables first (DANGER: data loss!)
    """
    logger.info("🔧 Initializing Trend Engine database...")

    if drop_existing:
        logger.warning("⚠️  Dropping all existing tables!")
        response = input("Are you sure? This will delete all data. Type 'yes' to confirm: ")
        if response.lower() != 'yes':
            logger.info("Aborted.")
            return

        Base.metadata.drop_all(bind=engine)
        logger.info("✅ Existing tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info("✅ Database tables created successfully")

    inspector = inspect(engine)
    tables = inspector.get_table_names()
    logger.info("📋 Tables: %s", ", ".join(tables))

    return True


def build_seed_games(seasons=(2021, 2022, 2023), rng_seed: int = 42):
    """Round-robin NFL-style schedule with random scores and closing lines."""
    rng = random.Random(rng_seed)
    games = []
    for season in seasons:
        kickoff = date(season, 9, 8)
        week = 0
        for home_name, home_abbr in SEED_TEAMS:
            for away_name, away_abbr in SEED_TEAMS:
                if home_name == away_name:
                    continue
                spread = rng.choice([-7.0, -6.5, -3.5, -3.0, -2.5, -1.0, 1.0, 2.5, 3.0, 3.5, 6.5, 7.0])
                total = rng.choice([41.5, 43.0, 44.5, 47.0, 48.5, 51.0])
                home_score = rng.randint(10, 38)
                away_score = rng.randint(7, 35)
                spread_result, total_result = derive_betting_results(home_score, away_score, spread, total)
                games.append(HistoricalGame(
                    external_id=f"seed-{season}-{home_abbr}-{away_abbr}",
                    sport="nfl",
                    season=season,
                    season_type="regular",
                    game_date=kickoff + timedelta(days=week * 7 // 4),
                    home_team=home_name,
                    away_team=away_name,
                    home_team_abbr=home_abbr,
                    away_team_abbr=away_abbr,
                    home_score=home_score,
                    away_score=away_score,
                    point_spread=spread,
                    over_under=total,
                    spread_result=spread_result,
                    total_result=total_result,
                    public_home_pct=round(rng.uniform(25, 85), 1),
                    primetime=rng.random() < 0.15,
                    divisional=rng.random() < 0.35,
                ))
                week += 1
    return games


def seed_test_data():
    """Add synthetic historical games for development"""
    logger.info("🌱 Seeding test data...")

    db = SessionLocal()

    try:
        games = build_seed_games()
        db.add_all(games)
        db.commit()
        logger.info("✅ Seeded %d historical games", len(games))

    except Exception as e:
        logger.error("❌ Error seeding data: %s", e)
        db.rollback()

    finally:
        db.close()


def check_connection():
    """Test database connection"""
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        db.close()
        logger.info("✅ Database connection successful")
        return True
    except Exception as e:
        logger.error("❌ Database connection failed: %s", e)
        return False


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Initialize Trend Engine database")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables (DANGER!)")
    parser.add_argument("--seed", action="store_true", help="Seed synthetic historical games")
    parser.add_argument("--check", action="store_true", help="Only check connection")

    args = parser.parse_args()

    if args.check:
        check_connection()
    else:
        if check_connection():
            init_database(drop_existing=args.drop)

            if args.seed:
                seed_test_data()

            logger.info("🎉 Database initialization complete!")
        else:
            logger.error("Cannot initialize database - connection failed")
            sys.exit(1)
