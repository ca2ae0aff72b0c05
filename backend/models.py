"""
Database models for the Trend Engine
SQLAlchemy ORM (SQLite by default, PostgreSQL via DATABASE_URL)
"""

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Float,
    DateTime,
    Boolean,
    JSON,
    Text,
    Date,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime
import os
from dotenv import load_dotenv

# Load .env before DATABASE_URL is read
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trend_engine.db")

# SQLite connections are used from the FastAPI threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# pool_pre_ping=True keeps long-lived Postgres connections alive
engine = create_engine(DATABASE_URL, pool_pre_ping=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class HistoricalGame(Base):
    """Completed game with closing lines and derived betting results"""

    __tablename__ = "historical_games"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String, unique=True, index=True)  # Feed game id
    sport = Column(String(10), nullable=False, index=True)
    season = Column(Integer, nullable=False, index=True)
    season_type = Column(String(20), nullable=False, default="regular")
    game_date = Column(Date, nullable=False, index=True)

    home_team = Column(String, nullable=False, index=True)
    away_team = Column(String, nullable=False, index=True)
    home_team_abbr = Column(String(10))
    away_team_abbr = Column(String(10))
    home_score = Column(Integer, nullable=False)
    away_score = Column(Integer, nullable=False)

    # Closing lines
    point_spread = Column(Float)   # Home spread (negative = home favourite)
    over_under = Column(Float)

    # Derived results; NULL only when the line is missing
    spread_result = Column(String(20))  # home_cover | away_cover | push
    total_result = Column(String(20))   # over | under | push

    # Situational / market context
    public_home_pct = Column(Float)  # % of spread tickets on the home side
    primetime = Column(Boolean, default=False)
    divisional = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_historical_games_sport_season", "sport", "season"),
    )


class TrendPattern(Base):
    """Qualified betting trend produced by pattern discovery"""

    __tablename__ = "trend_patterns"

    id = Column(Integer, primary_key=True, index=True)
    pattern_id = Column(String, nullable=False, index=True)  # Deterministic key
    sport = Column(String(10), nullable=False, index=True)
    category = Column(String(20), nullable=False, index=True)  # team | situational | contrarian
    bet_type = Column(String(20), nullable=False)
    dimension = Column(String(40), nullable=False)

    name = Column(String, nullable=False)
    description = Column(Text)
    conditions = Column(JSON)   # {"team": ..., "location": ..., "side": ...}
    criteria = Column(JSON)     # Serialised BacktestCriteria

    win_pct = Column(Float)
    roi = Column(Float)
    sample_size = Column(Integer)
    confidence_score = Column(Integer)
    hot_streak = Column(Boolean, default=False)
    backtest = Column(JSON)     # Full rounded backtest result

    is_active = Column(Boolean, default=True, index=True)
    discovered_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("pattern_id", name="_trend_pattern_id_uc"),
    )


class Hypothesis(Base):
    """Externally proposed trend hypothesis and its re-validation"""

    __tablename__ = "hypotheses"

    id = Column(Integer, primary_key=True, index=True)
    hypothesis_id = Column(String(40), unique=True, nullable=False, index=True)
    sport = Column(String(10), nullable=False, index=True)
    name = Column(String)
    description = Column(Text)
    conditions = Column(JSON)            # Original free-text conditions
    estimated_record = Column(JSON)      # As proposed
    status = Column(String(20), nullable=False, index=True)  # validated | needs_review
    reasons = Column(JSON)
    unmatched_conditions = Column(JSON)
    criteria = Column(JSON)
    realized_sample_size = Column(Integer)
    realized_win_pct = Column(Float)
    realized_roi = Column(Float)
    win_rate_drift = Column(Float)
    backtest = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)
    validated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# Create all tables
def init_db():
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)
    print("✅ Database tables created")


if __name__ == "__main__":
    init_db()
