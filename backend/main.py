"""
FastAPI application for the Trend Engine
Backtest API, pattern discovery, hypothesis intake and the daily scheduler
"""

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging
import os
import threading

from backend.models import get_db
from backend.auth import verify_api_key, verify_admin_api_key
from backend.core.criteria import BacktestCriteria
from backend.core.sport_config import DEFAULT_DISCOVERY_SPORTS, supported_sports
from backend.services.backtest import run_backtest
from backend.services.hypothesis_intake import (
    STATUS_VALIDATED,
    persist_hypotheses,
    validate_hypotheses,
)
from backend.services.pattern_discovery import (
    discover_patterns,
    persist_patterns,
    run_discovery,
)
from backend.services.stores import (
    RecordStoreUnavailable,
    SqlHypothesisStore,
    SqlPatternStore,
    SqlRecordStore,
)
from backend.schemas import (
    BacktestResponse,
    DiscoveryRequest,
    DiscoveryResponse,
    HypothesisBatchRequest,
    HypothesisBatchResponse,
    PatternListResponse,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"

# Scheduler instance
scheduler = BackgroundScheduler()

# Set on shutdown so an in-flight discovery sweep stops between dimensions
discovery_stop = threading.Event()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("🚀 Starting Trend Engine")
    discovery_stop.clear()

    discovery_hour = int(os.getenv("DISCOVERY_CRON_HOUR", "7"))
    scheduler.add_job(
        pattern_discovery_job,
        CronTrigger(hour=discovery_hour, minute=0, timezone="UTC"),
        id="pattern_discovery",
        name="Daily Pattern Discovery",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started: pattern discovery@%02d:00 UTC for %s",
        discovery_hour, ",".join(DEFAULT_DISCOVERY_SPORTS),
    )

    yield

    logger.info("👋 Shutting down Trend Engine")
    discovery_stop.set()
    scheduler.shutdown()


app = FastAPI(
    title="Trend Engine",
    description="Historical betting backtests and qualified trend discovery",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOB
# ============================================================================

def pattern_discovery_job():
    """Daily discovery sweep over PATTERN_DISCOVERY_SPORTS."""
    logger.info("Starting scheduled pattern discovery")
    try:
        summary = run_discovery(stop_event=discovery_stop)
        logger.info("Pattern discovery complete: %s", summary)
    except Exception as exc:
        logger.error("Pattern discovery job failed: %s", exc, exc_info=True)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {
        "app": "Trend Engine",
        "version": APP_VERSION,
        "status": "operational",
        "sports": supported_sports(),
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["status"] = "degraded"
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - BACKTEST & PATTERNS
# ============================================================================

@app.get("/api/backtest", response_model=BacktestResponse)
def backtest(
    request: Request,
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """
    Backtest a criteria specification against historical games.

    Criteria come from the query string in snake_case or camelCase, e.g.
    ``?sport=nfl&betType=ats&homeOnly=true&underdogOnly=true&spreadMin=3``.
    Contradictory criteria return the empty result with a message.
    """
    params = dict(request.query_params)
    params.setdefault("sport", "nfl")
    try:
        criteria = BacktestCriteria.from_params(params)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid criteria value: {exc}")

    result = run_backtest(SqlRecordStore(db), criteria)
    return result.to_dict()


@app.get("/api/patterns", response_model=PatternListResponse)
def list_patterns(
    sport: Optional[str] = None,
    category: Optional[str] = Query(default=None, pattern="^(team|situational|contrarian)$"),
    min_sample_size: int = Query(default=0, ge=0),
    min_win_pct: float = Query(default=0.0, ge=0.0, le=100.0),
    limit: int = Query(default=100, ge=1, le=500),
    user: str = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """List stored qualified patterns, highest confidence first."""
    patterns = SqlPatternStore(db).list(
        sport=sport.lower() if sport else None,
        category=category,
        min_sample_size=min_sample_size,
        min_win_pct=min_win_pct,
        limit=limit,
    )
    return {"count": len(patterns), "patterns": patterns}


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/patterns/discover", response_model=DiscoveryResponse)
def trigger_discovery(
    body: DiscoveryRequest,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Run a discovery sweep synchronously (admin only)."""
    logger.info("Manual pattern discovery triggered by %s", user)
    sports = body.sports or list(DEFAULT_DISCOVERY_SPORTS)
    unknown = [s for s in sports if s not in supported_sports()]
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unsupported sports: {unknown}")

    discovery = discover_patterns(
        SqlRecordStore(db),
        sports=sports,
        season_start=body.season_start,
        season_end=body.season_end,
        season_type=body.season_type,
        min_sample_size=body.min_sample_size,
        min_win_pct=body.min_win_pct,
        stop_event=discovery_stop,
    )
    written = persist_patterns(SqlPatternStore(db), discovery.patterns) if body.persist else 0

    return {
        "message": "Discovery complete" if not discovery.stopped else "Discovery stopped early",
        **discovery.summary(),
        "patterns_written": written,
        "patterns": [p.to_dict() for p in discovery.patterns],
    }


@app.post("/admin/hypotheses/validate", response_model=HypothesisBatchResponse)
def validate_hypothesis_batch(
    body: HypothesisBatchRequest,
    user: str = Depends(verify_admin_api_key),
    db: Session = Depends(get_db),
):
    """Re-validate externally proposed hypotheses against real records (admin only)."""
    logger.info("Hypothesis intake of %d candidates by %s", len(body.candidates), user)
    candidates = [c.model_dump(exclude_none=True) for c in body.candidates]
    validations = validate_hypotheses(candidates, SqlRecordStore(db), min_sample=body.min_sample)
    if body.persist:
        persist_hypotheses(SqlHypothesisStore(db), validations)

    validated = sum(1 for v in validations if v.status == STATUS_VALIDATED)
    return {
        "validated": validated,
        "needs_review": len(validations) - validated,
        "results": [v.to_dict() for v in validations],
    }


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: str = Depends(verify_admin_api_key)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(RecordStoreUnavailable)
async def store_unavailable_handler(request, exc):
    """Store outages are retryable: answer 503 instead of 500."""
    logger.error("Record store unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Record store unavailable, retry later", "retryable": exc.retryable},
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
