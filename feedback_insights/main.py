"""Main FastAPI application for feedback ingestion and insights."""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Header, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from aggregator import aggregate
from classifier import FeedbackClassifier
from config import config
from database import (
    FeedbackFilters,
    get_daily_run,
    get_db,
    get_db_session,
    init_db,
    list_analysis_logs,
    list_feedback,
)
from ingestion import ingest_feedback
from insights import InsightComposer
from orchestrator import DailyAnalysisOrchestrator
from scheduler import DailyScheduler, run_id_for, trigger_daily_analysis
from schemas import (
    AggregateStats,
    AnalysisLogEntry,
    FeedbackRecord,
    IngestRequest,
    IngestResponse,
    SummaryResponse,
)
from taxonomy import PRIORITIES, SENTIMENTS, sanitize_choice, sanitize_nullable
from timeutils import utc_now

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize services
classifier = FeedbackClassifier(config)
composer = InsightComposer(config)
orchestrator = DailyAnalysisOrchestrator(config)
scheduler = DailyScheduler(orchestrator, config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Initializing database...")
    await init_db()
    if config.DAILY_ANALYSIS_ENABLED:
        scheduler.start()
    logger.info("Application started successfully")
    yield
    # Shutdown
    await scheduler.stop()
    logger.info("Application shutting down")


app = FastAPI(
    title="Feedback Insights API",
    description="Feedback labeling, dashboard statistics and daily analysis",
    version="1.0.0",
    lifespan=lifespan
)


async def verify_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None)
) -> None:
    """Check the ingest token when one is configured.

    Accepted as "Authorization: Bearer <token>", an X-API-Key header or a
    token query parameter.
    """
    expected = config.INGEST_TOKEN
    if not expected:
        return

    provided = None
    if authorization:
        provided = authorization[7:] if authorization.lower().startswith("bearer ") else authorization
    provided = provided or x_api_key or request.query_params.get("token")

    if not provided or provided.strip() != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key"
        )


def _clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return config.DEFAULT_LIST_LIMIT
    return max(1, min(config.MAX_LIST_LIMIT, limit))


async def _load_stats(db: AsyncSession, product_only: bool) -> AggregateStats:
    records = await list_feedback(
        db,
        FeedbackFilters(product_only=product_only, limit=config.STATS_RECORD_LIMIT)
    )
    return aggregate(records, utc_now())


@app.post("/ingest", response_model=IngestResponse, status_code=status.HTTP_201_CREATED)
async def ingest(
    request: IngestRequest,
    db: AsyncSession = Depends(get_db),
    _: None = Depends(verify_token)
):
    """Store one feedback item.

    This endpoint:
    1. Classifies the text (inference, or heuristic fallback)
    2. Lets any label in the payload override the classifier's value
    3. Stores the record and returns it

    Classification problems never turn into an error response.
    """
    feedback, labels = await ingest_feedback(db, request, classifier)
    return IngestResponse(
        record=FeedbackRecord.model_validate(feedback),
        classification_method=labels.method
    )


@app.get("/dashboard")
async def dashboard(
    sentiment: Optional[str] = None,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    source: Optional[str] = None,
    limit: Optional[int] = None,
    product_only: bool = False,
    format: str = "json",
    db: AsyncSession = Depends(get_db)
):
    """Filtered feedback list, newest first.

    Only the JSON form is served here; HTML rendering lives in the frontend.
    Unknown sentiment or priority filters are ignored rather than rejected.
    """
    if format != "json":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only format=json is supported")

    filters = FeedbackFilters(
        sentiment=sanitize_choice(sentiment, SENTIMENTS),
        priority=sanitize_choice(priority, PRIORITIES),
        category=sanitize_nullable(category),
        source=sanitize_nullable(source),
        product_only=product_only,
        limit=_clamp_limit(limit)
    )
    records = await list_feedback(db, filters)
    return {"records": [FeedbackRecord.model_validate(r).model_dump() for r in records]}


@app.get("/api/stats", response_model=AggregateStats)
async def dashboard_stats(product_only: bool = False, db: AsyncSession = Depends(get_db)):
    """Dashboard statistics: distributions, 7-day count and top words."""
    return await _load_stats(db, product_only)


@app.get("/api/summary", response_model=SummaryResponse)
async def dashboard_summary(product_only: bool = False, db: AsyncSession = Depends(get_db)):
    """AI narrative over the dashboard statistics (null when not available)."""
    window = "product feedback" if product_only else "all feedback"
    stats = await _load_stats(db, product_only)
    narrative = await composer.compose(stats, window)
    return SummaryResponse(summary=narrative, window=window)


@app.post("/analysis/run")
async def run_analysis(_: None = Depends(verify_token)):
    """Trigger today's daily analysis now, at most once per UTC day."""
    now = utc_now()
    report = await trigger_daily_analysis(orchestrator, now)
    if report is None:
        async with get_db_session() as db:
            run = await get_daily_run(db, run_id_for(now))
        if run is not None and run.status == "failed":
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Daily analysis failed"
            )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Daily analysis {run_id_for(now)} already ran"
        )

    return {
        "run_id": report.run_id,
        "states": [state.value for state in report.states],
        "delivered": report.delivered,
        "logged": report.logged,
        "result": report.result.model_dump(by_alias=True)
    }


@app.get("/analysis/logs", response_model=list[AnalysisLogEntry])
async def analysis_logs(
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db)
):
    """Audit log entries for the trailing `days` days."""
    entries = await list_analysis_logs(db, utc_now() - timedelta(days=days))
    return [AnalysisLogEntry.model_validate(e) for e in entries]


@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns service status including classifier mode and notification setup.
    """
    return {
        "status": "healthy",
        "classifier": classifier.mode,
        "notifications": "configured" if orchestrator.notifier.configured else "disabled",
        "daily_analysis": "scheduled" if config.DAILY_ANALYSIS_ENABLED else "manual"
    }


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Feedback Insights API",
        "version": "1.0.0",
        "endpoints": {
            "ingest": "POST /ingest",
            "dashboard": "GET /dashboard?format=json",
            "stats": "GET /api/stats",
            "summary": "GET /api/summary",
            "run_analysis": "POST /analysis/run",
            "analysis_logs": "GET /analysis/logs",
            "health": "GET /health"
        }
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )
