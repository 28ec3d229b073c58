"""Database connection and operations."""
import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import config
from models import Base, Feedback, AnalysisLog, DailyRun
from schemas import AnalysisResult
from taxonomy import PRODUCT_CATEGORIES
from timeutils import to_iso, utc_now

logger = logging.getLogger(__name__)


# Create async engine
# StaticPool for SQLite to avoid threading issues
if config.DATABASE_URL.startswith("sqlite"):
    engine = create_async_engine(
        config.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )
else:
    engine = create_async_engine(config.DATABASE_URL, echo=False)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def init_db():
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """Dependency to get database session."""
    async with AsyncSessionLocal() as session:
        yield session


def get_db_session():
    """Get database session as context manager (for CLI and scheduler usage).

    Returns:
        Async context manager for database session
    """
    return AsyncSessionLocal()


@dataclass
class FeedbackFilters:
    """Optional equality filters for listing feedback."""

    sentiment: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    source: Optional[str] = None
    product_only: bool = False
    limit: int = 100


async def save_feedback(db: AsyncSession, record: dict) -> Feedback:
    """Insert one feedback row.

    Args:
        db: Database session
        record: Column values; id is generated when missing

    Returns:
        Saved Feedback model
    """
    feedback = Feedback(**record)

    db.add(feedback)
    await db.commit()
    await db.refresh(feedback)

    return feedback


async def list_feedback(db: AsyncSession, filters: FeedbackFilters) -> List[Feedback]:
    """List feedback newest first, narrowed by the given filters."""
    query = select(Feedback)

    if filters.product_only:
        query = query.where(Feedback.category.in_(PRODUCT_CATEGORIES))
    if filters.sentiment:
        query = query.where(Feedback.sentiment == filters.sentiment)
    if filters.priority:
        query = query.where(Feedback.priority == filters.priority)
    if filters.category:
        query = query.where(Feedback.category == filters.category)
    if filters.source:
        query = query.where(Feedback.source == filters.source)

    query = query.order_by(Feedback.created_at.desc()).limit(filters.limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def fetch_feedback_since(db: AsyncSession, since: datetime) -> List[Feedback]:
    """All feedback created at or after `since`, newest first."""
    query = (
        select(Feedback)
        .where(Feedback.created_at >= to_iso(since))
        .order_by(Feedback.created_at.desc())
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def save_analysis_log(
    db: AsyncSession,
    analysis: AnalysisResult,
    timestamp: Optional[datetime] = None
) -> AnalysisLog:
    """Append an audit row holding the full serialized analysis.

    Raises:
        SQLAlchemyError: The caller decides whether a failed write matters
    """
    entry = AnalysisLog(
        timestamp=to_iso(timestamp or utc_now()),
        total_feedback=analysis.total_feedback,
        negative_count=analysis.negative_count,
        p0_count=analysis.p0_count,
        p1_count=analysis.p1_count,
        data=analysis.model_dump_json(by_alias=True)
    )

    db.add(entry)
    await db.commit()
    await db.refresh(entry)

    return entry


async def list_analysis_logs(db: AsyncSession, since: datetime) -> List[AnalysisLog]:
    """Audit rows whose run timestamp falls at or after `since`, newest first."""
    query = (
        select(AnalysisLog)
        .where(AnalysisLog.timestamp >= to_iso(since))
        .order_by(AnalysisLog.timestamp.desc())
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def claim_daily_run(db: AsyncSession, run_id: str) -> bool:
    """Record that the run `run_id` has started.

    Returns:
        False if the id was claimed before, True for the first claim
    """
    db.add(DailyRun(run_id=run_id, status="started"))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info(f"Run {run_id} already claimed, skipping")
        return False
    return True


async def finish_daily_run(db: AsyncSession, run_id: str, status: str) -> None:
    """Mark a claimed run as completed or failed."""
    await db.execute(
        update(DailyRun)
        .where(DailyRun.run_id == run_id)
        .values(status=status, finished_at=datetime.now(UTC))
    )
    await db.commit()


async def get_daily_run(db: AsyncSession, run_id: str) -> Optional[DailyRun]:
    return await db.get(DailyRun, run_id)
