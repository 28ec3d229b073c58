"""Feedback ingestion: classify, apply caller overrides, store."""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from classifier import FeedbackClassifier
from database import save_feedback
from models import Feedback
from schemas import IngestRequest, LabelSet
from taxonomy import (
    MAX_SUMMARY_LENGTH,
    PRIORITIES,
    SENTIMENTS,
    clip_summary,
    sanitize_choice,
    sanitize_nullable,
)
from timeutils import parse_timestamp, to_iso, utc_now

logger = logging.getLogger(__name__)


def _pick(override, fallback):
    return override if override is not None else fallback


def merge_labels(request: IngestRequest, labels: LabelSet) -> dict:
    """Combine caller-supplied labels with classifier output.

    A field the caller supplied wins even if it later fails validation; only
    fields the caller left out take the classifier's value. The summary falls
    back to the start of the raw text.
    """
    summary = sanitize_nullable(_pick(request.summary, labels.summary))
    return {
        "sentiment": sanitize_choice(_pick(request.sentiment, labels.sentiment), SENTIMENTS),
        "priority": sanitize_choice(_pick(request.priority, labels.priority), PRIORITIES),
        "category": sanitize_nullable(_pick(request.category, labels.category)),
        "summary": clip_summary(summary) or request.raw_text[:MAX_SUMMARY_LENGTH],
        "priority_reason": sanitize_nullable(_pick(request.priority_reason, labels.priority_reason)),
    }


def resolve_created_at(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Normalize a caller timestamp, defaulting to now when absent or unparseable."""
    parsed = parse_timestamp(value) if value else None
    if parsed is None:
        if value:
            logger.info(f"Unparseable created_at {value!r}, using current time")
        parsed = now or utc_now()
    return to_iso(parsed)


async def ingest_feedback(
    db: AsyncSession,
    request: IngestRequest,
    classifier: FeedbackClassifier
) -> Tuple[Feedback, LabelSet]:
    """Classify and store one feedback item.

    Classification problems never fail ingestion; the record is stored with
    whatever labels survived.

    Returns:
        The stored row and the classifier output it was built from
    """
    labels = await classifier.classify(request.source, request.raw_text)

    record = {
        "source": request.source,
        "raw_text": request.raw_text,
        "created_at": resolve_created_at(request.created_at),
        **merge_labels(request, labels),
    }
    feedback = await save_feedback(db, record)
    logger.info(f"Stored feedback {feedback.id} from {feedback.source}")
    return feedback, labels
