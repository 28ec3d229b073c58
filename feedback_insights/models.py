"""Database models for feedback, analysis logs and daily run claims."""
import uuid
from datetime import datetime, UTC
from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Feedback(Base):
    """Feedback database model.

    Label columns stay NULL until classified; created_at is an ISO-8601 string
    in the normalized form produced by timeutils.to_iso.
    """

    __tablename__ = "feedback"

    id = Column(String(36), primary_key=True, default=_new_id)
    source = Column(String(100), nullable=False)
    raw_text = Column(Text, nullable=False)
    sentiment = Column(String(20), nullable=True, index=True)  # negative, neutral, positive
    priority = Column(String(4), nullable=True, index=True)  # P0..P3
    category = Column(String(50), nullable=True)
    summary = Column(Text, nullable=True)
    priority_reason = Column(Text, nullable=True)
    created_at = Column(String(40), nullable=False, index=True)


class AnalysisLog(Base):
    """Append-only audit row, one per daily analysis run."""

    __tablename__ = "analysis_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(String(40), nullable=False, index=True)
    total_feedback = Column(Integer, nullable=False, default=0)
    negative_count = Column(Integer, nullable=False, default=0)
    p0_count = Column(Integer, nullable=False, default=0)
    p1_count = Column(Integer, nullable=False, default=0)
    data = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), index=True)


class DailyRun(Base):
    """Claim for a scheduled run; the primary key makes each run id single-use."""

    __tablename__ = "daily_runs"

    run_id = Column(String(64), primary_key=True)
    status = Column(String(20), nullable=False, default="started")  # started, completed, failed
    started_at = Column(DateTime, default=lambda: datetime.now(UTC))
    finished_at = Column(DateTime, nullable=True)
