"""Shared pytest fixtures.

The environment is pinned before any application module is imported so the
module-level engine and config use an in-memory database and never reach a
real inference service or webhook.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = ""
os.environ["USE_MOCK_AI"] = "true"
os.environ["SLACK_WEBHOOK_URL"] = ""
os.environ["INGEST_TOKEN"] = "test-token"
os.environ["DAILY_ANALYSIS_ENABLED"] = "false"

import pytest  # noqa: E402

from database import engine, get_db_session  # noqa: E402
from models import Base  # noqa: E402
from schemas import FeedbackRecord  # noqa: E402


@pytest.fixture
async def db_session():
    """Fresh tables for every test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with get_db_session() as session:
        yield session


@pytest.fixture
def make_record():
    """Factory for FeedbackRecord objects with sensible defaults."""
    counter = {"n": 0}

    def _make(**fields):
        counter["n"] += 1
        values = {
            "id": f"rec-{counter['n']}",
            "source": "github",
            "raw_text": "Something happened",
            "created_at": "2026-10-19T08:00:00.000Z",
        }
        values.update(fields)
        return FeedbackRecord(**values)

    return _make
