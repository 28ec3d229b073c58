"""
Tests for the daily analysis:
- Run stages and the zero-record path
- Delivery and logging failures
- Once-per-day triggering
- Plain-text report
"""
import json
from datetime import datetime, timedelta, UTC

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from database import get_daily_run, list_analysis_logs, save_feedback
from insights import FALLBACK_RECOMMENDATIONS, RecommendationWriter
from orchestrator import (
    DailyAnalysisOrchestrator,
    RunState,
    build_analysis_result,
    generate_text_report,
)
from scheduler import run_id_for, seconds_until_next_run, trigger_daily_analysis
from timeutils import to_iso

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def fake_notifier(delivered=True, error=None):
    notifier = MagicMock()
    notifier.send_daily_analysis = AsyncMock(return_value=delivered, side_effect=error)
    notifier.notify_error = AsyncMock(return_value=True)
    notifier.configured = True
    return notifier


def make_orchestrator(notifier):
    return DailyAnalysisOrchestrator(
        Config(USE_MOCK_AI=True),
        notifier=notifier,
        recommender=RecommendationWriter(Config(USE_MOCK_AI=True))
    )


async def add_feedback(db, hours_ago=1, **fields):
    record = {
        "source": "slack",
        "raw_text": "Something broke",
        "summary": "Something broke",
        "sentiment": "negative",
        "priority": "P2",
        "category": "bug",
        "created_at": to_iso(NOW - timedelta(hours=hours_ago)),
    }
    record.update(fields)
    return await save_feedback(db, record)


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class TestDailyAnalysisOrchestrator:
    """Tests for a single run."""

    @pytest.mark.asyncio
    async def test_zero_records_skips_delivery(self, db_session):
        notifier = fake_notifier()

        report = await make_orchestrator(notifier).run("run-1", NOW)

        assert report.states == [RunState.FETCHING, RunState.LOGGING, RunState.DONE]
        assert report.delivered is None
        assert report.result.total_feedback == 0
        notifier.send_daily_analysis.assert_not_called()

        entries = await list_analysis_logs(db_session, NOW - timedelta(days=1))
        assert len(entries) == 1
        assert entries[0].total_feedback == 0
        assert entries[0].negative_count == 0

    @pytest.mark.asyncio
    async def test_full_run(self, db_session):
        for priority in ["P0", "P0", "P1", "P1", "P1", "P2", "P2", "P2", "P2", "P3"]:
            await add_feedback(db_session, priority=priority)
        notifier = fake_notifier()

        report = await make_orchestrator(notifier).run("run-1", NOW)

        assert report.states == [
            RunState.FETCHING,
            RunState.ANALYZING,
            RunState.COMPOSING,
            RunState.DELIVERING,
            RunState.LOGGING,
            RunState.DONE,
        ]
        result = report.result
        assert result.total_feedback == 10
        assert result.by_priority == {"P0": 2, "P1": 3, "P2": 4, "P3": 1}
        assert result.urgent_count == 5
        assert len(result.urgent_items) == 5
        assert result.top_issues[0].issue == "Something broke"
        assert result.top_issues[0].count == 10
        assert result.recommended_actions == FALLBACK_RECOMMENDATIONS
        assert report.delivered is True
        assert report.logged is True
        notifier.send_daily_analysis.assert_awaited_once_with(result, NOW)

    @pytest.mark.asyncio
    async def test_only_last_24_hours(self, db_session):
        await add_feedback(db_session, hours_ago=2)
        await add_feedback(db_session, hours_ago=23)
        await add_feedback(db_session, hours_ago=25)
        await add_feedback(db_session, hours_ago=24 * 10)

        report = await make_orchestrator(fake_notifier()).run("run-1", NOW)

        assert report.result.total_feedback == 2

    @pytest.mark.asyncio
    async def test_urgent_items_capped(self, db_session):
        for _ in range(8):
            await add_feedback(db_session, priority="P1")

        report = await make_orchestrator(fake_notifier()).run("run-1", NOW)

        assert report.result.urgent_count == 8
        assert len(report.result.urgent_items) == 5

    @pytest.mark.asyncio
    async def test_delivery_error_still_logs(self, db_session):
        await add_feedback(db_session, priority="P0")
        notifier = fake_notifier(error=RuntimeError("webhook exploded"))

        report = await make_orchestrator(notifier).run("run-1", NOW)

        assert report.delivered is False
        assert report.logged is True
        assert report.states[-2:] == [RunState.LOGGING, RunState.DONE]

        entries = await list_analysis_logs(db_session, NOW - timedelta(days=1))
        assert len(entries) == 1
        assert json.loads(entries[0].data) == report.result.model_dump(mode="json", by_alias=True)
        assert entries[0].p0_count == 1

    @pytest.mark.asyncio
    async def test_rejected_delivery_still_logs(self, db_session):
        await add_feedback(db_session)

        report = await make_orchestrator(fake_notifier(delivered=False)).run("run-1", NOW)

        assert report.delivered is False
        assert report.logged is True

    @pytest.mark.asyncio
    async def test_log_failure_does_not_fail_run(self, db_session):
        await add_feedback(db_session)

        with patch("orchestrator.save_analysis_log", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
            report = await make_orchestrator(fake_notifier()).run("run-1", NOW)

        assert report.logged is False
        assert report.log_id is None
        assert report.states[-1] == RunState.DONE

    def test_unlabeled_records(self, make_record):
        result = build_analysis_result([make_record(), make_record(priority="P0")])

        assert result.by_priority == {"unknown": 1, "P0": 1}
        assert result.by_category == {"other": 2}
        assert result.urgent_count == 1


# ============================================================================
# TRIGGERING
# ============================================================================

class TestTrigger:
    """Once-per-day run binding."""

    def test_run_id_is_per_utc_day(self):
        assert run_id_for(NOW) == "daily-analysis-2026-10-19"
        assert run_id_for(NOW.replace(hour=23, minute=59)) == run_id_for(NOW)

    def test_seconds_until_next_run(self):
        assert seconds_until_next_run(NOW.replace(hour=8), 9) == 3600
        assert seconds_until_next_run(NOW, 9) == 24 * 3600
        assert seconds_until_next_run(NOW.replace(hour=10), 9, 30) == 23.5 * 3600

    @pytest.mark.asyncio
    async def test_second_trigger_same_day_is_noop(self, db_session):
        await add_feedback(db_session)
        notifier = fake_notifier()
        orchestrator = make_orchestrator(notifier)

        first = await trigger_daily_analysis(orchestrator, NOW)
        second = await trigger_daily_analysis(orchestrator, NOW + timedelta(hours=3))

        assert first is not None
        assert second is None
        assert notifier.send_daily_analysis.await_count == 1
        assert len(await list_analysis_logs(db_session, NOW - timedelta(days=1))) == 1
        run = await get_daily_run(db_session, run_id_for(NOW))
        assert run.status == "completed"

    @pytest.mark.asyncio
    async def test_next_day_runs_again(self, db_session):
        orchestrator = make_orchestrator(fake_notifier())

        assert await trigger_daily_analysis(orchestrator, NOW) is not None
        assert await trigger_daily_analysis(orchestrator, NOW + timedelta(days=1)) is not None

    @pytest.mark.asyncio
    async def test_crashed_run_is_marked_failed(self, db_session):
        notifier = fake_notifier()
        orchestrator = make_orchestrator(notifier)

        with patch.object(orchestrator, "run", AsyncMock(side_effect=SQLAlchemyError("db gone"))):
            report = await trigger_daily_analysis(orchestrator, NOW)

        assert report is None
        notifier.notify_error.assert_awaited_once()
        run = await get_daily_run(db_session, run_id_for(NOW))
        assert run.status == "failed"

        assert await trigger_daily_analysis(orchestrator, NOW) is None


# ============================================================================
# TEXT REPORT
# ============================================================================

class TestTextReport:
    """Tests for the plain-text rendering."""

    def test_report_contents(self, make_record):
        result = build_analysis_result([
            make_record(summary="Login fails", sentiment="negative", priority="P0"),
            make_record(summary="Login fails", sentiment="negative", priority="P1"),
        ])
        result.recommended_actions = ["Fix login"]

        report = generate_text_report(result, NOW)

        assert "DAILY FEEDBACK ANALYSIS REPORT" in report
        assert "Generated: 2026-10-19 09:00 UTC" in report
        assert "Total Feedback:     2" in report
        assert "Negative Sentiment: 2" in report
        assert "P0 Priority Items:  1" in report
        assert "1. Login fails" in report
        assert "   Occurrences: 2" in report
        assert "1. Fix login" in report
