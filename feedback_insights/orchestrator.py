"""Daily feedback analysis: fetch, analyze, compose, deliver, log."""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from aggregator import collect_urgent, count_distributions, group_top_issues
from config import Config, config as default_config
from database import fetch_feedback_since, get_db_session, save_analysis_log
from insights import RecommendationWriter
from notifier import SlackNotifier
from schemas import AnalysisResult, FeedbackRecord
from timeutils import utc_now

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW = timedelta(hours=24)
URGENT_PAYLOAD_LIMIT = 5


class RunState(str, Enum):
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    COMPOSING = "composing"
    DELIVERING = "delivering"
    LOGGING = "logging"
    DONE = "done"


@dataclass
class RunReport:
    """What happened during one run, for callers and tests."""

    run_id: str
    result: AnalysisResult = field(default_factory=AnalysisResult)
    states: List[RunState] = field(default_factory=list)
    delivered: Optional[bool] = None  # None when no delivery was attempted
    logged: bool = False
    log_id: Optional[int] = None


def build_analysis_result(records: Sequence) -> AnalysisResult:
    """Distributions, top issues and urgent items for the fetched records."""
    by_priority, by_sentiment, by_category = count_distributions(records)
    urgent = collect_urgent(records)

    return AnalysisResult(
        total_feedback=len(records),
        by_priority=by_priority,
        by_sentiment=by_sentiment,
        by_category=by_category,
        top_issues=group_top_issues(records),
        urgent_items=[FeedbackRecord.model_validate(r) for r in urgent[:URGENT_PAYLOAD_LIMIT]],
        urgent_count=len(urgent)
    )


class DailyAnalysisOrchestrator:
    """Runs the daily analysis as a strictly sequential pipeline.

    Stages: FETCHING -> ANALYZING -> COMPOSING -> DELIVERING -> LOGGING -> DONE.
    A failed delivery still moves on to LOGGING. With nothing to analyze the
    run goes straight from FETCHING to LOGGING with a zero-valued result.
    """

    def __init__(
        self,
        settings: Optional[Config] = None,
        session_factory: Callable = get_db_session,
        notifier: Optional[Any] = None,
        recommender: Optional[RecommendationWriter] = None
    ):
        self.settings = settings or default_config
        self.session_factory = session_factory
        self.notifier = notifier or SlackNotifier(self.settings)
        self.recommender = recommender or RecommendationWriter(self.settings)

    async def run(self, run_id: str, now: Optional[datetime] = None) -> RunReport:
        """Execute one run.

        Args:
            run_id: Caller-supplied identifier, one per UTC day
            now: End of the analysis window, defaults to current time

        Returns:
            RunReport with the result and the stages visited

        Raises:
            SQLAlchemyError: If fetching the feedback fails
        """
        now = now or utc_now()
        report = RunReport(run_id=run_id)

        self._enter(report, RunState.FETCHING)
        async with self.session_factory() as db:
            records = await fetch_feedback_since(db, now - ANALYSIS_WINDOW)
        logger.info(f"[{run_id}] Fetched {len(records)} feedback items from the past 24 hours")

        if records:
            self._enter(report, RunState.ANALYZING)
            report.result = build_analysis_result(records)

            self._enter(report, RunState.COMPOSING)
            report.result.recommended_actions = await self.recommender.recommend(
                report.result.top_issues
            )

            self._enter(report, RunState.DELIVERING)
            report.delivered = await self._deliver(report.result, now)
        else:
            logger.info(f"[{run_id}] No feedback received in the past 24 hours")

        self._enter(report, RunState.LOGGING)
        report.log_id = await self._log(report.result, now)
        report.logged = report.log_id is not None

        self._enter(report, RunState.DONE)
        return report

    def _enter(self, report: RunReport, state: RunState) -> None:
        report.states.append(state)
        logger.info(f"[{report.run_id}] {state.value}")

    async def _deliver(self, analysis: AnalysisResult, now: datetime) -> bool:
        try:
            delivered = await self.notifier.send_daily_analysis(analysis, now)
        except Exception as e:
            logger.error(f"Slack notification error: {e}")
            return False
        if not delivered:
            logger.warning("Daily analysis was not delivered")
        return delivered

    async def _log(self, analysis: AnalysisResult, now: datetime) -> Optional[int]:
        try:
            async with self.session_factory() as db:
                entry = await save_analysis_log(db, analysis, timestamp=now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to log analysis: {e}")
            return None
        return entry.id


def generate_text_report(analysis: AnalysisResult, generated_at: Optional[datetime] = None) -> str:
    """Plain-text rendering of an analysis result."""
    rule = "═" * 39
    thin = "─" * 39
    generated_at = generated_at or utc_now()

    lines = [
        rule,
        "DAILY FEEDBACK ANALYSIS REPORT",
        rule,
        "",
        f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M UTC')}",
        "",
        "SUMMARY",
        thin,
        f"Total Feedback:     {analysis.total_feedback:,}",
        f"Negative Sentiment: {analysis.negative_count}",
        f"Positive Sentiment: {analysis.by_sentiment.get('positive', 0)}",
        f"P0 Priority Items:  {analysis.p0_count}",
        f"P1 Priority Items:  {analysis.p1_count}",
        "",
        "TOP ISSUES",
        thin,
    ]
    for i, issue in enumerate(analysis.top_issues[:5], 1):
        lines.extend([
            f"{i}. {issue.issue}",
            f"   Occurrences: {issue.count}",
            f"   Sentiment:   {issue.sentiment}",
            "",
        ])

    lines.extend(["RECOMMENDATIONS", thin])
    for i, action in enumerate(analysis.recommended_actions, 1):
        lines.append(f"{i}. {action}")

    lines.extend(["", rule])
    return "\n".join(lines)
