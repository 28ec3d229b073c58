"""Trigger binding for the daily analysis.

Each UTC calendar day maps to one run id. The id is claimed in the
daily_runs table before the orchestrator starts, so a second trigger for the
same day is a no-op. A run that crashes keeps its claim and is not retried.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from config import Config, config as default_config
from database import claim_daily_run, finish_daily_run
from orchestrator import DailyAnalysisOrchestrator, RunReport
from timeutils import utc_now

logger = logging.getLogger(__name__)


def run_id_for(moment: datetime) -> str:
    """Run id for the UTC day containing `moment`."""
    return f"daily-analysis-{moment.strftime('%Y-%m-%d')}"


def seconds_until_next_run(now: datetime, hour: int, minute: int = 0) -> float:
    """Seconds from `now` until the next hour:minute UTC (tomorrow if already past)."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def trigger_daily_analysis(
    orchestrator: DailyAnalysisOrchestrator,
    now: Optional[datetime] = None,
    session_factory: Optional[Callable] = None
) -> Optional[RunReport]:
    """Claim today's run id and execute the run.

    Returns:
        The RunReport, or None if the day was already claimed or the run failed
    """
    now = now or utc_now()
    session_factory = session_factory or orchestrator.session_factory
    run_id = run_id_for(now)

    async with session_factory() as db:
        if not await claim_daily_run(db, run_id):
            return None

    logger.info(f"Triggering daily feedback analysis {run_id}")
    try:
        report = await orchestrator.run(run_id, now)
    except Exception as e:
        logger.error(f"Daily analysis {run_id} failed: {e}", exc_info=True)
        async with session_factory() as db:
            await finish_daily_run(db, run_id, "failed")
        try:
            await orchestrator.notifier.notify_error(e)
        except Exception as notify_error:
            logger.error(f"Failed to send error notification: {notify_error}")
        return None

    async with session_factory() as db:
        await finish_daily_run(db, run_id, "completed")
    return report


class DailyScheduler:
    """Background task that triggers the analysis once a day."""

    def __init__(
        self,
        orchestrator: DailyAnalysisOrchestrator,
        settings: Optional[Config] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.orchestrator = orchestrator
        self.settings = settings or default_config
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(
                f"Daily analysis scheduled at {self.settings.DAILY_ANALYSIS_HOUR_UTC:02d}:"
                f"{self.settings.DAILY_ANALYSIS_MINUTE_UTC:02d} UTC"
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _loop(self) -> None:
        while True:
            delay = seconds_until_next_run(
                self.clock(),
                self.settings.DAILY_ANALYSIS_HOUR_UTC,
                self.settings.DAILY_ANALYSIS_MINUTE_UTC
            )
            logger.debug(f"Next daily analysis in {delay:.0f}s")
            await asyncio.sleep(delay)
            try:
                await trigger_daily_analysis(self.orchestrator, self.clock())
            except Exception as e:
                logger.error(f"Daily analysis trigger failed: {e}", exc_info=True)
