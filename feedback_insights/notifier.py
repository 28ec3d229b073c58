"""Slack delivery of daily analysis results."""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

import httpx

from config import Config, config as default_config
from schemas import AnalysisResult
from timeutils import format_time_diff, utc_now

logger = logging.getLogger(__name__)

MAX_NOTIFY_ATTEMPTS = 3


def is_valid_slack_webhook(url: Optional[str]) -> bool:
    """Accept only https://hooks.slack.com/services/... URLs."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return (
        parsed.scheme == "https"
        and parsed.hostname == "hooks.slack.com"
        and parsed.path.startswith("/services/")
    )


def _section(text: str) -> dict:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _divider() -> dict:
    return {"type": "divider"}


def build_daily_payload(
    analysis: AnalysisResult,
    dashboard_url: str,
    now: Optional[datetime] = None
) -> dict:
    """Build the Slack Block Kit message for one analysis run.

    Args:
        analysis: Result of the run
        dashboard_url: Target of the "View Dashboard" button
        now: Reference time for the relative timestamps of urgent items

    Returns:
        Dictionary payload for the webhook
    """
    now = now or utc_now()
    blocks: List[dict] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "📊 Daily Feedback Analysis",
                "emoji": True
            }
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Total Feedback:*\n{analysis.total_feedback}"},
                {"type": "mrkdwn", "text": f"*Negative Sentiment:*\n{analysis.negative_count}"},
                {"type": "mrkdwn", "text": f"*P0 Priority:*\n{analysis.p0_count}"},
                {"type": "mrkdwn", "text": f"*P1 Priority:*\n{analysis.p1_count}"}
            ]
        },
        _divider()
    ]

    if analysis.top_issues:
        lines = "\n".join(
            f"• {issue.issue} ({issue.count}x)" for issue in analysis.top_issues[:3]
        )
        blocks.append(_section(f"*Top Issues:*\n{lines}"))

    if analysis.recommended_actions:
        lines = "\n".join(f"• {action}" for action in analysis.recommended_actions[:3])
        blocks.extend([_divider(), _section(f"*Recommended Actions:*\n{lines}")])

    if analysis.urgent_count > 0:
        blocks.extend([_divider(), _section(f"*⚠️ Urgent Items ({analysis.urgent_count}):*")])
        for item in analysis.urgent_items[:3]:
            label = item.summary or item.raw_text[:80]
            when = format_time_diff(item.created_at, now)
            blocks.append(_section(f"• [{item.priority}] {label} — _{item.source}, {when}_"))

    blocks.append({
        "type": "actions",
        "elements": [
            {
                "type": "button",
                "text": {"type": "plain_text", "text": "View Dashboard", "emoji": True},
                "url": dashboard_url,
                "action_id": "view_dashboard"
            }
        ]
    })

    return {
        "text": f"Daily Feedback Analysis: {analysis.total_feedback} items, "
                f"{analysis.urgent_count} urgent",
        "blocks": blocks
    }


class SlackNotifier:
    """Sends analysis messages to a Slack incoming webhook.

    Delivery is at-least-once at best: each send makes NOTIFY_MAX_ATTEMPTS
    attempts (capped at 3) and reports failure instead of raising.
    """

    def __init__(self, settings: Optional[Config] = None, webhook_url: Optional[str] = None):
        self.settings = settings or default_config
        url = webhook_url if webhook_url is not None else self.settings.SLACK_WEBHOOK_URL
        if url and not is_valid_slack_webhook(url):
            logger.warning("Ignoring SLACK_WEBHOOK_URL: not a hooks.slack.com/services/ URL")
            url = ""
        self.webhook_url = url
        self.dashboard_url = self.settings.DASHBOARD_URL
        self.timeout = self.settings.NOTIFY_TIMEOUT_SECONDS
        self.max_attempts = max(1, min(MAX_NOTIFY_ATTEMPTS, self.settings.NOTIFY_MAX_ATTEMPTS))

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def send_daily_analysis(
        self,
        analysis: AnalysisResult,
        now: Optional[datetime] = None
    ) -> bool:
        """Deliver the daily analysis message.

        Returns:
            True if Slack accepted the message, False otherwise
        """
        if not self.configured:
            logger.warning("SLACK_WEBHOOK_URL not configured, skipping delivery")
            return False

        payload = build_daily_payload(analysis, self.dashboard_url, now)
        return await self.send(payload)

    async def notify_error(self, error: BaseException) -> bool:
        """Post a short error notice about a crashed analysis run."""
        if not self.configured:
            return False
        payload = {
            "text": "Feedback Analysis Error",
            "blocks": [
                _section(f"🚨 *Feedback Analysis Error*\n```{str(error)[:500]}```")
            ]
        }
        return await self.send(payload)

    async def send(self, payload: dict) -> bool:
        """Post a payload, retrying transport errors and 5xx with 1s, 2s backoff.

        4xx responses are not retried.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._send_webhook(payload)
                return True
            except httpx.HTTPStatusError as e:
                logger.error(f"Slack API error: {e.response.status_code} (attempt {attempt})")
                if e.response.status_code < 500:
                    return False
            except httpx.HTTPError as e:
                logger.error(f"Slack notification error: {e} (attempt {attempt})")

            if attempt < self.max_attempts:
                sleep_time = 2 ** (attempt - 1)
                logger.warning(f"Retrying Slack delivery in {sleep_time} seconds...")
                await asyncio.sleep(sleep_time)
        return False

    async def _send_webhook(self, payload: dict) -> None:
        """Send webhook notification.

        Raises:
            httpx.HTTPError: If webhook delivery fails
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.webhook_url,
                json=payload
            )
            response.raise_for_status()
            logger.info("Daily analysis delivered to Slack")
