"""Narrative summaries and recommended actions from aggregated feedback."""
import logging
import re
from typing import Any, List, Optional, Sequence

from config import Config, config as default_config
from llm_client import InferenceClient, InferenceError, pick_response_text
from schemas import AggregateStats, TopIssue
from taxonomy import PRIORITIES

logger = logging.getLogger(__name__)

UNEXPECTED_FORMAT_MESSAGE = "Summary generated but with unexpected format."

FALLBACK_RECOMMENDATIONS = [
    "Review high-priority feedback items",
    "Investigate recurring issues",
    "Follow up with affected users",
]

MAX_RECOMMENDATIONS = 4

_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")

PRIORITY_LABELS = {
    "P0": "Critical",
    "P1": "High",
    "P2": "Medium",
    "P3": "Low",
}


def _top_category(stats: AggregateStats) -> Optional[str]:
    if not stats.by_category:
        return None
    return sorted(stats.by_category.items(), key=lambda item: item[1], reverse=True)[0][0]


def build_summary_prompt(stats: AggregateStats, window_label: str) -> str:
    """Render the statistics as labeled lines and ask for bullet-point insights."""
    priority_lines = "\n".join(
        f"- {p} ({PRIORITY_LABELS[p]}): {stats.by_priority.get(p, 0)}" for p in PRIORITIES
    )
    category_lines = "\n".join(
        f"- {category}: {count}" for category, count in stats.by_category.items()
    ) or "- none"

    return f"""Based on this feedback dashboard data ({window_label}), provide a concise executive summary with actionable insights:

Total Feedback: {stats.total}
Last 7 Days: {stats.last_7_days}

Sentiment Distribution:
- Positive: {stats.by_sentiment.get("positive", 0)}
- Neutral: {stats.by_sentiment.get("neutral", 0)}
- Negative: {stats.by_sentiment.get("negative", 0)}

Priority Distribution:
{priority_lines}

Category Distribution:
{category_lines}

Please provide:
1. Key findings about overall sentiment and priority trends
2. Top 3 actionable insights or recommendations
3. Critical areas needing immediate attention (if any)

Format the response as clear, concise bullet points."""


def templated_summary(stats: AggregateStats) -> str:
    """Deterministic narrative used in mock mode."""
    negative = stats.by_sentiment.get("negative", 0)
    p0 = stats.by_priority.get("P0", 0)
    top_category = _top_category(stats)
    trend = "trending negative" if negative else "positive"

    return f"""Key Findings:
• Overall sentiment is {trend} with {negative} negative feedback items
• {p0} critical (P0) issues require immediate attention
• Most common issue category: {top_category or "unknown"}
• Last 7 days: {stats.last_7_days} new feedback items

Recommended Actions:
1. Address the {p0} P0 critical issues as top priority
2. Focus on improving customer satisfaction in the "{top_category or "primary"}" category
3. Implement monitoring for recurring patterns in negative feedback

Critical Items Requiring Attention:
• {p0} P0 items pending resolution
• {negative} negative sentiment feedback entries
• Review category performance trends"""


class InsightComposer:
    """Turns aggregate statistics into a readable narrative."""

    def __init__(self, settings: Optional[Config] = None, client: Optional[Any] = None):
        self.settings = settings or default_config
        if client is None and not self.settings.USE_MOCK_AI:
            client = InferenceClient.from_config(self.settings)
        self.client = client

    def should_compose(self, stats: AggregateStats) -> bool:
        if stats.total == 0:
            return False
        return bool(self.settings.USE_MOCK_AI or self.client is not None)

    async def compose(self, stats: AggregateStats, window_label: str) -> Optional[str]:
        """Build a narrative for the given statistics.

        Returns:
            The narrative, a short fallback message if the service failed, or
            None when the narrative should be left out entirely (no records,
            or no inference service)
        """
        if not self.should_compose(stats):
            logger.info(
                f"AI summary skipped (records: {stats.total}, "
                f"inference configured: {self.client is not None})"
            )
            return None

        if self.settings.USE_MOCK_AI:
            return templated_summary(stats)

        prompt = build_summary_prompt(stats, window_label)
        try:
            response = await self.client.complete(
                prompt,
                max_tokens=self.settings.AI_SUMMARY_MAX_TOKENS,
                temperature=0.3
            )
        except InferenceError as e:
            logger.error(f"AI summary error: {e}")
            return f"Unable to generate AI summary at this time. (Error: {str(e)[:50]})"

        text = pick_response_text(response)
        if text is None:
            logger.warning(f"Unexpected AI response format: {str(response)[:200]}")
            return UNEXPECTED_FORMAT_MESSAGE

        logger.info("AI summary generated successfully")
        return text


def build_recommendation_prompt(issues: Sequence[TopIssue]) -> str:
    issues_summary = "\n".join(
        f"- {i.issue} ({i.count} occurrences, sentiment: {i.sentiment})" for i in issues
    )
    return (
        f"Based on these customer feedback issues:\n\n{issues_summary}\n\n"
        "Provide 3-4 specific, actionable recommendations to address these issues. "
        "Phrase each as a short imperative sentence. Format as a numbered list."
    )


def parse_recommendations(text: str, limit: int = MAX_RECOMMENDATIONS) -> List[str]:
    """Split a numbered or bulleted list into plain action strings.

    When any line carries a list marker, unmarked lines (preambles, closing
    remarks) are dropped.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if any(_LIST_MARKER.match(line) for line in lines):
        lines = [line for line in lines if _LIST_MARKER.match(line)]

    actions = []
    for line in lines:
        action = _LIST_MARKER.sub("", line).strip()
        if action:
            actions.append(action)
    return actions[:limit]


class RecommendationWriter:
    """Produces recommended actions for the daily analysis."""

    def __init__(self, settings: Optional[Config] = None, client: Optional[Any] = None):
        self.settings = settings or default_config
        if client is None and not self.settings.USE_MOCK_AI:
            client = InferenceClient.from_config(self.settings)
        self.client = client

    async def recommend(self, issues: Sequence[TopIssue]) -> List[str]:
        """Ask for 3-4 actions addressing the top issues.

        Returns an empty list when there is nothing to address or no inference
        service, and the fixed fallback list when the call fails.
        """
        if not issues:
            return []
        if self.settings.USE_MOCK_AI:
            return list(FALLBACK_RECOMMENDATIONS)
        if self.client is None:
            return []

        try:
            response = await self.client.complete(
                build_recommendation_prompt(issues),
                max_tokens=self.settings.AI_SUMMARY_MAX_TOKENS,
                temperature=0.3
            )
        except InferenceError as e:
            logger.error(f"AI recommendation error: {e}")
            return list(FALLBACK_RECOMMENDATIONS)

        text = pick_response_text(response)
        actions = parse_recommendations(text) if text else []
        if not actions:
            logger.warning("AI recommendations were empty, using fallback list")
            return list(FALLBACK_RECOMMENDATIONS)
        return actions
