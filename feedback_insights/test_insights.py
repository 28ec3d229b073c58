"""
Tests for narrative summaries and recommended actions.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from config import Config
from insights import (
    FALLBACK_RECOMMENDATIONS,
    UNEXPECTED_FORMAT_MESSAGE,
    InsightComposer,
    RecommendationWriter,
    build_summary_prompt,
    parse_recommendations,
)
from llm_client import InferenceError
from schemas import AggregateStats, TopIssue


def fake_client(response=None, error=None):
    client = MagicMock()
    client.complete = AsyncMock(return_value=response, side_effect=error)
    return client


@pytest.fixture
def stats():
    return AggregateStats(
        total=6,
        by_priority={"P0": 1, "P1": 2, "P3": 3},
        by_sentiment={"negative": 3, "positive": 2, "neutral": 1},
        by_category={"bug": 4, "ux": 2},
        last_7_days=5
    )


# ============================================================================
# INSIGHT COMPOSER
# ============================================================================

class TestInsightComposer:
    """Tests for the dashboard narrative."""

    @pytest.mark.asyncio
    async def test_no_records_means_no_call(self):
        client = fake_client()
        composer = InsightComposer(Config(USE_MOCK_AI=False), client=client)

        assert await composer.compose(AggregateStats(), "all feedback") is None
        client.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_configured_returns_none(self, stats):
        composer = InsightComposer(Config(USE_MOCK_AI=False, OPENAI_API_KEY=""))

        assert await composer.compose(stats, "all feedback") is None

    @pytest.mark.asyncio
    async def test_mock_mode_is_templated(self, stats):
        client = fake_client()
        composer = InsightComposer(Config(USE_MOCK_AI=True), client=client)

        narrative = await composer.compose(stats, "all feedback")

        assert "3 negative feedback items" in narrative
        assert "1 critical (P0) issues" in narrative
        assert "Most common issue category: bug" in narrative
        client.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_returns_service_text(self, stats):
        client = fake_client({"result": {"response": "• Sentiment is mostly negative"}})
        composer = InsightComposer(Config(USE_MOCK_AI=False), client=client)

        narrative = await composer.compose(stats, "product feedback")

        assert narrative == "• Sentiment is mostly negative"
        prompt = client.complete.await_args.args[0]
        assert "(product feedback)" in prompt

    @pytest.mark.asyncio
    async def test_service_error_becomes_fallback_message(self, stats):
        error = InferenceError("AI provider error: " + "x" * 100)
        composer = InsightComposer(Config(USE_MOCK_AI=False), client=fake_client(error=error))

        narrative = await composer.compose(stats, "all feedback")

        assert narrative.startswith("Unable to generate AI summary at this time. (Error: ")
        assert narrative == f"Unable to generate AI summary at this time. (Error: {str(error)[:50]})"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, stats):
        composer = InsightComposer(Config(USE_MOCK_AI=False), client=fake_client({"data": []}))

        assert await composer.compose(stats, "all feedback") == UNEXPECTED_FORMAT_MESSAGE

    def test_prompt_lists_every_priority(self, stats):
        prompt = build_summary_prompt(stats, "all feedback")

        assert "Total Feedback: 6" in prompt
        assert "Last 7 Days: 5" in prompt
        assert "- P0 (Critical): 1" in prompt
        assert "- P2 (Medium): 0" in prompt
        assert "- Negative: 3" in prompt
        assert "- bug: 4" in prompt


# ============================================================================
# RECOMMENDATIONS
# ============================================================================

class TestRecommendations:
    """Tests for recommended actions."""

    issues = [TopIssue(issue="Login fails", count=3, sentiment="negative")]

    def test_parse_strips_list_markers(self):
        text = "Here are my suggestions:\n1. Fix login\n2) Add retries\n- Update docs\n• Call users\n5. Extra"

        assert parse_recommendations(text) == ["Fix login", "Add retries", "Update docs", "Call users"]

    def test_parse_drops_preamble_and_closing_remarks(self):
        text = "Here are some recommendations:\n\n1. Fix login\n2. Add monitoring\n\nLet me know if this helps."

        assert parse_recommendations(text) == ["Fix login", "Add monitoring"]

    def test_parse_plain_lines_without_markers(self):
        assert parse_recommendations("Fix login\nAdd monitoring\n") == ["Fix login", "Add monitoring"]

    @pytest.mark.asyncio
    async def test_no_issues_no_actions(self):
        writer = RecommendationWriter(Config(USE_MOCK_AI=False), client=fake_client())

        assert await writer.recommend([]) == []

    @pytest.mark.asyncio
    async def test_not_configured_no_actions(self):
        writer = RecommendationWriter(Config(USE_MOCK_AI=False, OPENAI_API_KEY=""))

        assert await writer.recommend(self.issues) == []

    @pytest.mark.asyncio
    async def test_service_actions(self):
        client = fake_client("1. Fix the login flow\n2. Add login monitoring\n3. Notify users")
        writer = RecommendationWriter(Config(USE_MOCK_AI=False), client=client)

        actions = await writer.recommend(self.issues)

        assert actions == ["Fix the login flow", "Add login monitoring", "Notify users"]
        assert "Login fails (3 occurrences, sentiment: negative)" in client.complete.await_args.args[0]

    @pytest.mark.asyncio
    async def test_service_error_uses_fallback(self):
        writer = RecommendationWriter(
            Config(USE_MOCK_AI=False), client=fake_client(error=InferenceError("timeout"))
        )

        assert await writer.recommend(self.issues) == FALLBACK_RECOMMENDATIONS

    @pytest.mark.asyncio
    async def test_mock_mode_uses_fixed_list(self):
        writer = RecommendationWriter(Config(USE_MOCK_AI=True))

        assert await writer.recommend(self.issues) == FALLBACK_RECOMMENDATIONS
