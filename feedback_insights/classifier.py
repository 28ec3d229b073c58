"""Feedback classification: inference-backed labeling with a heuristic fallback."""
import logging
import re
from typing import Any, Optional, Protocol

from config import Config, config as default_config
from llm_client import InferenceClient, InferenceError, extract_json_object, pick_response_text
from schemas import LabelSet
from taxonomy import (
    CATEGORY_OVERRIDES,
    KNOWN_CATEGORIES,
    MAX_SUMMARY_LENGTH,
    NEGATIVE_WORDS,
    OTHER,
    POSITIVE_WORDS,
    PRIORITIES,
    PRIORITY_DEFINITIONS,
    PRIORITY_RULES,
    SECURITY_WORDS,
    SENTIMENTS,
    clip_summary,
    sanitize_choice,
    sanitize_nullable,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a product feedback triage assistant. "
    "Return ONLY a valid compact JSON object. No markdown. No extra text."
)


class LabelClassifier(Protocol):
    """Anything that can turn feedback text into a label set."""

    async def classify(self, source: str, text: str) -> LabelSet:
        ...


def build_classification_prompt(source: str, text: str) -> str:
    """Build the labeling prompt.

    Design considerations:
    - Fixed key set so the reply can be validated field by field
    - Allowed values spelled out for the two enumerated labels
    - One-sentence priority definitions to anchor the tiers
    """
    sentiments = ",".join(f'"{s}"' for s in SENTIMENTS)
    priorities = ",".join(f'"{p}"' for p in PRIORITIES)
    categories = ",".join(f'"{c}"' for c in KNOWN_CATEGORIES)
    definitions = "\n".join(f"{tier} = {meaning}" for tier, meaning in PRIORITY_DEFINITIONS.items())

    return f"""Analyze the following user feedback and classify it.
Return a JSON object with EXACTLY these keys:

sentiment: one of [{sentiments}]
priority: one of [{priorities}]
category: one short label like {categories}
priority_reason: 1 concise sentence explaining why this priority was chosen
summary: 1 concise sentence summarizing the feedback (max {MAX_SUMMARY_LENGTH} characters)

Priority definitions:
{definitions}

Source: {source}
Original user feedback:
"{text}"

Return the JSON object ONLY, with no text before or after it. Example:
{{"sentiment":"negative","priority":"P1","category":"bug","priority_reason":"Login failure blocks all users from accessing the product.","summary":"Login fails after the latest update."}}"""


def validate_labels(raw: dict, method: str = "ai") -> LabelSet:
    """Keep only the fields that pass validation; the rest become None.

    Handles common model output issues:
    - Enum values with the wrong case or stray whitespace (rejected)
    - Empty strings or non-string values for free-text fields
    - "reason" used instead of "priority_reason"
    """
    reason = raw.get("priority_reason")
    if sanitize_nullable(reason) is None:
        reason = raw.get("reason")

    return LabelSet(
        sentiment=sanitize_choice(raw.get("sentiment"), SENTIMENTS),
        priority=sanitize_choice(raw.get("priority"), PRIORITIES),
        category=_free_text(raw.get("category")),
        summary=clip_summary(_free_text(raw.get("summary"))),
        priority_reason=_free_text(reason),
        method=method
    )


def _free_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return sanitize_nullable(value)


class InferenceClassifier:
    """Labels feedback through the inference service."""

    def __init__(self, client: InferenceClient, max_tokens: int = 400):
        self.client = client
        self.max_tokens = max_tokens

    async def classify(self, source: str, text: str) -> LabelSet:
        """Classify feedback using the inference service.

        Returns:
            Validated labels; an empty LabelSet if the reply holds no JSON object

        Raises:
            InferenceError: If the service fails (caller should fall back)
        """
        prompt = build_classification_prompt(source, text)
        response = await self.client.complete(
            prompt,
            system=SYSTEM_PROMPT,
            max_tokens=self.max_tokens,
            temperature=0.2
        )

        reply = pick_response_text(response)
        if reply is None:
            logger.warning("Inference reply had no text, leaving feedback unclassified")
            return LabelSet()

        parsed = extract_json_object(reply)
        if parsed is None:
            logger.warning(f"Could not parse labels from inference reply: {reply[:100]!r}")
            return LabelSet()

        return validate_labels(parsed, method="ai")


def _mentions(text: str, words) -> bool:
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


class HeuristicClassifier:
    """Deterministic keyword-based classifier.

    Used when the inference service fails, and for offline/test runs. The
    keyword tables live in taxonomy.py.
    """

    async def classify(self, source: str, text: str) -> LabelSet:
        return self.classify_text(text)

    def classify_text(self, text: str) -> LabelSet:
        lowered = text.lower()

        sentiment = "neutral"
        if _mentions(lowered, NEGATIVE_WORDS):
            sentiment = "negative"
        elif _mentions(lowered, POSITIVE_WORDS):
            sentiment = "positive"

        priority = "P3"
        category = OTHER
        for tier, tier_category, keywords in PRIORITY_RULES:
            if _mentions(lowered, keywords):
                priority = tier
                category = tier_category
                if tier == "P0" and _mentions(lowered, SECURITY_WORDS):
                    category = "security"
                break

        for override, keywords in CATEGORY_OVERRIDES:
            if _mentions(lowered, keywords):
                category = override

        return LabelSet(
            sentiment=sentiment,
            priority=priority,
            category=category,
            summary=text[:MAX_SUMMARY_LENGTH],
            priority_reason=f"{priority} priority due to {sentiment} sentiment and {category} issue",
            method="heuristic"
        )


class FeedbackClassifier:
    """Chooses between inference and heuristic labeling.

    Policy:
    - deterministic mode (USE_MOCK_AI): heuristic only, no network
    - inference not configured: no labels (the record stays unclassified)
    - inference configured: inference, heuristic when the call itself fails
    """

    def __init__(self, settings: Optional[Config] = None, client: Optional[Any] = None):
        self.settings = settings or default_config
        if client is None and not self.settings.USE_MOCK_AI:
            client = InferenceClient.from_config(self.settings)
        self.heuristic = HeuristicClassifier()
        self.inference = (
            InferenceClassifier(client, max_tokens=self.settings.AI_CLASSIFY_MAX_TOKENS)
            if client is not None else None
        )

    @property
    def mode(self) -> str:
        if self.settings.USE_MOCK_AI:
            return "heuristic"
        if self.inference is None:
            return "disabled"
        return "ai"

    def select(self) -> Optional[LabelClassifier]:
        """Return the classifier the current policy picks, or None."""
        if self.settings.USE_MOCK_AI:
            return self.heuristic
        return self.inference

    async def classify(self, source: str, text: str) -> LabelSet:
        """Classify feedback; never raises for collaborator failures.

        Args:
            source: Channel tag, only used as prompt context
            text: Raw feedback text

        Returns:
            LabelSet, possibly empty
        """
        if not text or not text.strip():
            return LabelSet()

        classifier = self.select()
        if classifier is None:
            logger.info("Inference not configured, storing feedback unclassified")
            return LabelSet()

        try:
            labels = await classifier.classify(source, text)
        except InferenceError as e:
            logger.warning(f"AI classification failed: {e}. Using heuristic classifier")
            labels = await self.heuristic.classify(source, text)

        logger.info(
            f"Classified feedback via {labels.method}: "
            f"{labels.sentiment}/{labels.priority}/{labels.category}"
        )
        return labels
