"""Fixed vocabularies and validation rules shared by every component.

The keyword tables at the bottom drive the heuristic classifier and the
keyword extraction. They are English-only and meant to be swapped out, not
treated as a stable contract.
"""
from typing import Any, Iterable, Optional

SENTIMENTS = ("negative", "neutral", "positive")
PRIORITIES = ("P0", "P1", "P2", "P3")
URGENT_PRIORITIES = ("P0", "P1")

UNKNOWN = "unknown"
OTHER = "other"

# Categories the model is nudged towards; anything else is accepted as free text
KNOWN_CATEGORIES = (
    "bug",
    "performance",
    "billing",
    "docs",
    "ux",
    "feature_request",
    "security",
    "other",
)

# Categories counted as product feedback for the product_only filter
PRODUCT_CATEGORIES = (
    "bug",
    "performance",
    "feature_request",
    "docs",
    "ux",
    "security",
    "billing",
)

PRIORITY_DEFINITIONS = {
    "P0": "outage, data loss, security issue, payment failure",
    "P1": "major broken feature that blocks many users",
    "P2": "significant issue but workaround exists",
    "P3": "minor issue, cosmetic or nice-to-have",
}

MAX_SUMMARY_LENGTH = 120


def sanitize_choice(value: Any, allowed: Iterable[str]) -> Optional[str]:
    """Return value only if it is exactly one of the allowed strings.

    No case folding and no trimming: " Negative" is rejected, not coerced.
    """
    if not isinstance(value, str):
        return None
    return value if value in tuple(allowed) else None


def sanitize_nullable(value: Any) -> Optional[str]:
    """Trim a free-text label, mapping empty or missing values to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def clip_summary(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value[:MAX_SUMMARY_LENGTH]


def is_urgent(priority: Optional[str]) -> bool:
    return priority in URGENT_PRIORITIES


# ---------------------------------------------------------------------------
# Heuristic classification tables (whole-word, lower-case matching)
# ---------------------------------------------------------------------------

NEGATIVE_WORDS = (
    "crash", "crashes", "crashed", "crashing",
    "fail", "fails", "failed", "failing", "failure",
    "error", "errors", "bug", "bugs", "slow", "break", "breaks", "broken",
    "issue", "issues", "problem", "problems",
    "down", "outage", "losing", "lost", "can't", "cannot", "unable",
    "terrible", "awful", "hate", "frustrated", "frustrating",
    "confusing", "outdated", "timeout", "vulnerability",
)

POSITIVE_WORDS = (
    "great", "awesome", "love", "excellent", "nice", "good",
    "amazing", "fantastic", "wonderful", "thanks", "helpful",
)

# Evaluated in order; the first matching rule sets priority and category.
# A category of None keeps the current default ("other").
PRIORITY_RULES = (
    ("P0", "bug", (
        "outage", "down", "data loss", "security", "breach",
        "vulnerability", "payment failed", "payment processing failed",
    )),
    ("P1", "bug", ("crash", "crashes", "crashed", "crashing", "blocked", "blocks all")),
    ("P1", "performance", ("slow", "slowly")),
    ("P3", "feature_request", ("feature", "request", "like to", "please add")),
)

# Applied after the priority rules, later entries win.
CATEGORY_OVERRIDES = (
    ("performance", ("performance", "latency", "lag", "laggy")),
    ("docs", ("doc", "docs", "documentation", "readme", "tutorial")),
    ("billing", ("billing", "payment", "invoice", "refund", "subscription", "charged")),
    ("ux", ("ui", "ux", "usability", "layout", "design")),
)

SECURITY_WORDS = ("security", "breach", "vulnerability")

STOPWORDS = frozenset({
    "the", "and", "for", "with", "that", "this", "from", "are", "but", "can",
    "has", "have", "been", "one", "like", "when", "where", "what", "which",
    "who", "why", "how", "was", "were", "not", "you", "your", "our", "all",
    "any", "its", "they", "them", "their", "there", "then", "than", "too",
    "very", "just", "into", "out", "about", "after", "before", "some", "would",
    "could", "should", "will", "does", "did", "had", "him", "her", "his",
    "she", "also", "only", "more", "most", "other", "such", "own", "same",
    "each", "few", "both", "over", "under", "again", "once", "here", "these",
    "those", "being", "because", "while", "off", "get", "got",
})
