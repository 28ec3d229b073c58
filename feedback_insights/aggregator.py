"""Aggregation of labeled feedback into distributions and keyword rankings.

All functions here are pure: no I/O, no clock reads unless `now` is omitted.
Records are read by attribute, so ORM rows and FeedbackRecord schemas both work.
"""
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from schemas import AggregateStats, TopIssue, WordCount
from taxonomy import OTHER, STOPWORDS, UNKNOWN, is_urgent
from timeutils import parse_timestamp, utc_now

RECENT_WINDOW = timedelta(days=7)
TOP_WORDS_LIMIT = 50
TOP_ISSUES_LIMIT = 5

_TOKEN = re.compile(r"\b[a-z]{3,}\b")


def count_distributions(records: Iterable) -> Tuple[Dict[str, int], Dict[str, int], Dict[str, int]]:
    """Count records by priority, sentiment and category in one pass.

    Missing labels are counted under "unknown" (priority, sentiment) or
    "other" (category), so each map sums to the number of records.
    """
    by_priority: Dict[str, int] = {}
    by_sentiment: Dict[str, int] = {}
    by_category: Dict[str, int] = {}

    for record in records:
        priority = record.priority or UNKNOWN
        by_priority[priority] = by_priority.get(priority, 0) + 1

        sentiment = record.sentiment or UNKNOWN
        by_sentiment[sentiment] = by_sentiment.get(sentiment, 0) + 1

        category = record.category or OTHER
        by_category[category] = by_category.get(category, 0) + 1

    return by_priority, by_sentiment, by_category


def count_recent(records: Iterable, now: datetime, window: timedelta = RECENT_WINDOW) -> int:
    """Count records created strictly after now - window; bad timestamps never count.

    A naive `now` is taken as UTC.
    """
    cutoff = (parse_timestamp(now) or now) - window
    recent = 0
    for record in records:
        created = parse_timestamp(record.created_at)
        if created is not None and created > cutoff:
            recent += 1
    return recent


def tokenize(text: str) -> List[str]:
    return [word for word in _TOKEN.findall(text.lower()) if word not in STOPWORDS]


def extract_top_words(records: Iterable, limit: int = TOP_WORDS_LIMIT) -> List[WordCount]:
    """Rank words from each record's summary (or raw text when unsummarized).

    Ties keep first-seen order, so the ranking is stable across calls.
    """
    frequencies: Counter = Counter()
    for record in records:
        frequencies.update(tokenize(record.summary or record.raw_text or ""))

    ranked = sorted(frequencies.items(), key=lambda item: item[1], reverse=True)
    return [WordCount(word=word, count=count) for word, count in ranked[:limit]]


def aggregate(records: Sequence, now: Optional[datetime] = None) -> AggregateStats:
    """Compute dashboard statistics for a record set.

    Args:
        records: Labeled (or partially labeled) feedback
        now: Reference instant for the 7-day window, defaults to current time

    Returns:
        AggregateStats; all zero/empty for an empty input
    """
    records = list(records)
    now = now or utc_now()
    by_priority, by_sentiment, by_category = count_distributions(records)

    return AggregateStats(
        total=len(records),
        by_priority=by_priority,
        by_sentiment=by_sentiment,
        by_category=by_category,
        last_7_days=count_recent(records, now),
        top_words=extract_top_words(records)
    )


def group_top_issues(records: Iterable, limit: int = TOP_ISSUES_LIMIT) -> List[TopIssue]:
    """Group records sharing the exact same summary and rank groups by size.

    Records without a summary are skipped. Each group reports its most common
    sentiment (first seen wins a tie, "neutral" when none is labeled).
    """
    groups: Dict[str, List[Optional[str]]] = {}
    for record in records:
        if not record.summary:
            continue
        groups.setdefault(record.summary, []).append(record.sentiment)

    issues = []
    for summary, sentiments in groups.items():
        labeled = Counter(s for s in sentiments if s)
        dominant = labeled.most_common(1)[0][0] if labeled else "neutral"
        issues.append(TopIssue(issue=summary, count=len(sentiments), sentiment=dominant))

    issues.sort(key=lambda issue: issue.count, reverse=True)
    return issues[:limit]


def collect_urgent(records: Iterable) -> List:
    """All P0/P1 records, in input order."""
    return [record for record in records if is_urgent(record.priority)]
