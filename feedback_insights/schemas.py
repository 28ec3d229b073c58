"""Pydantic schemas for request/response validation and pipeline data."""
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional


class IngestRequest(BaseModel):
    """Request schema for feedback ingestion.

    Any label supplied here takes precedence over the classifier output.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "source": "github",
                "raw_text": "App crashes on login page after update",
                "priority": "P1"
            }
        }
    )

    source: str = Field(..., min_length=1, max_length=100, description="Channel the feedback came from")
    raw_text: str = Field(..., min_length=1, max_length=5000, description="Verbatim feedback text")
    sentiment: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    priority_reason: Optional[str] = None
    created_at: Optional[str] = Field(None, description="ISO 8601; defaults to now if absent or unparseable")


class LabelSet(BaseModel):
    """Structured labels produced by a classifier. Every field may be null."""

    sentiment: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    priority_reason: Optional[str] = None
    method: str = "none"

    def is_empty(self) -> bool:
        return not any(
            (self.sentiment, self.priority, self.category, self.summary, self.priority_reason)
        )


class FeedbackRecord(BaseModel):
    """A stored feedback item with its (possibly partial) labels."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    source: str
    raw_text: str
    sentiment: Optional[str] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    summary: Optional[str] = None
    priority_reason: Optional[str] = None
    created_at: str


class IngestResponse(BaseModel):
    """Response schema for a stored feedback item."""

    status: str = "ok"
    record: FeedbackRecord
    classification_method: str = Field(..., description="ai, heuristic or none")


class WordCount(BaseModel):
    word: str
    count: int


class AggregateStats(BaseModel):
    """Dashboard statistics over a record set."""

    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    by_priority: Dict[str, int] = Field(default_factory=dict, alias="byPriority")
    by_sentiment: Dict[str, int] = Field(default_factory=dict, alias="bySentiment")
    by_category: Dict[str, int] = Field(default_factory=dict, alias="byCategory")
    last_7_days: int = Field(0, alias="last7Days")
    top_words: List[WordCount] = Field(default_factory=list, alias="topWords")


class TopIssue(BaseModel):
    issue: str
    count: int
    sentiment: str


class AnalysisResult(BaseModel):
    """Outcome of one daily analysis run."""

    model_config = ConfigDict(populate_by_name=True)

    total_feedback: int = Field(0, alias="totalFeedback")
    by_priority: Dict[str, int] = Field(default_factory=dict, alias="byPriority")
    by_sentiment: Dict[str, int] = Field(default_factory=dict, alias="bySentiment")
    by_category: Dict[str, int] = Field(default_factory=dict, alias="byCategory")
    top_issues: List[TopIssue] = Field(default_factory=list, alias="topIssues")
    recommended_actions: List[str] = Field(default_factory=list, alias="recommendedActions")
    urgent_items: List[FeedbackRecord] = Field(default_factory=list, alias="urgentItems")
    urgent_count: int = Field(0, alias="urgentCount")

    @property
    def negative_count(self) -> int:
        return self.by_sentiment.get("negative", 0)

    @property
    def p0_count(self) -> int:
        return self.by_priority.get("P0", 0)

    @property
    def p1_count(self) -> int:
        return self.by_priority.get("P1", 0)


class AnalysisLogEntry(BaseModel):
    """Audit row written once per daily run."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    timestamp: str
    total_feedback: int
    negative_count: int
    p0_count: int
    p1_count: int
    data: str
    created_at: Optional[datetime] = None


class SummaryResponse(BaseModel):
    summary: Optional[str] = Field(None, description="Narrative; null when it should not be shown")
    window: str
