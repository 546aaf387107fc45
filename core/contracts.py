"""Canonical data contracts for the news pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedSource(BaseModel):
    """One RSS endpoint scanned during a run."""

    url: str
    label: str = ""
    category: str = "general"
    keyword: Optional[str] = None


class RawCandidate(BaseModel):
    """Feed item before filtering/ranking."""

    id: str
    title: str
    link: str
    description: str = ""
    published_at: Optional[datetime] = None
    source_name: str = "Unknown"
    category: str = "general"
    feed_url: Optional[str] = None

    @field_validator("title", "description", "source_name", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return str(value or "").strip()


class ExpectedEngagement(str, Enum):
    """Judge's engagement forecast."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ComponentScores(BaseModel):
    """Rubric breakdown (weights 30/25/20/15/10)."""

    news_value: float = Field(default=15, ge=0, le=30)
    popularity: float = Field(default=12, ge=0, le=25)
    title_quality: float = Field(default=10, ge=0, le=20)
    content_quality: float = Field(default=8, ge=0, le=15)
    urgency: float = Field(default=5, ge=0, le=10)


class ScoredCandidate(RawCandidate):
    """Candidate with quality and freshness scores attached."""

    quality_score: float = Field(default=0.0, ge=0, le=100)
    score_source: Literal["llm", "heuristic"] = "heuristic"
    score_rationale: str = ""
    derived_category: Optional[str] = None
    expected_engagement: ExpectedEngagement = ExpectedEngagement.MEDIUM
    # only set when the LLM judged the candidate
    component_scores: Optional[ComponentScores] = None
    freshness_score: float = Field(default=20.0, ge=0, le=100)

    @property
    def composite_score(self) -> float:
        return 0.7 * self.quality_score + 0.3 * self.freshness_score


class ArticleDraft(BaseModel):
    """Structured LLM rewrite of one candidate."""

    title: str
    body_html: str
    tags: List[str] = Field(default_factory=list)
    category: str = "일반"
    slug: str = "news-article"
    structured_data: str = "{}"


class ImageCandidate(BaseModel):
    """Image search result that passed the quality gate."""

    title: str = ""
    link: str
    thumbnail_link: Optional[str] = None
    context_link: Optional[str] = None
    width: int = 0
    height: int = 0
    byte_size: int = 0
    format: str = ""
    heuristic_score: float = 0.0
    strategy_source: str = "primary"


class JudgedImage(ImageCandidate):
    """Candidate after (or instead of) LLM relevance judging."""

    llm_relevance_score: Optional[float] = None
    recommended: bool = False
    final_score: float = 0.0
    judgement: Literal["judged", "unjudged", "failed"] = "unjudged"
    reasoning: str = ""
    slot_index: int = 0
    slot_type: str = "thumbnail"
    search_query: str = ""
    candidates_considered: int = 0


class ImageRole(str, Enum):
    THUMBNAIL = "thumbnail"
    CONTENT = "content"


class UploadedImage(BaseModel):
    """Image stored on the CDN and bound to a placeholder slot."""

    slot_index: int
    role: ImageRole
    cdn_url: str
    cdn_id: Optional[str] = None
    original_url: str
    alt_text: str = ""


class ArticleStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    FAILED = "failed"


class PersistedArticle(BaseModel):
    """Article as held by an ArticleStore."""

    id: int
    title: str = ""
    content: str = ""
    tags: List[str] = Field(default_factory=list)
    category: str = "일반"
    slug: str = "news-article"
    structured_data: str = "{}"
    quality_score: Optional[float] = None
    status: ArticleStatus = ArticleStatus.DRAFT
    source_url: Optional[str] = None
    source_title: Optional[str] = None
    source_name: Optional[str] = None
    images: List[UploadedImage] = Field(default_factory=list)
    cost_info: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ArticlePage(BaseModel):
    articles: List[PersistedArticle] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    total_pages: int = 0


class ArticleStats(BaseModel):
    total: int = 0
    today_published: int = 0
    month_published: int = 0
    status_counts: Dict[str, int] = Field(default_factory=dict)
    latest_article: Optional[PersistedArticle] = None


class CostInfo(BaseModel):
    """Running LLM usage totals."""

    total_requests: int = 0
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    estimated_cost: float = 0.0
    average_cost_per_request: float = 0.0


class ProgressEventType(str, Enum):
    START = "start"
    RSS_SCAN = "rss_scan"
    RSS_COMPLETE = "rss_complete"
    PROCESSING = "processing"
    AI_GENERATING = "ai_generating"
    AI_COMPLETE = "ai_complete"
    ARTICLE_SAVED = "article_saved"
    ERROR = "error"
    COMPLETE = "complete"


class ProgressEvent(BaseModel):
    """One live-mode progress emission."""

    session_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    type: ProgressEventType
    message: str = ""
    progress: int = Field(default=0, ge=0, le=100)
    data: Optional[Dict[str, Any]] = None
    current_article: Optional[str] = None
    article: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class CandidateError(BaseModel):
    article_title: Optional[str] = None
    error_message: str


class PipelineRunResult(BaseModel):
    """Aggregate report of one batch-mode run."""

    status: Literal["completed", "failed", "cancelled"] = "completed"
    new_articles: int = 0
    created_articles: List[PersistedArticle] = Field(default_factory=list)
    errors: List[CandidateError] = Field(default_factory=list)
    cost_info: CostInfo = Field(default_factory=CostInfo)
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def created_count(self) -> int:
        return len(self.created_articles)
