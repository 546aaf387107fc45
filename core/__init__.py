"""Core contracts and shared types for the news pipeline."""

from .contracts import (
    ArticleDraft,
    ArticlePage,
    ArticleStats,
    ArticleStatus,
    CandidateError,
    ComponentScores,
    CostInfo,
    ExpectedEngagement,
    FeedSource,
    ImageCandidate,
    ImageRole,
    JudgedImage,
    PersistedArticle,
    PipelineRunResult,
    ProgressEvent,
    ProgressEventType,
    RawCandidate,
    ScoredCandidate,
    UploadedImage,
)

__all__ = [
    "ArticleDraft",
    "ArticlePage",
    "ArticleStats",
    "ArticleStatus",
    "CandidateError",
    "ComponentScores",
    "CostInfo",
    "ExpectedEngagement",
    "FeedSource",
    "ImageCandidate",
    "ImageRole",
    "JudgedImage",
    "PersistedArticle",
    "PipelineRunResult",
    "ProgressEvent",
    "ProgressEventType",
    "RawCandidate",
    "ScoredCandidate",
    "UploadedImage",
]
