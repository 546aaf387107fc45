"""
Pipeline Module
Ranking, article composition, image sourcing and publishing
"""
from .ranking import CandidateRanker, freshness_score, heuristic_score, passes_filter
from .composer import ArticleComposer, categorize, parse_article_response
from .images import ImageSourcingEngine, parse_judgement
from .publisher import MediaPublisher, PublishedMedia, substitute_placeholders, substitute_structured_data
from .editorial import editorial_quality_score, is_publishable

__all__ = [
    "CandidateRanker",
    "freshness_score",
    "heuristic_score",
    "passes_filter",
    "ArticleComposer",
    "categorize",
    "parse_article_response",
    "ImageSourcingEngine",
    "parse_judgement",
    "MediaPublisher",
    "PublishedMedia",
    "substitute_placeholders",
    "substitute_structured_data",
    "editorial_quality_score",
    "is_publishable",
]
