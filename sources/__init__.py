"""Feed sources for the news pipeline."""

from .feeds import (
    AUTOMOTIVE_KEYWORD_POOL,
    ECONOMY_KEYWORD_POOL,
    FeedAggregator,
    clean_title,
    dedupe_candidates,
    generate_article_id,
    parse_feed,
    select_rotating_keywords,
)

__all__ = [
    "AUTOMOTIVE_KEYWORD_POOL",
    "ECONOMY_KEYWORD_POOL",
    "FeedAggregator",
    "clean_title",
    "dedupe_candidates",
    "generate_article_id",
    "parse_feed",
    "select_rotating_keywords",
]
