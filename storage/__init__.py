"""
Storage Module
Article persistence and CDN image storage
"""
from .article_store import (
    ArticleStore,
    InMemoryArticleStore,
    JsonFileArticleStore,
    derive_status,
    get_article_store,
)
from .cdn import CloudflareImagesClient

__all__ = [
    # Articles
    "ArticleStore",
    "InMemoryArticleStore",
    "JsonFileArticleStore",
    "derive_status",
    "get_article_store",
    # CDN
    "CloudflareImagesClient",
]
