"""
Article Store
Persistence for generated articles: in-memory and JSON-file backends
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from math import ceil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
import json
import logging
import os
import threading

from pydantic import ValidationError

from config import StorageSettings, get_storage_settings
from core import ArticlePage, ArticleStats, ArticleStatus, PersistedArticle
from utils.exceptions import StorageError


logger = logging.getLogger(__name__)

PUBLISH_THRESHOLD = 80.0
_PROTECTED_FIELDS = {"id", "created_at", "updated_at"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_status(fields: Mapping[str, Any]) -> ArticleStatus:
    """published iff quality_score >= 80; an explicit failed status is kept."""
    requested = fields.get("status")
    if requested is not None and ArticleStatus(requested) == ArticleStatus.FAILED:
        return ArticleStatus.FAILED
    score = fields.get("quality_score")
    if score is not None:
        return ArticleStatus.PUBLISHED if float(score) >= PUBLISH_THRESHOLD else ArticleStatus.DRAFT
    return ArticleStatus(requested) if requested is not None else ArticleStatus.DRAFT


class ArticleStore(ABC):
    """
    Article collection, most recent first.

    Ids come from a monotonically increasing counter and are never reused.
    Every read-modify-write runs under one lock and builds the new collection
    first; it replaces the in-memory state only after ``_flush`` succeeds.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._articles: List[PersistedArticle] = []
        self._next_id = 1

    @abstractmethod
    def _flush(self, articles: List[PersistedArticle], next_id: int) -> None:
        """Persist ``articles``; raises StorageError when that fails"""
        pass

    def _commit(self, articles: List[PersistedArticle], next_id: Optional[int] = None) -> None:
        next_id = self._next_id if next_id is None else next_id
        self._flush(articles, next_id)
        self._articles = articles
        self._next_id = next_id

    def save(self, fields: Mapping[str, Any]) -> PersistedArticle:
        """Insert a new article at the front and return the stored copy."""
        data = {key: value for key, value in dict(fields).items() if key not in _PROTECTED_FIELDS}
        now = _utcnow()
        with self._lock:
            try:
                article = PersistedArticle(
                    **{**data, "status": derive_status(data)},
                    id=self._next_id,
                    created_at=now,
                    updated_at=now,
                )
            except ValueError as exc:
                raise StorageError(f"Invalid article: {exc}") from exc
            self._commit([article, *self._articles], self._next_id + 1)
        logger.info(f"Saved article {article.id} ({article.status.value}): {article.title[:50]}")
        return article.model_copy(deep=True)

    def list(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> ArticlePage:
        page = max(1, int(page))
        limit = max(1, int(limit))
        with self._lock:
            matches = [item for item in self._articles if status is None or item.status.value == status]
            start = (page - 1) * limit
            window = [item.model_copy(deep=True) for item in matches[start:start + limit]]
        return ArticlePage(
            articles=window,
            total=len(matches),
            page=page,
            limit=limit,
            total_pages=ceil(len(matches) / limit),
        )

    def get_by_id(self, article_id: int) -> Optional[PersistedArticle]:
        with self._lock:
            for item in self._articles:
                if item.id == int(article_id):
                    return item.model_copy(deep=True)
        return None

    def update(self, article_id: int, patch: Mapping[str, Any]) -> Optional[PersistedArticle]:
        """Merge ``patch`` into the article and bump ``updated_at``; None if absent."""
        changes = {key: value for key, value in dict(patch).items() if key not in _PROTECTED_FIELDS}
        with self._lock:
            for index, item in enumerate(self._articles):
                if item.id != int(article_id):
                    continue
                merged = {**item.model_dump(), **changes, "updated_at": _utcnow()}
                try:
                    updated = PersistedArticle.model_validate(merged)
                except ValidationError as exc:
                    raise StorageError(f"Invalid update for article {article_id}: {exc}") from exc
                articles = list(self._articles)
                articles[index] = updated
                self._commit(articles)
                return updated.model_copy(deep=True)
        return None

    def update_status(self, article_id: int, status: str) -> Optional[PersistedArticle]:
        return self.update(article_id, {"status": status})

    def delete(self, article_id: int) -> bool:
        with self._lock:
            for index, item in enumerate(self._articles):
                if item.id == int(article_id):
                    self._commit(self._articles[:index] + self._articles[index + 1:])
                    logger.info(f"Deleted article {article_id}")
                    return True
        return False

    def stats(self, now: Optional[datetime] = None) -> ArticleStats:
        """Totals plus published counts for the current UTC day and month."""
        now = (now or _utcnow()).astimezone(timezone.utc)
        with self._lock:
            articles = list(self._articles)

        def _created(item: PersistedArticle) -> datetime:
            created = item.created_at
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            return created.astimezone(timezone.utc)

        published = [item for item in articles if item.status == ArticleStatus.PUBLISHED]
        status_counts: Dict[str, int] = {}
        for item in articles:
            status_counts[item.status.value] = status_counts.get(item.status.value, 0) + 1

        return ArticleStats(
            total=len(articles),
            today_published=sum(1 for item in published if _created(item).date() == now.date()),
            month_published=sum(
                1 for item in published
                if (_created(item).year, _created(item).month) == (now.year, now.month)
            ),
            status_counts=status_counts,
            latest_article=articles[0].model_copy(deep=True) if articles else None,
        )

    def clear_all(self) -> None:
        """Drop every article; the id counter keeps counting."""
        with self._lock:
            self._commit([])

    def count(self) -> int:
        with self._lock:
            return len(self._articles)


class InMemoryArticleStore(ArticleStore):
    """
    In-memory store
    Nothing survives the process; used for tests and dry runs
    """

    def _flush(self, articles: List[PersistedArticle], next_id: int) -> None:
        return None


class JsonFileArticleStore(ArticleStore):
    """
    JSON file store
    The whole collection is rewritten on every mutation via an atomic replace
    """

    def __init__(self, path: str = "./data/articles.json"):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            self._articles = [PersistedArticle.model_validate(item) for item in payload.get("articles") or []]
            self._next_id = int(payload.get("next_id") or 1)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to load article store {self.path}: {exc}") from exc

        highest = max((item.id for item in self._articles), default=0)
        self._next_id = max(self._next_id, highest + 1)
        logger.info(f"Loaded {len(self._articles)} articles from {self.path}")

    def _flush(self, articles: List[PersistedArticle], next_id: int) -> None:
        payload = {
            "next_id": next_id,
            "last_updated": _utcnow().isoformat(),
            "articles": [item.model_dump(mode="json") for item in articles],
        }
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise StorageError(f"Failed to write article store {self.path}: {exc}") from exc


def get_article_store(settings: Optional[StorageSettings] = None) -> ArticleStore:
    """
    Build the configured article store

    Args:
        settings: storage settings (defaults to the global settings)

    Returns:
        ArticleStore
    """
    settings = settings or get_storage_settings()
    backend = settings.backend.lower()

    if backend == "memory":
        return InMemoryArticleStore()
    elif backend == "json":
        return JsonFileArticleStore(settings.articles_path)
    else:
        raise ValueError(f"Unknown storage backend: {backend}")
