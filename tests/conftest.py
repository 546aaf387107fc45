from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from config import CDNSettings, PipelineSettings, Settings, StorageSettings
from core import ImageCandidate, RawCandidate
from intelligence.llm import BaseLLM, LLMResponse, Message
from orchestrator import PipelineOrchestrator
from pipeline.prompts import COMPOSE_SYSTEM_PROMPT, SCORING_SYSTEM_PROMPT
from sources import feeds
from storage import InMemoryArticleStore
from utils.exceptions import UploadError


USAGE = {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}

ARTICLE_BODY = (
    '<img src="IMG_THUMBNAIL" alt="썸네일">'
    + "<p>" + "가" * 300 + "</p>"
    + '<img src="IMG_URL_1" alt="본문">'
    + "<p>" + "나" * 300 + "</p>"
    + '<img src="IMG_URL_2" alt="본문">'
    + "<p>" + "다" * 300 + "</p>"
    + '<img src="IMG_URL_3" alt="본문">'
)

SOURCE_PAGE = "<html><body><article><p>" + "전기차 시장이 빠르게 성장하고 있다. " * 20 + "</p></article></body></html>"


class FakeLLM(BaseLLM):
    """Scripted LLM: ``handler(messages, kwargs)`` returns text or an exception to raise."""

    def __init__(
        self,
        handler: Optional[Callable[[List[Message], Dict[str, Any]], Any]] = None,
        image_handler: Optional[Callable[[str], Any]] = None,
        configured: bool = True,
    ):
        super().__init__("fake-model", temperature=0.7, max_tokens=1000, timeout=5.0)
        self.handler = handler or (lambda messages, kwargs: "")
        self.image_handler = image_handler or (lambda url: "관련성 점수: 50\n추천 여부: NO")
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []
        self.image_calls: List[str] = []
        self.closed = False

    @property
    def provider(self) -> str:
        return "fake"

    def is_configured(self) -> bool:
        return self.configured

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        self.calls.append({"messages": messages, "kwargs": kwargs})
        result = self.handler(messages, kwargs)
        if isinstance(result, Exception):
            raise result
        return LLMResponse(content=str(result), model=self.model, usage=dict(USAGE))

    async def aanalyze_image(self, image_url: str, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> LLMResponse:
        self.image_calls.append(image_url)
        result = self.image_handler(image_url)
        if isinstance(result, Exception):
            raise result
        return LLMResponse(content=str(result), model=self.model, usage=dict(USAGE))

    async def aclose(self) -> None:
        self.closed = True


class FakeImageSearch:
    """Returns the same result page for every query."""

    def __init__(self, results: Optional[List[ImageCandidate]] = None, configured: bool = True):
        self.results = list(results or [])
        self.configured = configured
        self.queries: List[Dict[str, Any]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "FakeImages"

    def is_configured(self) -> bool:
        return self.configured

    async def search(self, query: str, **kwargs) -> List[ImageCandidate]:
        self.queries.append({"query": query, **kwargs})
        return [item.model_copy() for item in self.results]

    async def close(self) -> None:
        self.closed = True


class FakeCDN:
    """In-memory CDN recording uploaded bytes; ``fail_ids`` makes matching uploads fail."""

    def __init__(self, configured: bool = True, fail_ids: tuple = ()):
        self.configured = configured
        self.fail_ids = fail_ids
        self.uploads: List[Dict[str, Any]] = []
        self.deleted: List[str] = []

    @property
    def name(self) -> str:
        return "FakeCDN"

    def is_configured(self) -> bool:
        return self.configured

    async def upload(self, file, *, filename: str = "image.jpg", image_id: Optional[str] = None, metadata=None) -> Dict[str, str]:
        if any(marker in str(image_id) for marker in self.fail_ids):
            raise UploadError("upload rejected", {"image_id": image_id})
        self.uploads.append({"bytes": file.read(), "filename": filename, "image_id": image_id, "metadata": metadata})
        return {"id": str(image_id), "delivery_url": f"https://cdn.test/{image_id}/public"}

    async def delete(self, image_id: str) -> bool:
        self.deleted.append(image_id)
        return True


class FakeAggregator:
    def __init__(self, items: Optional[List[RawCandidate]] = None, error: Optional[Exception] = None):
        self.items = list(items or [])
        self.error = error
        self.calls = 0

    async def fetch(self, sources=None) -> List[RawCandidate]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


def make_candidate(index: int, title: Optional[str] = None, hours_old: float = 0.5, **overrides: Any) -> RawCandidate:
    fields: Dict[str, Any] = {
        "id": f"rss_{index}",
        "title": title or f"전기차 시장 급성장 소식 {index}번째 기사",
        "link": f"https://news.example.com/articles/{index}",
        "description": "국내 전기차 판매량이 크게 늘면서 관련 기업 실적도 개선되고 있다.",
        "published_at": datetime.now(timezone.utc) - timedelta(hours=hours_old),
        "source_name": "연합뉴스",
        "category": "general",
    }
    fields.update(overrides)
    return RawCandidate(**fields)


def make_image(index: int, title: str = "tesla electric car", **overrides: Any) -> ImageCandidate:
    fields: Dict[str, Any] = {
        "title": title,
        "link": f"https://images.example.com/{index}.jpg",
        "context_link": f"https://images.example.com/page/{index}",
        "width": 800,
        "height": 600,
        "byte_size": 120_000,
        "format": "jpg",
    }
    fields.update(overrides)
    return ImageCandidate(**fields)


def article_json(title: str = "전기차 시장 급성장") -> str:
    return json.dumps(
        {
            "title": f"<h1>{title}</h1>",
            "content": ARTICLE_BODY,
            "tags": ["전기차", "자동차", "시장"],
            "slug": "ev-market-growth",
            "category": "자동차 뉴스",
            "structuredData": {"@type": "NewsArticle", "image": ["IMG_THUMBNAIL"], "url": "/articles/ARTICLE_SLUG"},
        },
        ensure_ascii=False,
    )


def pipeline_responder(messages: List[Message], kwargs: Dict[str, Any]) -> Any:
    """Answers scoring, rewrite and query prompts the way the pipeline expects."""
    system = messages[0].content if messages else ""
    if system == SCORING_SYSTEM_PROMPT:
        count = str(messages[-1].content).count("[기사 ")
        return json.dumps({"analyses": [{"score": 85, "reason": "시의성", "category": "자동차"} for _ in range(count)]})
    if system == COMPOSE_SYSTEM_PROMPT:
        return article_json()
    return "전기차 충전소"


def fast_pipeline_settings(**overrides: Any) -> PipelineSettings:
    values: Dict[str, Any] = {
        "scoring_batch_delay": 0,
        "candidate_delay": 0,
        "image_search_delay": 0,
        "image_judge_delay": 0,
    }
    values.update(overrides)
    return PipelineSettings(**values)


def make_settings(**pipeline_overrides: Any) -> Settings:
    return Settings(
        pipeline=fast_pipeline_settings(**pipeline_overrides),
        storage=StorageSettings(backend="memory"),
        cdn=CDNSettings(account_id=None, api_token=None),
    )


@pytest.fixture
def source_pages(monkeypatch):
    """Serve a fixed article page to every source fetch."""
    fetched: List[str] = []

    async def _fake_get_text(url: str, *, headers=None, timeout: float = 12.0) -> str:
        fetched.append(url)
        return SOURCE_PAGE

    monkeypatch.setattr(feeds, "_http_get_text", _fake_get_text)
    return fetched


@pytest.fixture
def build_orchestrator(source_pages):
    def _build(
        items: Optional[List[RawCandidate]] = None,
        *,
        llm: Optional[FakeLLM] = None,
        aggregator: Optional[FakeAggregator] = None,
        image_search: Optional[FakeImageSearch] = None,
        cdn: Optional[FakeCDN] = None,
        download_transport: Optional[httpx.AsyncBaseTransport] = None,
        **pipeline_overrides: Any,
    ) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            aggregator=aggregator or FakeAggregator(items),
            llm=llm or FakeLLM(pipeline_responder),
            image_search=image_search or FakeImageSearch(configured=False),
            cdn=cdn or FakeCDN(configured=False),
            store=InMemoryArticleStore(),
            settings=make_settings(**pipeline_overrides),
            download_transport=download_transport,
        )

    return _build
