"""Source text extraction and LLM rewrite of one candidate into an ArticleDraft."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import random
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
import httpx

from config import PipelineSettings, get_pipeline_settings
from core import ArticleDraft, RawCandidate
from intelligence.llm import BaseLLM, Message
from sources import feeds
from utils.exceptions import ConfigurationError, LLMError

from .prompts import (
    ARTICLE_TEMPLATE,
    CATEGORY_AUTOMOTIVE,
    CATEGORY_ECONOMY,
    CATEGORY_GENERAL,
    COMPOSE_PROMPT,
    COMPOSE_SYSTEM_PROMPT,
    EMOTIONAL_KEYWORDS,
    FEED_CATEGORIES,
    PLACEHOLDERS,
    PUBLISHER_NAME,
    PUBLISHER_URL,
)


logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

CONTENT_SELECTORS = [
    "article",
    ".article-content",
    ".news-content",
    ".post-content",
    '[data-module="ArticleBody"]',
    ".story-body",
    "main p",
]
MIN_EXTRACTED_CHARS = 200
MAX_SOURCE_CHARS = 3000

EXTRACTION_EMPTY = "본문을 추출할 수 없습니다"
EXTRACTION_FAILED = "본문 추출 실패"
GENERATION_FAILED = "기사 생성에 실패했습니다."
DEFAULT_TAGS = ["뉴스", "일반"]
DEFAULT_SLUG = "news-article"

ECONOMY_CATEGORY_KEYWORDS = [
    "주식", "경제", "금리", "투자", "시장", "펀드", "주가", "재테크", "돈", "비트코인", "부동산", "증시",
    "금융", "은행", "외환", "환율", "원화", "달러", "기업", "실적", "수익", "매출", "영업이익", "ai",
    "채권", "상장", "코스피", "코스닥", "나스닥", "다우", "s&p", "기준금리", "인플레", "디플레이션",
    "세금", "유가", "물가", "가상화폐", "암호화폐", "전망", "etf", "테마주",
]
AUTOMOTIVE_CATEGORY_KEYWORDS = [
    "자동차", "신차", "전기차", "테슬라", "현대", "기아", "bmw", "벤츠", "도요타", "폭스바겐", "suv", "세단",
    "하이브리드", "자율주행", "모빌리티", "충전", "배터리", "출시", "엔진", "제네시스", "내연기관",
    "트렁크", "휠", "타이어", "연비", "주행", "운전", "정비", "마력", "토크", "판매량", "모델",
    "디젤", "가솔린", "lpg", "스포츠카", "ev", "리콜", "시승", "튜닝", "옵션", "트림",
]


def extract_main_text(html: str) -> str:
    """First selector whose combined text exceeds the minimum wins; '' when none does."""
    soup = BeautifulSoup(html, "lxml")
    for selector in CONTENT_SELECTORS:
        nodes = soup.select(selector)
        if not nodes:
            continue
        text = " ".join(node.get_text(" ", strip=True) for node in nodes)
        if len(text) > MIN_EXTRACTED_CHARS:
            return re.sub(r"\s+", " ", text).strip()[:MAX_SOURCE_CHARS]
    return ""


def article_category(feed_category: Optional[str]) -> str:
    """Article category for a feed label; unknown labels become the general category."""
    value = str(feed_category or "").strip()
    if value in EMOTIONAL_KEYWORDS:
        return value
    return FEED_CATEGORIES.get(value.lower(), CATEGORY_GENERAL)


def categorize(title: str, text: str, fallback_category: Optional[str] = None) -> str:
    combined = f"{title} {text}".lower()
    economy = sum(1 for keyword in ECONOMY_CATEGORY_KEYWORDS if keyword in combined)
    automotive = sum(1 for keyword in AUTOMOTIVE_CATEGORY_KEYWORDS if keyword in combined)
    if economy > automotive:
        return CATEGORY_ECONOMY
    if automotive > economy:
        return CATEGORY_AUTOMOTIVE
    return article_category(fallback_category)


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", str(value or "").lower()).strip("-")
    slug = re.sub(r"-{2,}", "-", slug)
    return slug or DEFAULT_SLUG


def build_structured_data(source_title: str, description: str, category: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """NewsArticle JSON-LD skeleton; image entries are placeholder tokens until publishing."""
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "@context": "https://schema.org",
        "@type": "NewsArticle",
        "headline": source_title,
        "description": description[:200],
        "datePublished": stamp,
        "dateModified": stamp,
        "author": {"@type": "Person", "name": f"{PUBLISHER_NAME} {category} 에디터"},
        "publisher": {
            "@type": "Organization",
            "name": PUBLISHER_NAME,
            "logo": {"@type": "ImageObject", "url": f"{PUBLISHER_URL}/logo.png"},
        },
        "image": list(PLACEHOLDERS[:3]),
        "mainEntityOfPage": {"@type": "WebPage", "@id": f"{PUBLISHER_URL}/articles/ARTICLE_SLUG"},
    }


def _strip_h1(title: str) -> str:
    return re.sub(r"</?h1[^>]*>", "", str(title or ""), flags=re.IGNORECASE).strip()


def _normalize_tags(value: Any) -> List[str]:
    if isinstance(value, str):
        value = re.split(r"[#,]", value)
    if not isinstance(value, list):
        return []
    tags = [str(tag).strip().lstrip("#").strip() for tag in value]
    return [tag for tag in tags if tag]


def _dedupe_placeholders(body_html: str) -> str:
    """Keep only the first image tag per placeholder token."""
    for token in PLACEHOLDERS:
        pattern = re.compile(rf"<img[^>]*src=[\"']?{token}[\"']?[^>]*>", re.IGNORECASE)
        matches = list(pattern.finditer(body_html))
        for match in reversed(matches[1:]):
            body_html = body_html[: match.start()] + body_html[match.end():]
    return body_html


def _strip_code_fence(text: str) -> str:
    stripped = str(text or "").strip()
    fence = re.match(r"^```(?:json)?\s*(.*?)\s*```$", stripped, flags=re.DOTALL)
    return fence.group(1) if fence else stripped


def parse_article_response(raw: str, candidate: RawCandidate, category: Optional[str] = None) -> ArticleDraft:
    """
    Turn the rewrite response into a complete draft.

    Strict JSON is tried first, then the legacy ``제목:/본문:/태그:`` line
    format. Missing fields fall back to the source title, a failure notice,
    and generic tags.
    """
    category = category or article_category(candidate.category)
    try:
        parsed = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict):
        structured = parsed.get("structuredData")
        if isinstance(structured, (dict, list)):
            structured = json.dumps(structured, ensure_ascii=False)
        return ArticleDraft(
            title=_strip_h1(parsed.get("title")) or candidate.title,
            body_html=_dedupe_placeholders(str(parsed.get("content") or "")) or GENERATION_FAILED,
            tags=_normalize_tags(parsed.get("tags")) or list(DEFAULT_TAGS),
            category=str(parsed.get("category") or "").strip() or category,
            slug=slugify(parsed.get("slug") or ""),
            structured_data=str(structured or "{}"),
        )

    logger.warning("Rewrite response is not JSON; using line format")
    title = ""
    body_lines: List[str] = []
    tags: List[str] = []
    in_body = False
    for line in str(raw or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("제목:"):
            title = stripped[len("제목:"):].strip()
        elif stripped.startswith("본문:"):
            in_body = True
        elif stripped.startswith("태그:"):
            tags = _normalize_tags(stripped[len("태그:"):].split("#"))
        elif in_body:
            body_lines.append(stripped)

    return ArticleDraft(
        title=_strip_h1(title) or candidate.title,
        body_html=_dedupe_placeholders("\n\n".join(body_lines)) or GENERATION_FAILED,
        tags=tags or list(DEFAULT_TAGS),
        category=category,
        slug=DEFAULT_SLUG,
        structured_data="{}",
    )


class ArticleComposer:
    """Rewrites one ranked candidate through the LLM using the fixed article template."""

    def __init__(
        self,
        llm: BaseLLM,
        settings: Optional[PipelineSettings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.llm = llm
        self.settings = settings or get_pipeline_settings()
        self._rng = rng or random.Random()

    async def extract_source_text(self, url: str) -> str:
        """Readable body text of the source page, or a sentinel string; never raises."""
        try:
            html = await feeds._http_get_text(
                url,
                headers={"User-Agent": BROWSER_USER_AGENT},
                timeout=self.settings.page_timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Source fetch failed for %s: %s", url, exc)
            return EXTRACTION_FAILED
        try:
            text = extract_main_text(html)
        except Exception as exc:
            logger.warning("Source parse failed for %s: %s", url, exc)
            return EXTRACTION_FAILED
        return text or EXTRACTION_EMPTY

    def sample_emotional_keywords(self, category: str, k: int = 3) -> List[str]:
        pool = EMOTIONAL_KEYWORDS.get(category) or EMOTIONAL_KEYWORDS[CATEGORY_GENERAL]
        return self._rng.sample(pool, min(k, len(pool)))

    def build_prompt(self, candidate: RawCandidate, source_text: str, category: str) -> str:
        structured = build_structured_data(candidate.title, source_text, category)
        return COMPOSE_PROMPT.format(
            publisher=PUBLISHER_NAME,
            template=ARTICLE_TEMPLATE,
            source_title=candidate.title,
            source_text=source_text[:1000],
            source_name=candidate.source_name,
            category=category,
            emotional_keywords=", ".join(self.sample_emotional_keywords(category)),
            structured_data=json.dumps(structured, ensure_ascii=False, indent=2),
        )

    async def compose(self, candidate: RawCandidate) -> ArticleDraft:
        """
        Produce a draft for ``candidate``.

        Raises:
            ConfigurationError: LLM credentials missing
            LLMError: the rewrite call failed
        """
        logger.info("Composing article for '%s'", candidate.title)
        source_text = await self.extract_source_text(candidate.link)
        category = categorize(candidate.title, source_text, candidate.category)
        prompt = self.build_prompt(candidate, source_text, category)

        try:
            response = await self.llm.acomplete(
                [Message.system(COMPOSE_SYSTEM_PROMPT), Message.user(prompt)],
                temperature=0.7,
                response_format={"type": "json_object"},
            )
        except ConfigurationError:
            raise
        except Exception as exc:
            raise LLMError(f"Article generation failed: {exc}", provider=self.llm.provider, title=candidate.title) from exc

        draft = parse_article_response(response.content, candidate, category)
        logger.info("Composed '%s' (%d chars, %d tags)", draft.title, len(draft.body_html), len(draft.tags))
        return draft
