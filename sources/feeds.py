"""RSS feed aggregation: source rotation, fetching, parsing and dedup."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import hashlib
import html as html_lib
import logging
import random
import re
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from config import PipelineSettings, get_pipeline_settings
from core import FeedSource, RawCandidate
from utils.exceptions import FeedError


logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; NewsPipeline/1.0; +https://news.google.com)"

GOOGLE_NEWS_TOPIC = "https://news.google.com/rss?topic={topic}&hl=ko&gl=KR&ceid=KR:ko"
GOOGLE_NEWS_SEARCH = "https://news.google.com/rss/search?q={query}&hl=ko&gl=KR&ceid=KR:ko"

BASE_TOPICS: List[Tuple[str, str]] = [
    ("h", "headlines"),
    ("b", "business"),
    ("tc", "technology"),
]

ECONOMY_KEYWORD_POOL = [
    "주식", "증시", "코스피", "금리", "투자", "부동산",
    "비트코인", "환율", "경제", "금융", "기업실적", "영업이익",
]

AUTOMOTIVE_KEYWORD_POOL = [
    "현대자동차", "기아", "테슬라", "전기차", "자율주행", "신차",
    "BMW", "벤츠", "폭스바겐", "도요타", "배터리", "모빌리티",
]

KEYWORD_POOLS: Dict[str, List[str]] = {
    "economy": ECONOMY_KEYWORD_POOL,
    "automotive": AUTOMOTIVE_KEYWORD_POOL,
}


def _parse_datetime(value: Any) -> Optional[datetime]:
    text = str(value or "").strip()
    if not text:
        return None

    normalized = text.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(normalized)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        pass

    try:
        dt2 = parsedate_to_datetime(text)
        if dt2.tzinfo is None:
            dt2 = dt2.replace(tzinfo=timezone.utc)
        return dt2.astimezone(timezone.utc)
    except (TypeError, ValueError):
        return None


def _safe_truncate(text: str, max_len: int = 3000) -> str:
    value = re.sub(r"\s+", " ", str(text or "")).strip()
    if len(value) <= max_len:
        return value
    return value[: max_len - 3].rstrip() + "..."


def _strip_html(value: str) -> str:
    text = str(value or "")
    text = re.sub(r"<script[^>]*>.*?</script>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<style[^>]*>.*?</style>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_lib.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


async def _http_get_text(url: str, *, headers: Optional[Dict[str, str]] = None, timeout: float = 12.0) -> str:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        response = await client.get(url, headers=headers)
        response.raise_for_status()
        return str(response.text or "")


async def _http_get(url: str, *, timeout: float = 5.0) -> httpx.Response:
    async with httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True) as client:
        return await client.get(url, headers={"User-Agent": USER_AGENT})


def _rss_text(node: ET.Element, tag: str) -> str:
    child = node.find(tag)
    return str((child.text if child is not None else "") or "").strip()


def generate_article_id(link: str) -> str:
    """Stable id for a feed item, derived only from its link."""
    return f"rss_{hashlib.sha1(str(link or '').encode('utf-8')).hexdigest()[:12]}"


def clean_title(title: str) -> Tuple[str, Optional[str]]:
    """
    Strip markup from a feed title and split off a trailing publisher.

    Google News titles read ``"<headline> - <publisher>"``; the publisher is
    returned separately so it can serve as the source name.
    """
    text = _strip_html(title)
    match = re.match(r"^(?P<head>.+?)\s+-\s+(?P<pub>[^-]{1,40})$", text)
    if match:
        return match.group("head").strip(), match.group("pub").strip()
    return text, None


def select_rotating_keywords(
    pool: List[str],
    k: int,
    category: str,
    *,
    now: Optional[datetime] = None,
) -> List[str]:
    """
    Pick ``k`` keywords from ``pool``, stable within one clock hour.

    The seed is ``floor(epoch / 1h) + ord(category[0])`` so each category
    rotates independently and no state is kept between runs.
    """
    current = now or datetime.now(timezone.utc)
    hour_bucket = int(current.timestamp() // 3600)
    seed = hour_bucket + (ord(category[0]) if category else 0)
    count = max(0, min(int(k), len(pool)))
    return random.Random(seed).sample(list(pool), count)


def dedupe_candidates(candidates: Iterable[RawCandidate]) -> List[RawCandidate]:
    """Drop repeated links; the first occurrence wins."""
    seen = set()
    unique: List[RawCandidate] = []
    for item in candidates:
        if item.link in seen:
            continue
        seen.add(item.link)
        unique.append(item)
    return unique


def parse_feed(xml_text: str, source: FeedSource) -> List[RawCandidate]:
    """Parse RSS 2.0 XML into candidates. Raises ``ET.ParseError`` on malformed XML."""
    root = ET.fromstring(xml_text)
    channel = root.find("channel")
    channel_title = _rss_text(channel, "title") if channel is not None else ""

    items: List[RawCandidate] = []
    for entry in root.findall(".//item"):
        link = _rss_text(entry, "link")
        if not link:
            continue
        title, publisher = clean_title(_rss_text(entry, "title"))
        source_name = _rss_text(entry, "source") or publisher or channel_title or "Unknown"
        items.append(
            RawCandidate(
                id=generate_article_id(link),
                title=title,
                link=link,
                description=_strip_html(_rss_text(entry, "description")),
                published_at=_parse_datetime(_rss_text(entry, "pubDate")),
                source_name=source_name,
                category=source.category,
                feed_url=source.url,
            )
        )
    return items


class FeedAggregator:
    """Builds the feed list for a run and turns it into raw candidates."""

    def __init__(self, settings: Optional[PipelineSettings] = None):
        self.settings = settings or get_pipeline_settings()

    def generate_sources(self, *, now: Optional[datetime] = None) -> List[FeedSource]:
        sources = [
            FeedSource(url=GOOGLE_NEWS_TOPIC.format(topic=topic), label=f"google_news:{label}", category="general")
            for topic, label in BASE_TOPICS
        ]
        for category, pool in KEYWORD_POOLS.items():
            for keyword in select_rotating_keywords(pool, self.settings.keywords_per_category, category, now=now):
                sources.append(
                    FeedSource(
                        url=GOOGLE_NEWS_SEARCH.format(query=quote(keyword)),
                        label=f"google_news_search:{keyword}",
                        category=category,
                        keyword=keyword,
                    )
                )
        logger.info(
            "Feed sources: %d base + %d keyword",
            len(BASE_TOPICS),
            len(sources) - len(BASE_TOPICS),
        )
        return sources

    async def fetch_source(self, source: FeedSource) -> List[RawCandidate]:
        """Fetch and parse one feed; transport and XML failures become FeedError."""
        try:
            xml_text = await _http_get_text(
                source.url,
                headers={"User-Agent": USER_AGENT},
                timeout=self.settings.feed_timeout,
            )
            return parse_feed(xml_text, source)
        except (httpx.HTTPError, ET.ParseError, ValueError) as exc:
            raise FeedError(f"Feed fetch failed: {exc}", source=source.url) from exc

    async def fetch(self, sources: Optional[List[FeedSource]] = None) -> List[RawCandidate]:
        """Fetch every source in order; a failing source contributes nothing."""
        sources = sources if sources is not None else self.generate_sources()
        collected: List[RawCandidate] = []
        for source in sources:
            try:
                items = await self.fetch_source(source)
            except FeedError as exc:
                logger.warning("Feed %s failed: %s", exc.source, exc.message)
                continue
            logger.info("Feed %s: %d items", source.label or source.url, len(items))
            collected.extend(items)

        unique = dedupe_candidates(collected)
        logger.info("Fetched %d items, %d unique", len(collected), len(unique))
        return unique

    async def validate_feed(self, url: str) -> Dict[str, Any]:
        """Quick reachability/format probe for a feed URL."""
        try:
            response = await _http_get(url, timeout=5.0)
        except httpx.HTTPError as exc:
            logger.warning("Feed validation failed for %s: %s", url, exc)
            return {"valid": False, "status_code": None, "item_count": 0, "error": str(exc)}

        content_type = response.headers.get("content-type", "")
        item_count = 0
        error = None
        try:
            item_count = len(ET.fromstring(response.text).findall(".//item"))
        except ET.ParseError as exc:
            error = f"xml_parse_error: {exc}"

        valid = response.status_code == 200 and error is None and ("xml" in content_type or "rss" in content_type or item_count > 0)
        return {
            "valid": valid,
            "status_code": response.status_code,
            "content_type": content_type,
            "item_count": item_count,
            "error": error,
        }
