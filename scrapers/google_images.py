"""
Google Images Scraper
Image search through the Google Custom Search JSON API
"""
from typing import Any, Dict, List, Optional
import logging
import re

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import ImageSearchSettings, get_image_search_settings
from core import ImageCandidate
from scrapers.base import RateLimitedScraper
from utils.exceptions import ConfigurationError, ImageSearchError


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 10

_MIME_FORMATS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def image_format(link: str, mime: Optional[str] = None) -> str:
    """Lower-case file format from the mime type, else the URL extension."""
    if mime and mime.lower() in _MIME_FORMATS:
        return _MIME_FORMATS[mime.lower()]
    match = re.search(r"\.([a-zA-Z0-9]+)(?:\?|#|$)", str(link or ""))
    return match.group(1).lower() if match else ""


class GoogleImageSearchScraper(RateLimitedScraper[ImageCandidate]):
    """
    Google Custom Search image provider

    Results come back unscored and ungated; quality gating happens in the
    image sourcing engine.
    """

    def __init__(self, settings: Optional[ImageSearchSettings] = None):
        self._search_settings = settings or get_image_search_settings()
        super().__init__(
            requests_per_second=self._search_settings.requests_per_second,
            timeout=self._search_settings.timeout,
        )

    @property
    def name(self) -> str:
        return "GoogleImages"

    def is_configured(self) -> bool:
        return bool(self._search_settings.google_api_key and self._search_settings.google_cx)

    async def search(
        self,
        query: str,
        *,
        size: Optional[str] = None,
        image_type: str = "photo",
        safe: str = "medium",
        file_types: str = "jpg,png,webp",
        num: int = MAX_PAGE_SIZE,
        start: int = 1,
    ) -> List[ImageCandidate]:
        """
        Fetch one page (at most 10 results) of image results.

        Args:
            query: search terms
            size: imgSize filter (large, medium, ...); None for unconstrained
            image_type: imgType filter
            safe: SafeSearch level
            file_types: comma-separated fileType filter
            num: page size, clamped to 1..10
            start: 1-based result offset for pagination

        Raises:
            ConfigurationError: API key or engine id missing
            ImageSearchError: request failed after retries
        """
        if not self.is_configured():
            raise ConfigurationError(
                "Google Custom Search is not configured",
                {"env": ["IMAGE_SEARCH_GOOGLE_API_KEY", "IMAGE_SEARCH_GOOGLE_CX"]},
            )

        params: Dict[str, Any] = {
            "key": self._search_settings.google_api_key,
            "cx": self._search_settings.google_cx,
            "q": query,
            "searchType": "image",
            "safe": safe,
            "imgType": image_type,
            "fileType": file_types,
            "num": max(1, min(int(num), MAX_PAGE_SIZE)),
            "start": max(1, int(start)),
        }
        if size:
            params["imgSize"] = size

        await self._wait_for_rate_limit()
        try:
            payload = await self._fetch_page(params)
        except httpx.HTTPError as exc:
            self._log_error(f"Search failed for '{query}'", exc)
            raise ImageSearchError(f"Image search failed: {exc}", provider=self.name, query=query) from exc

        results = [self._convert_item(item) for item in payload.get("items") or [] if item.get("link")]
        self._log_search(query, len(results))
        return results

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _fetch_page(self, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._get_client().get(self._search_settings.endpoint, params=params)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _convert_item(item: Dict[str, Any]) -> ImageCandidate:
        image = item.get("image") or {}
        link = str(item.get("link") or "")
        return ImageCandidate(
            title=str(item.get("title") or ""),
            link=link,
            thumbnail_link=image.get("thumbnailLink"),
            context_link=image.get("contextLink"),
            width=int(image.get("width") or 0),
            height=int(image.get("height") or 0),
            byte_size=int(image.get("byteSize") or 0),
            format=image_format(link, item.get("mime")),
        )
