"""
Base Scraper
Shared plumbing for outbound search providers (HTTP client, throttling, logging)
"""
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar
import asyncio
import logging
import time

import httpx


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseScraper(ABC, Generic[T]):
    """
    A search provider returning items of type ``T``.

    The ``httpx.AsyncClient`` is created on first request and released by
    :meth:`close` (or by leaving an ``async with`` block).
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def search(self, query: str, **kwargs) -> List[T]:
        ...

    def is_configured(self) -> bool:
        return True

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout), follow_redirects=True)
        return self._client

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _log_search(self, query: str, count: int) -> None:
        logger.info("[%s] '%s' -> %d results", self.name, query, count)

    def _log_error(self, message: str, error: Exception) -> None:
        logger.error("[%s] %s: %s", self.name, message, error)


class RateLimitedScraper(BaseScraper[T]):
    """Provider that keeps at least ``1 / requests_per_second`` between requests."""

    def __init__(self, requests_per_second: float = 1.0, timeout: float = 10.0):
        super().__init__(timeout=timeout)
        self._min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def _wait_for_rate_limit(self) -> None:
        async with self._lock:
            delay = self._next_slot - time.monotonic()
            if delay > 0:
                await asyncio.sleep(delay)
            self._next_slot = time.monotonic() + self._min_interval
