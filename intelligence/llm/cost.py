"""Token usage accounting for LLM calls."""

from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional

from core import CostInfo

from .base import BaseLLM, LLMResponse, Message


# USD per 1K tokens
PROMPT_RATE_PER_1K = 0.00015
COMPLETION_RATE_PER_1K = 0.0006


def estimate_cost(prompt_tokens: int, completion_tokens: int) -> float:
    return prompt_tokens * PROMPT_RATE_PER_1K / 1000 + completion_tokens * COMPLETION_RATE_PER_1K / 1000


class CostTracker:
    """Running totals for one pipeline run (or any caller-chosen scope)."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.total_requests = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.estimated_cost = 0.0

    def record(self, usage: Optional[Dict[str, int]]) -> None:
        usage = usage or {}
        prompt = int(usage.get("prompt_tokens", 0) or 0)
        completion = int(usage.get("completion_tokens", 0) or 0)
        total = int(usage.get("total_tokens", 0) or 0) or prompt + completion
        with self._lock:
            self.total_requests += 1
            self.prompt_tokens += prompt
            self.completion_tokens += completion
            self.total_tokens += total
            self.estimated_cost += estimate_cost(prompt, completion)

    def snapshot(self) -> CostInfo:
        with self._lock:
            average = self.estimated_cost / self.total_requests if self.total_requests else 0.0
            return CostInfo(
                total_requests=self.total_requests,
                total_tokens=self.total_tokens,
                prompt_tokens=self.prompt_tokens,
                completion_tokens=self.completion_tokens,
                estimated_cost=round(self.estimated_cost, 6),
                average_cost_per_request=round(average, 6),
            )

    def merge(self, other: "CostTracker") -> None:
        snap = other.snapshot()
        with self._lock:
            self.total_requests += snap.total_requests
            self.prompt_tokens += snap.prompt_tokens
            self.completion_tokens += snap.completion_tokens
            self.total_tokens += snap.total_tokens
            self.estimated_cost += estimate_cost(snap.prompt_tokens, snap.completion_tokens)


class UsageTrackedLLM(BaseLLM):
    """Delegating LLM that feeds every response's usage into a CostTracker."""

    def __init__(self, inner: BaseLLM, tracker: CostTracker):
        super().__init__(inner.model, inner.temperature, inner.max_tokens, inner.timeout)
        self.inner = inner
        self.tracker = tracker

    @property
    def provider(self) -> str:
        return self.inner.provider

    def is_configured(self) -> bool:
        return self.inner.is_configured()

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        response = await self.inner.acomplete(messages, **kwargs)
        self.tracker.record(response.usage)
        return response

    async def aanalyze_image(self, image_url: str, prompt: str, system_prompt: Optional[str] = None, **kwargs) -> LLMResponse:
        response = await self.inner.aanalyze_image(image_url, prompt, system_prompt, **kwargs)
        self.tracker.record(response.usage)
        return response

    async def aclose(self) -> None:
        await self.inner.aclose()
