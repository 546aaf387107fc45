"""
OpenAI LLM
Chat completions for article rewriting plus gpt-4o vision for image judging
"""
from typing import Any, Dict, List, Optional
import logging
import inspect

from utils.exceptions import ConfigurationError

from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)

_PASSTHROUGH = ("response_format",)


def _usage_dict(usage: Any) -> Dict[str, int]:
    return {
        key: int(getattr(usage, key, 0) or 0)
        for key in ("prompt_tokens", "completion_tokens", "total_tokens")
    }


class OpenAILLM(BaseLLM):
    """
    AsyncOpenAI-backed model.

    ``vision_model`` serves :meth:`aanalyze_image` and falls back to ``model``.
    A missing key only surfaces as ConfigurationError on the first request.
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        vision_model: Optional[str] = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 60.0,
    ):
        super().__init__(model, temperature=temperature, max_tokens=max_tokens, timeout=timeout)
        self.api_key = api_key
        self.base_url = base_url
        self.vision_model = vision_model or model
        self._client = None

    @property
    def provider(self) -> str:
        return "openai"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client_or_raise(self):
        if not self.api_key:
            raise ConfigurationError("OpenAI API key is not configured", {"env": "LLM_OPENAI_API_KEY"})
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._client_or_raise()

        params: Dict[str, Any] = {
            "model": kwargs.get("model") or self.model,
            "messages": [turn.to_dict() for turn in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        params.update({key: kwargs[key] for key in _PASSTHROUGH if kwargs.get(key)})

        completion = await client.chat.completions.create(**params)
        first = completion.choices[0]
        return LLMResponse(
            content=first.message.content or "",
            model=completion.model,
            usage=_usage_dict(completion.usage),
            finish_reason=first.finish_reason,
            raw_response=completion,
        )

    async def aanalyze_image(
        self,
        image_url: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> LLMResponse:
        kwargs.setdefault("model", self.vision_model)
        return await super().aanalyze_image(image_url, prompt, system_prompt, **kwargs)

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            closing = client.close()
            if inspect.isawaitable(closing):
                await closing
        except Exception as exc:
            logger.debug("OpenAI client close failed: %s", exc)
