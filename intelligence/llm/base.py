"""
Base LLM
Provider-neutral chat/vision interface used by ranking, composing and image judging
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any, Union
from dataclasses import dataclass, field
from enum import Enum


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"


ContentPart = Dict[str, Any]


@dataclass
class Message:
    """One chat turn; ``content`` is text or a list of text/image parts"""
    role: MessageRole
    content: Union[str, List[ContentPart]]

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(MessageRole.USER, content)

    @classmethod
    def user_with_image(cls, text: str, image_url: str) -> "Message":
        parts: List[ContentPart] = [
            {"type": "text", "text": text},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]
        return cls(MessageRole.USER, parts)


@dataclass
class LLMResponse:
    content: str
    model: str
    # prompt_tokens / completion_tokens / total_tokens
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None

    @property
    def total_tokens(self) -> int:
        reported = int(self.usage.get("total_tokens", 0) or 0)
        if reported:
            return reported
        return int(self.usage.get("prompt_tokens", 0) or 0) + int(self.usage.get("completion_tokens", 0) or 0)


class BaseLLM(ABC):
    """
    Chat model used by the pipeline.

    Credentials are checked when a request is made, never at construction,
    so an orchestrator can be wired up before keys are present.
    """

    def __init__(self, model: str, temperature: float = 0.7, max_tokens: int = 4096, timeout: float = 60.0):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    @property
    @abstractmethod
    def provider(self) -> str:
        ...

    def is_configured(self) -> bool:
        return True

    @abstractmethod
    async def acomplete(self, messages: List[Message], **kwargs) -> LLMResponse:
        """
        Run one chat completion.

        Recognised kwargs: ``model``, ``temperature``, ``max_tokens`` and
        ``response_format`` (e.g. ``{"type": "json_object"}``).
        """

    async def aanalyze_image(
        self,
        image_url: str,
        prompt: str,
        system_prompt: Optional[str] = None,
        **kwargs,
    ) -> LLMResponse:
        """Ask the model about the picture at ``image_url``."""
        turns = [Message.system(system_prompt)] if system_prompt else []
        turns.append(Message.user_with_image(prompt, image_url))
        return await self.acomplete(turns, **kwargs)

    async def achat(self, user_message: str, system_prompt: Optional[str] = None, **kwargs) -> LLMResponse:
        turns = [Message.system(system_prompt)] if system_prompt else []
        turns.append(Message.user(user_message))
        return await self.acomplete(turns, **kwargs)

    async def aclose(self) -> None:
        """Release client resources; nothing to do by default."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.provider}:{self.model}>"
