"""
Intelligence Module
LLM access for scoring, rewriting and image judging
"""
from .llm import (
    BaseLLM,
    CostTracker,
    LLMResponse,
    Message,
    OpenAILLM,
    UsageTrackedLLM,
    get_llm,
)

__all__ = [
    "BaseLLM",
    "CostTracker",
    "LLMResponse",
    "Message",
    "OpenAILLM",
    "UsageTrackedLLM",
    "get_llm",
]
