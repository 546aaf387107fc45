"""
LLM Module
LLM abstraction with usage accounting
"""
from .base import BaseLLM, LLMResponse, Message, MessageRole
from .openai_llm import OpenAILLM
from .cost import CostTracker, UsageTrackedLLM, estimate_cost
from .factory import get_llm

__all__ = [
    "BaseLLM",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "CostTracker",
    "UsageTrackedLLM",
    "estimate_cost",
    "get_llm",
]
