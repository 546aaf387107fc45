"""
LLM Factory
Build the pipeline's model from LLM_* settings
"""
from typing import Optional
import logging

from .base import BaseLLM
from .openai_llm import OpenAILLM


logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai",)


def get_llm(provider: Optional[str] = None, model: Optional[str] = None, **overrides) -> BaseLLM:
    """
    Return the configured model, e.g. ``get_llm()`` or ``get_llm(model="gpt-4o", temperature=0.3)``.

    Explicit keyword overrides win over settings; ``api_key=None`` is treated
    as "use the configured key".
    """
    from config import get_llm_settings

    cfg = get_llm_settings()
    provider = (provider or cfg.provider).lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    llm = OpenAILLM(
        model=model or cfg.model_name,
        api_key=overrides.get("api_key") or cfg.openai_api_key,
        base_url=overrides.get("base_url") or cfg.base_url,
        vision_model=overrides.get("vision_model") or cfg.vision_model_name,
        temperature=overrides.get("temperature", cfg.temperature),
        max_tokens=overrides.get("max_tokens", cfg.max_tokens),
        timeout=overrides.get("timeout", cfg.timeout),
    )
    logger.debug("Built %r", llm)
    return llm
