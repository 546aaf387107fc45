"""
Configuration Management Module
Central settings for feeds, LLM, image search, CDN and storage
"""
from .settings import (
    CDNSettings,
    ImageSearchSettings,
    LLMSettings,
    PipelineSettings,
    Settings,
    StorageSettings,
    get_cdn_settings,
    get_image_search_settings,
    get_llm_settings,
    get_pipeline_settings,
    get_settings,
    get_storage_settings,
)

__all__ = [
    "CDNSettings",
    "ImageSearchSettings",
    "LLMSettings",
    "PipelineSettings",
    "Settings",
    "StorageSettings",
    "get_cdn_settings",
    "get_image_search_settings",
    "get_llm_settings",
    "get_pipeline_settings",
    "get_settings",
    "get_storage_settings",
]
