"""
Utils Module
Logging and error types
"""
from .logger import configure_root_logging
from .exceptions import (
    NewsPipelineError,
    ConfigurationError,
    FeedError,
    LLMError,
    ImageSearchError,
    UploadError,
    StorageError,
)

__all__ = [
    "configure_root_logging",
    "NewsPipelineError",
    "ConfigurationError",
    "FeedError",
    "LLMError",
    "ImageSearchError",
    "UploadError",
    "StorageError",
]
