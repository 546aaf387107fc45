"""
Custom Exceptions
Error hierarchy for the news pipeline

Every error carries a human message plus a ``details`` dict that ends up in
logs and in per-candidate error records.
"""
from typing import Any, Dict, Optional


class NewsPipelineError(Exception):
    """Base error"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def __str__(self):
        if not self.details:
            return self.message
        extra = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({extra})"


class ConfigurationError(NewsPipelineError):
    """A credential or setting needed for this call is missing"""


class FeedError(NewsPipelineError):
    """One RSS source could not be fetched or parsed"""

    def __init__(self, message: str, source: Optional[str] = None, **details):
        super().__init__(message, details)
        self.source = source


class _ProviderError(NewsPipelineError):
    def __init__(self, message: str, provider: Optional[str] = None, **details):
        super().__init__(message, details)
        self.provider = provider


class LLMError(_ProviderError):
    """Chat/vision model call failed"""


class ImageSearchError(_ProviderError):
    """Image search provider failed"""


class UploadError(NewsPipelineError):
    """Image download or CDN upload failed"""


class StorageError(NewsPipelineError):
    """Article store could not be read or written"""
