"""
Scrapers Module
"""
from .base import BaseScraper, RateLimitedScraper
from .google_images import GoogleImageSearchScraper, image_format

__all__ = [
    "BaseScraper",
    "RateLimitedScraper",
    "GoogleImageSearchScraper",
    "image_format",
]
