"""
Settings Configuration
Pydantic-based configuration for the news pipeline
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class LLMSettings(BaseSettings):
    """LLM provider configuration"""
    provider: str = Field(default="openai", description="LLM provider (only openai is supported)")
    model_name: str = Field(default="gpt-4o-mini", description="Chat model")
    vision_model_name: Optional[str] = Field(default=None, description="Image analysis model (defaults to model_name)")
    temperature: float = Field(default=0.7, description="Sampling temperature")
    max_tokens: int = Field(default=4096, description="Max generated tokens")
    timeout: float = Field(default=60.0, description="Request timeout (seconds)")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API Key")
    base_url: Optional[str] = Field(default=None, description="OpenAI-compatible base URL")

    class Config:
        env_prefix = "LLM_"


class ImageSearchSettings(BaseSettings):
    """Google Custom Search (image) configuration"""
    google_api_key: Optional[str] = Field(default=None, description="Google API Key")
    google_cx: Optional[str] = Field(default=None, description="Custom Search Engine ID")
    endpoint: str = Field(default="https://www.googleapis.com/customsearch/v1", description="Search endpoint")
    timeout: float = Field(default=10.0, description="Request timeout (seconds)")
    requests_per_second: float = Field(default=5.0, description="Client-side rate limit")

    class Config:
        env_prefix = "IMAGE_SEARCH_"


class CDNSettings(BaseSettings):
    """Cloudflare Images configuration"""
    account_id: Optional[str] = Field(default=None, description="Cloudflare account ID")
    api_token: Optional[str] = Field(default=None, description="Cloudflare Images API token")
    account_hash: Optional[str] = Field(default=None, description="imagedelivery.net account hash (defaults to account_id)")
    timeout: float = Field(default=60.0, description="Upload timeout (seconds)")
    download_timeout: float = Field(default=30.0, description="Source image download timeout (seconds)")

    class Config:
        env_prefix = "CLOUDFLARE_"


class PipelineSettings(BaseSettings):
    """Pipeline tuning"""
    # ranking
    keywords_per_category: int = Field(default=2, description="Rotating keywords per category")
    max_age_hours: int = Field(default=48, description="Reject items older than this")
    scoring_batch_size: int = Field(default=5, description="Items per LLM scoring batch")
    scoring_batch_delay: float = Field(default=1.0, description="Delay between scoring batches (seconds)")
    top_n: int = Field(default=5, description="Candidates kept after ranking")

    # generation
    article_limit: int = Field(default=3, description="Articles generated per run")
    candidate_delay: float = Field(default=0.5, description="Delay after each saved article (seconds)")
    feed_timeout: float = Field(default=10.0, description="Feed fetch timeout (seconds)")
    page_timeout: float = Field(default=10.0, description="Source page fetch timeout (seconds)")

    # images
    image_slots: int = Field(default=4, description="Image slots per article")
    image_candidate_target: int = Field(default=100, description="Candidates collected per slot")
    image_search_delay: float = Field(default=0.2, description="Delay between search calls (seconds)")
    image_judge_limit: int = Field(default=100, description="Max candidates judged per slot")
    image_judge_delay: float = Field(default=0.1, description="Delay between judge calls (seconds)")
    early_exit_score: float = Field(default=95.0, description="Judge score that ends judging early")
    early_exit_min_judged: int = Field(default=10, description="Judged images required before early exit")

    class Config:
        env_prefix = "PIPELINE_"


class StorageSettings(BaseSettings):
    """Article storage configuration"""
    backend: str = Field(default="json", description="Article store backend: json, memory")
    articles_path: str = Field(default="./data/articles.json", description="JSON store path")

    class Config:
        env_prefix = "STORAGE_"


class Settings(BaseSettings):
    """Root settings aggregating all sections"""

    llm: LLMSettings = Field(default_factory=LLMSettings)
    image_search: ImageSearchSettings = Field(default_factory=ImageSearchSettings)
    cdn: CDNSettings = Field(default_factory=CDNSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @classmethod
    def load_from_env_file(cls, env_path: Optional[Path] = None) -> "Settings":
        """Load settings, reading the given .env file first if it exists"""
        if env_path is None:
            # config/.env by default
            env_path = Path(__file__).parent / ".env"

        if env_path.exists():
            from dotenv import load_dotenv
            load_dotenv(env_path)

        return cls(
            llm=LLMSettings(),
            image_search=ImageSearchSettings(),
            cdn=CDNSettings(),
            pipeline=PipelineSettings(),
            storage=StorageSettings(),
        )


@lru_cache()
def get_settings() -> Settings:
    """Global settings singleton"""
    return Settings.load_from_env_file()


def get_llm_settings() -> LLMSettings:
    return get_settings().llm


def get_image_search_settings() -> ImageSearchSettings:
    return get_settings().image_search


def get_cdn_settings() -> CDNSettings:
    return get_settings().cdn


def get_pipeline_settings() -> PipelineSettings:
    return get_settings().pipeline


def get_storage_settings() -> StorageSettings:
    return get_settings().storage
