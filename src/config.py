"""Pydantic Settings — loads configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "extra": "ignore"}

    redis_url: str = "redis://localhost:6379"

    # AI augmentation
    llm_provider: str = "openai"
    text_llm: str = "gpt-4o-mini"
    vision_llm: str = "gpt-4o-mini"
    ai_enabled: bool = True
    ai_timeout_seconds: float = 120.0
    ai_max_input_chars: int = 20000

    # Page fetching
    http_timeout_seconds: float = 30.0
    user_agent: str = "Mozilla/5.0 (compatible; Scraper/1.0)"

    # Image pipeline
    enable_image_analysis: bool = True
    max_image_size_bytes: int = 10 * 1024 * 1024
    image_timeout_seconds: float = 15.0
    image_concurrency: int = 1

    # Scoring
    link_score_threshold: float = 0.5

    # Batch / listing
    batch_max_urls: int = 50
    scrape_timeout_seconds: float = 600.0
    default_page_size: int = 20
    max_page_size: int = 100

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
