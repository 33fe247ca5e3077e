"""Service entrypoint — wires settings, logging, Redis, HTTP and AI clients into a ScraperService."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from src.api.service import ScraperService
from src.cache.redis import RecordStore, create_redis_client
from src.config import Settings, get_settings
from src.logging_config import setup_logging
from src.scraper.ai_client import AIClient
from src.scraper.batch import BatchOrchestrator
from src.scraper.engine import ScrapeEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncIterator[ScraperService]:
    settings = settings or get_settings()

    # Initialize logging FIRST so all subsequent operations produce JSON logs
    setup_logging(settings.log_level)
    logger.info("starting scraper service")

    redis_client = await create_redis_client(settings.redis_url)
    store = RecordStore(redis_client)

    http_client = httpx.AsyncClient(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )
    ai_client = AIClient(settings)
    engine = ScrapeEngine(settings, http_client, ai_client)
    service = ScraperService(settings, engine, store, BatchOrchestrator(settings, engine, store))

    logger.info(
        "scraper service ready",
        extra={
            "llm_provider": settings.llm_provider,
            "text_llm": settings.text_llm,
            "vision_llm": settings.vision_llm,
            "ai_enabled": settings.ai_enabled,
            "image_analysis": settings.enable_image_analysis,
        },
    )

    try:
        yield service
    finally:
        logger.info("shutting down scraper service")
        await http_client.aclose()
        await redis_client.aclose()
