"""Fixtures — in-memory Redis store, settings, record factory."""

import uuid
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis

from src.api.schemas import ExtractedImage, ScrapedRecord
from src.cache.redis import RecordStore
from src.config import Settings


@pytest_asyncio.fixture
async def record_store():
    """RecordStore backed by an in-memory FakeRedis instance."""
    client = FakeRedis(decode_responses=True)
    store = RecordStore(client)
    yield store
    await client.aclose()


@pytest.fixture
def settings() -> Settings:
    """Offline settings: AI and image analysis off, short timeouts."""
    return Settings(
        ai_enabled=False,
        enable_image_analysis=False,
        http_timeout_seconds=5.0,
        image_timeout_seconds=5.0,
        scrape_timeout_seconds=5.0,
    )


def make_record(url: str = "https://example.com/article", **overrides) -> ScrapedRecord:
    now = datetime.now(timezone.utc)
    defaults = dict(
        id=str(uuid.uuid4()),
        url=url,
        title="Example Article",
        content="Some article text",
        images=[],
        links=["https://example.com/other"],
        fetched_at=now,
        created_at=now,
    )
    defaults.update(overrides)
    return ScrapedRecord(**defaults)


def make_image(tags: list[str], url: str = "https://example.com/img.png") -> ExtractedImage:
    return ExtractedImage(
        id=str(uuid.uuid4()),
        url=url,
        alt_text="an image",
        summary="A picture",
        tags=tags,
        base64_data="aGVsbG8=",
    )
