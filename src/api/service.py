"""Service layer — the operations a transport (HTTP, worker, CLI) calls into."""

from __future__ import annotations

import asyncio
import logging

from src.api.schemas import (
    BatchResponse,
    ExtractedImage,
    LinkExtraction,
    LinkScore,
    RecordPage,
    ScrapedRecord,
)
from src.cache.redis import RecordStore
from src.config import Settings
from src.scraper.batch import BatchOrchestrator
from src.scraper.engine import ScrapeEngine
from src.scraper.errors import InvalidRequestError, ScrapeError
from src.scraper.events import EventCallback

logger = logging.getLogger(__name__)


def _require_url(url: str) -> str:
    if not url or not url.strip():
        raise InvalidRequestError("url is required")
    return url.strip()


class ScraperService:
    def __init__(
        self,
        settings: Settings,
        engine: ScrapeEngine,
        store: RecordStore,
        batch: BatchOrchestrator | None = None,
    ) -> None:
        self._settings = settings
        self._engine = engine
        self._store = store
        self._batch = batch or BatchOrchestrator(settings, engine, store)

    async def scrape(
        self, url: str, force: bool = False, on_event: EventCallback | None = None
    ) -> ScrapedRecord:
        """Return the stored record for *url*, scraping (and saving) it on a miss or when *force*.

        Scrape failures (including the overall time ceiling) propagate as
        :class:`~src.scraper.errors.ScrapeError`.
        A failed save is logged and the freshly scraped record is still returned.
        """
        url = _require_url(url)

        if not force:
            existing = await self._store.get_by_url(url)
            if existing is not None:
                logger.info("serving stored record", extra={"url": url, "record_id": existing.id})
                return existing.model_copy(update={"cached": True})

        timeout = self._settings.scrape_timeout_seconds
        try:
            record = await asyncio.wait_for(self._engine.scrape(url, on_event=on_event), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise ScrapeError(f"scrape timed out after {timeout}s", url=url) from exc

        if not await self._store.save(record):
            logger.warning("scraped record not persisted", extra={"url": url, "record_id": record.id})
        return record

    async def scrape_batch(self, urls: list[str], force: bool = False) -> BatchResponse:
        return await self._batch.run(urls, force=force)

    async def extract_links(self, url: str) -> LinkExtraction:
        url = _require_url(url)
        links = await self._engine.extract_links(url)
        return LinkExtraction(url=url, links=links, count=len(links))

    async def score_url(self, url: str) -> LinkScore:
        url = _require_url(url)
        return await self._engine.score_url(url)

    async def get_record(self, record_id: str) -> ScrapedRecord | None:
        record = await self._store.get_by_id(record_id)
        if record is None:
            return None
        return record.model_copy(update={"cached": True})

    async def list_records(self, limit: int | None = None, offset: int = 0) -> RecordPage:
        """Newest-first page of stored records. *limit* is clamped to ``[1, max_page_size]``."""
        if limit is None or limit <= 0:
            limit = self._settings.default_page_size
        limit = min(limit, self._settings.max_page_size)
        offset = max(offset, 0)

        records = await self._store.list_records(limit=limit, offset=offset)
        total = await self._store.count()
        return RecordPage(data=records, total=total, limit=limit, offset=offset)

    async def delete_record(self, record_id: str) -> bool:
        deleted = await self._store.delete_by_id(record_id)
        logger.info("record delete", extra={"record_id": record_id, "deleted": deleted})
        return deleted

    async def url_exists(self, url: str) -> bool:
        url = _require_url(url)
        return await self._store.exists(url)

    async def get_image(self, image_id: str) -> ExtractedImage | None:
        return await self._store.get_image(image_id)

    async def images_for_record(self, record_id: str) -> list[ExtractedImage]:
        """Images of one stored record, in discovery order."""
        return await self._store.images_for_record(record_id)

    async def search_images(self, tags: list[str]) -> list[ExtractedImage]:
        if not tags or not any(t.strip() for t in tags):
            raise InvalidRequestError("tags array is required and must not be empty")
        return await self._store.search_images_by_tags(tags)

    async def count(self) -> int:
        return await self._store.count()
