"""Concurrent batch scraping with per-URL cache lookup and isolated failures."""

from __future__ import annotations

import asyncio
import logging
import uuid

from src.api.schemas import BatchItemResult, BatchResponse, BatchSummary
from src.cache.redis import RecordStore
from src.config import Settings
from src.scraper.engine import ScrapeEngine
from src.scraper.errors import InvalidRequestError, ScrapeError

logger = logging.getLogger(__name__)


def summarize(results: list[BatchItemResult]) -> BatchSummary:
    summary = BatchSummary(total=len(results))
    for item in results:
        if not item.success:
            summary.failed += 1
        elif item.cached:
            summary.success += 1
            summary.cached += 1
        else:
            summary.success += 1
            summary.scraped += 1
    return summary


class BatchOrchestrator:
    """Fans a list of URLs out to one task each; results come back in input order."""

    def __init__(self, settings: Settings, engine: ScrapeEngine, store: RecordStore) -> None:
        self._engine = engine
        self._store = store
        self._max_urls = settings.batch_max_urls
        self._timeout = settings.scrape_timeout_seconds

    async def run(self, urls: list[str], force: bool = False) -> BatchResponse:
        if not urls:
            raise InvalidRequestError("urls array is required")
        if len(urls) > self._max_urls:
            raise InvalidRequestError(f"maximum {self._max_urls} URLs per batch")

        batch_id = uuid.uuid4().hex[:12]
        logger.info("batch started", extra={"batch_id": batch_id, "url_count": len(urls), "force": force})

        results: list[BatchItemResult] = list(
            await asyncio.gather(*(self._process(url, force, batch_id) for url in urls))
        )
        summary = summarize(results)

        logger.info("batch completed", extra={"batch_id": batch_id, **summary.model_dump()})
        return BatchResponse(results=results, summary=summary)

    async def _process(self, url: str, force: bool, batch_id: str) -> BatchItemResult:
        """Scrape one URL. Never raises; failures become the item's ``error``."""
        if not url.strip():
            return BatchItemResult(url=url, success=False, error="url is required")

        if not force:
            existing = await self._store.get_by_url(url)
            if existing is not None:
                return BatchItemResult(
                    url=url,
                    success=True,
                    data=existing.model_copy(update={"cached": True}),
                    cached=True,
                )

        try:
            record = await asyncio.wait_for(self._engine.scrape(url), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("batch item timed out", extra={"batch_id": batch_id, "url": url})
            return BatchItemResult(url=url, success=False, error=f"scrape timed out after {self._timeout}s")
        except ScrapeError as exc:
            return BatchItemResult(url=url, success=False, error=str(exc))
        except Exception as exc:
            logger.exception("batch item failed", extra={"batch_id": batch_id, "url": url})
            return BatchItemResult(url=url, success=False, error=f"unexpected error: {exc}")

        if not await self._store.save(record):
            logger.warning("scraped record not persisted", extra={"batch_id": batch_id, "url": url})

        return BatchItemResult(url=url, success=True, data=record, cached=False)
