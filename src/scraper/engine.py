"""Scrape engine — validate -> fetch -> parse -> extract -> augment -> score pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from src.api.schemas import LinkScore, ScrapedRecord
from src.config import Settings
from src.scraper.ai_client import AIClient
from src.scraper.errors import FetchError, InvalidURLError, ScrapeError
from src.scraper.events import EventCallback, Stage, emit_stage
from src.scraper.extract import extract_page, extract_text, extract_title, parse_html
from src.scraper.images import ImagePipeline
from src.scraper.links import LinkSanitizer
from src.scraper.scoring import QualityScorer, build_scorer, score_content_rules

logger = logging.getLogger(__name__)

_VALID_SCHEMES = {"http", "https"}


def validate_url(url: str) -> str:
    """Return the trimmed URL, or raise :class:`InvalidURLError`."""
    url = url.strip()
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidURLError(f"invalid URL: {exc}", url=url) from exc
    if parsed.scheme not in _VALID_SCHEMES:
        raise InvalidURLError("URL must be http or https", url=url)
    if not hostname:
        raise InvalidURLError("invalid URL: missing host", url=url)
    return url


class ScrapeEngine:
    """Turns one URL into one :class:`ScrapedRecord`.

    Only validation, fetching and parsing can fail the operation. Every
    augmentation stage degrades to its deterministic fallback instead.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        ai_client: AIClient,
        *,
        scorer: QualityScorer | None = None,
        images: ImagePipeline | None = None,
        links: LinkSanitizer | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._ai = ai_client
        self._scorer = scorer or build_scorer(settings, ai_client)
        self._images = images or ImagePipeline(settings, client, ai_client)
        self._links = links or LinkSanitizer(ai_client)

    async def scrape(self, url: str, on_event: EventCallback | None = None) -> ScrapedRecord:
        """Run the full pipeline for *url*."""
        start = time.perf_counter()
        logger.info("scrape started", extra={"url": url})

        url, doc = await self._load(url, on_event)

        await self._stage(on_event, Stage.EXTRACTING, url)
        page = extract_page(doc, url)

        await self._stage(on_event, Stage.AUGMENTING, url)
        cleaned = await self._ai.clean_content(page.text)
        images = await self._images.process(page.images)
        links = await self._links.filter(page.links, url, page.title, cleaned.value)

        await self._stage(on_event, Stage.SCORING, url)
        score = await self._score(url, page.title, cleaned.value)

        now = datetime.now(timezone.utc)
        record = ScrapedRecord(
            id=str(uuid.uuid4()),
            url=url,
            title=page.title,
            content=cleaned.value,
            images=images,
            links=links.value,
            fetched_at=now,
            created_at=now,
            processing_time_seconds=time.perf_counter() - start,
            metadata=page.metadata,
            score=score,
        )
        await self._stage(on_event, Stage.DONE, url)

        logger.info(
            "scrape completed",
            extra={
                "url": url,
                "record_id": record.id,
                "content_length": len(record.content),
                "content_ai_used": cleaned.ai_used,
                "images": len(record.images),
                "links": len(record.links),
                "links_ai_used": links.ai_used,
                "score": score.score,
                "score_ai_used": score.ai_used,
                "duration_seconds": round(record.processing_time_seconds, 3),
            },
        )
        return record

    async def extract_links(self, url: str, on_event: EventCallback | None = None) -> list[str]:
        """Fetch *url* and return its substantive-content links."""
        url, doc = await self._load(url, on_event)
        await self._stage(on_event, Stage.EXTRACTING, url)
        title = extract_title(doc, fallback=url)
        text = extract_text(doc)

        await self._stage(on_event, Stage.AUGMENTING, url)
        cleaned = await self._ai.clean_content(text)
        links = await self._links.sanitize(doc, url, title, cleaned.value)
        await self._stage(on_event, Stage.DONE, url)
        return links.value

    async def score_url(self, url: str, on_event: EventCallback | None = None) -> LinkScore:
        """Fetch *url* and score its raw text for ingestion quality."""
        url, doc = await self._load(url, on_event)
        await self._stage(on_event, Stage.EXTRACTING, url)
        title = extract_title(doc, fallback=url)
        text = extract_text(doc)

        await self._stage(on_event, Stage.SCORING, url)
        score = await self._score(url, title, text)
        await self._stage(on_event, Stage.DONE, url)
        return score

    async def _load(self, url: str, on_event: EventCallback | None) -> tuple[str, BeautifulSoup]:
        """Validating -> Fetching -> Parsing; the only stages allowed to fail."""
        try:
            await self._stage(on_event, Stage.VALIDATING, url)
            url = validate_url(url)

            await self._stage(on_event, Stage.FETCHING, url)
            body = await self._fetch(url)

            await self._stage(on_event, Stage.PARSING, url)
            return url, parse_html(body, url)
        except ScrapeError as exc:
            logger.warning("scrape failed", extra={"url": url, "stage": exc.stage, "error": str(exc)})
            await emit_stage(on_event, Stage.FAILED, url, error=str(exc), failed_stage=exc.stage)
            raise

    async def _fetch(self, url: str) -> bytes:
        timeout = self._settings.http_timeout_seconds
        try:
            resp = await asyncio.wait_for(
                self._client.get(
                    url,
                    headers={"User-Agent": self._settings.user_agent},
                    follow_redirects=True,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise FetchError(f"failed to fetch URL: timed out after {timeout}s", url=url) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise FetchError(f"failed to fetch URL: {exc}", url=url) from exc

        if not resp.is_success:
            raise FetchError(f"HTTP error: {resp.status_code} {resp.reason_phrase}", url=url)
        return resp.content

    async def _score(self, url: str, title: str, content: str) -> LinkScore:
        assessment = await self._scorer.assess(url, title, content)
        if assessment is None:
            assessment = score_content_rules(url, title, content)
        return assessment.to_link_score(url, self._settings.link_score_threshold)

    async def _stage(self, on_event: EventCallback | None, stage: Stage, url: str) -> None:
        await emit_stage(on_event, stage, url)
