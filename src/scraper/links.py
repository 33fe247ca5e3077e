"""Filters raw page anchors down to substantive-content links."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from src.scraper.ai_client import AIClient, Augmented
from src.scraper.extract import extract_links

logger = logging.getLogger(__name__)


class LinkSanitizer:
    """Extracts links and asks the model to drop navigation, ads and boilerplate.

    Falls back to the unfiltered list whenever the model is unavailable or
    answers with something other than a JSON list of URLs.
    """

    def __init__(self, ai_client: AIClient) -> None:
        self._ai = ai_client

    async def sanitize(
        self, doc: BeautifulSoup, base_url: str, title: str, content: str
    ) -> Augmented[list[str]]:
        raw_links = extract_links(doc, base_url)
        return await self.filter(raw_links, base_url, title, content)

    async def filter(
        self, raw_links: list[str], base_url: str, title: str, content: str
    ) -> Augmented[list[str]]:
        result = await self._ai.filter_links(raw_links, title, content)
        logger.debug(
            "links sanitized",
            extra={
                "url": base_url,
                "links_raw": len(raw_links),
                "links_kept": len(result.value),
                "ai_used": result.ai_used,
            },
        )
        return result
