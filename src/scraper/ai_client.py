"""AI augmentation client — PydanticAI text/vision calls with per-capability fallbacks.

Every public capability returns an :class:`Augmented` value and never raises:
model failures, timeouts and undecodable responses all resolve to the
capability's deterministic default with ``ai_used=False``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from pydantic_ai import Agent, BinaryContent

from src.config import Settings
from src.scraper.prompts import (
    format_analyze_image_prompt,
    format_clean_content_prompt,
    format_filter_links_prompt,
    format_score_content_prompt,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LINK_LIST = TypeAdapter(list[str])

_IMAGE_SIGNATURES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
)


@dataclass(frozen=True)
class Augmented(Generic[T]):
    """A capability result plus whether the model produced it."""

    value: T
    ai_used: bool


class ImageAnalysis(BaseModel):
    summary: str = ""
    tags: list[str] = []


class ContentAssessment(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    categories: list[str] = []
    malicious_indicators: list[str] = []


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```), if any."""
    text = text.strip()
    if not text.startswith("```"):
        return text
    lines = text.splitlines()
    closed = len(lines) > 1 and lines[-1].strip().startswith("```")
    body = lines[1:-1] if closed else lines[1:]
    return "\n".join(body).strip()


def sniff_media_type(data: bytes) -> str:
    """Best-effort image MIME type from magic bytes; defaults to JPEG."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    for signature, media_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return media_type
    return "image/jpeg"


class AIClient:
    """Text and vision model access for the scrape pipeline."""

    def __init__(self, settings: Settings) -> None:
        self._enabled = settings.ai_enabled
        self._timeout = settings.ai_timeout_seconds
        self._max_chars = settings.ai_max_input_chars
        self._text_model = f"{settings.llm_provider}:{settings.text_llm}"
        self._vision_model = f"{settings.llm_provider}:{settings.vision_llm}"

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def generate(self, prompt: str) -> str:
        """Single text-generation call. Raises on failure or timeout."""
        agent = Agent(self._text_model)
        result = await asyncio.wait_for(agent.run(prompt), timeout=self._timeout)
        return result.output

    async def generate_with_vision(
        self, prompt: str, image_data: bytes, media_type: str | None = None
    ) -> str:
        """Single vision call with one image. Raises on failure or timeout."""
        agent = Agent(self._vision_model)
        image = BinaryContent(data=image_data, media_type=media_type or sniff_media_type(image_data))
        result = await asyncio.wait_for(agent.run([prompt, image]), timeout=self._timeout)
        return result.output

    async def clean_content(self, raw_text: str) -> Augmented[str]:
        """Strip navigation/ads/boilerplate from page text. Fallback: *raw_text*."""
        if not self._enabled or not raw_text.strip():
            return Augmented(raw_text, ai_used=False)

        try:
            response = await self.generate(format_clean_content_prompt(raw_text, self._max_chars))
        except Exception:
            logger.warning("content cleaning failed, using raw text", exc_info=True)
            return Augmented(raw_text, ai_used=False)

        cleaned = response.strip()
        if not cleaned:
            logger.warning("content cleaning returned empty text, using raw text")
            return Augmented(raw_text, ai_used=False)
        return Augmented(cleaned, ai_used=True)

    async def filter_links(
        self, links: list[str], title: str, content: str
    ) -> Augmented[list[str]]:
        """Keep only substantive-content links. Fallback: *links* unchanged."""
        if not links:
            return Augmented([], ai_used=False)
        if not self._enabled:
            return Augmented(list(links), ai_used=False)

        prompt = format_filter_links_prompt(json.dumps(links), title, content, self._max_chars)
        try:
            response = await self.generate(prompt)
        except Exception:
            logger.warning("link filtering failed, keeping all links", extra={"links": len(links)}, exc_info=True)
            return Augmented(list(links), ai_used=False)

        try:
            filtered = _LINK_LIST.validate_json(strip_code_fences(response))
        except ValidationError:
            logger.warning(
                "link filter response not a JSON list, keeping all links",
                extra={"links": len(links), "response": response[:200]},
            )
            return Augmented(list(links), ai_used=False)

        logger.debug("links filtered", extra={"links_in": len(links), "links_out": len(filtered)})
        return Augmented(filtered, ai_used=True)

    async def analyze_image(
        self, image_data: bytes, alt_text: str = "", media_type: str | None = None
    ) -> Augmented[ImageAnalysis]:
        """Caption and tag an image. Fallback: empty summary and tags."""
        if not self._enabled:
            return Augmented(ImageAnalysis(), ai_used=False)

        try:
            response = await self.generate_with_vision(
                format_analyze_image_prompt(alt_text), image_data, media_type
            )
        except Exception:
            logger.warning("image analysis failed", exc_info=True)
            return Augmented(ImageAnalysis(), ai_used=False)

        try:
            analysis = ImageAnalysis.model_validate_json(strip_code_fences(response))
        except ValidationError:
            logger.warning("image analysis response not valid JSON", extra={"response": response[:200]})
            return Augmented(ImageAnalysis(), ai_used=False)
        return Augmented(analysis, ai_used=True)

    async def score_content(
        self, url: str, title: str, content: str
    ) -> Augmented[ContentAssessment | None]:
        """Assess page quality. Fallback value is ``None``; callers substitute the rule-based score."""
        if not self._enabled:
            return Augmented(None, ai_used=False)

        try:
            response = await self.generate(
                format_score_content_prompt(url, title, content, self._max_chars)
            )
        except Exception:
            logger.warning("content scoring failed", extra={"url": url}, exc_info=True)
            return Augmented(None, ai_used=False)

        try:
            assessment = ContentAssessment.model_validate_json(strip_code_fences(response))
        except ValidationError:
            logger.warning(
                "content score response not valid JSON",
                extra={"url": url, "response": response[:200]},
            )
            return Augmented(None, ai_used=False)
        return Augmented(assessment, ai_used=True)
