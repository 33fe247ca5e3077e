"""Image pipeline — bounded download and AI captioning for extracted images."""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid

import httpx

from src.api.schemas import ExtractedImage
from src.config import Settings
from src.scraper.ai_client import AIClient

logger = logging.getLogger(__name__)


class ImageDownloadError(Exception):
    """Image could not be fetched within the configured bounds."""


class ImagePipeline:
    """Downloads each image under a byte and time ceiling, then asks the vision model about it.

    A failed download or analysis never drops an image: the entry keeps its
    id, URL and alt text and simply lacks payload and/or AI fields. Output
    order always equals input (discovery) order.
    """

    def __init__(self, settings: Settings, client: httpx.AsyncClient, ai_client: AIClient) -> None:
        self._client = client
        self._ai = ai_client
        self._enabled = settings.enable_image_analysis
        self._max_bytes = settings.max_image_size_bytes
        self._timeout = settings.image_timeout_seconds
        self._concurrency = max(1, settings.image_concurrency)
        self._user_agent = settings.user_agent

    async def process(self, images: list[ExtractedImage]) -> list[ExtractedImage]:
        if not self._enabled:
            logger.info("image analysis disabled", extra={"images": len(images)})
            return images
        if not images:
            return []

        semaphore = asyncio.Semaphore(self._concurrency)

        async def bounded(index: int, image: ExtractedImage) -> ExtractedImage:
            async with semaphore:
                return await self._process_one(index, len(images), image)

        return list(await asyncio.gather(*(bounded(i, img) for i, img in enumerate(images))))

    async def _process_one(self, index: int, total: int, image: ExtractedImage) -> ExtractedImage:
        image = image.model_copy(update={"id": str(uuid.uuid4())})
        logger.debug("processing image", extra={"position": index + 1, "total": total, "image_url": image.url})

        try:
            data, media_type = await asyncio.wait_for(self.download(image.url), timeout=self._timeout)
        except Exception:
            logger.warning("image download failed", extra={"image_url": image.url}, exc_info=True)
            return image

        image = image.model_copy(update={"base64_data": base64.b64encode(data).decode("ascii")})

        result = await self._ai.analyze_image(data, image.alt_text, media_type)
        if not result.ai_used:
            return image

        logger.debug(
            "image analyzed",
            extra={"image_url": image.url, "summary_chars": len(result.value.summary), "tags": len(result.value.tags)},
        )
        return image.model_copy(update={"summary": result.value.summary, "tags": list(result.value.tags)})

    async def download(self, url: str) -> tuple[bytes, str | None]:
        """Fetch *url* with a capped read. Returns (bytes, image media type or None)."""
        async with self._client.stream(
            "GET",
            url,
            headers={"User-Agent": self._user_agent},
            follow_redirects=True,
            timeout=self._timeout,
        ) as resp:
            if not resp.is_success:
                raise ImageDownloadError(f"HTTP error: {resp.status_code}")

            advertised = resp.headers.get("content-length", "")
            if advertised.isdigit() and int(advertised) > self._max_bytes:
                raise ImageDownloadError(
                    f"image too large: {advertised} bytes (max: {self._max_bytes})"
                )

            buf = bytearray()
            async for chunk in resp.aiter_bytes():
                buf.extend(chunk)
                if len(buf) > self._max_bytes:
                    raise ImageDownloadError(f"image too large: exceeds {self._max_bytes} bytes")

            content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
            media_type = content_type if content_type.startswith("image/") else None
            return bytes(buf), media_type
