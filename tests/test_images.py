"""Image pipeline tests — downloads served by httpx.MockTransport."""

import asyncio
import base64
import time
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.api.schemas import ExtractedImage
from src.scraper.ai_client import Augmented, ImageAnalysis
from src.scraper.images import ImageDownloadError, ImagePipeline

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.startswith("/ok"):
        return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})
    if path == "/big":
        return httpx.Response(200, content=b"\x00" * 2048)
    if path == "/missing":
        return httpx.Response(404)
    raise httpx.ConnectError("unreachable", request=request)


def _ai(analysis: ImageAnalysis | None = None):
    ai = MagicMock()
    if analysis is None:
        ai.analyze_image = AsyncMock(return_value=Augmented(ImageAnalysis(), ai_used=False))
    else:
        ai.analyze_image = AsyncMock(return_value=Augmented(analysis, ai_used=True))
    return ai


def _pipeline(settings, ai, **overrides) -> ImagePipeline:
    cfg = settings.model_copy(
        update={"enable_image_analysis": True, "max_image_size_bytes": 1024, **overrides}
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    return ImagePipeline(cfg, client, ai)


def _images(*paths: str) -> list[ExtractedImage]:
    return [ExtractedImage(url=f"https://img.test{p}", alt_text=f"alt {p}") for p in paths]


@pytest.mark.asyncio
async def test_successful_image_gets_payload_and_analysis(settings):
    ai = _ai(ImageAnalysis(summary="A logo", tags=["logo", "brand"]))
    pipeline = _pipeline(settings, ai)

    [image] = await pipeline.process(_images("/ok.png"))

    assert image.id
    assert base64.b64decode(image.base64_data) == PNG
    assert image.summary == "A logo"
    assert image.tags == ["logo", "brand"]
    ai.analyze_image.assert_awaited_once_with(PNG, "alt /ok.png", "image/png")


@pytest.mark.asyncio
async def test_oversize_image_kept_without_payload(settings):
    ai = _ai(ImageAnalysis(summary="never"))
    pipeline = _pipeline(settings, ai)

    [image] = await pipeline.process(_images("/big"))

    assert image.url == "https://img.test/big"
    assert image.alt_text == "alt /big"
    assert image.base64_data == ""
    assert image.summary == ""
    ai.analyze_image.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_downloads_keep_discovery_order(settings):
    pipeline = _pipeline(settings, _ai(), image_concurrency=3)
    images = _images("/ok-1.png", "/missing", "/ok-2.png", "/down", "/big")

    result = await pipeline.process(images)

    assert [img.url for img in result] == [img.url for img in images]
    assert [bool(img.base64_data) for img in result] == [True, False, True, False, False]
    assert len({img.id for img in result}) == len(images)


@pytest.mark.asyncio
async def test_analysis_fallback_keeps_payload(settings):
    pipeline = _pipeline(settings, _ai())

    [image] = await pipeline.process(_images("/ok.png"))

    assert image.base64_data
    assert image.summary == ""
    assert image.tags == []


@pytest.mark.asyncio
async def test_disabled_pipeline_returns_images_unchanged(settings):
    ai = _ai()
    cfg = settings.model_copy(update={"enable_image_analysis": False})
    pipeline = ImagePipeline(cfg, httpx.AsyncClient(transport=httpx.MockTransport(_handler)), ai)
    images = _images("/ok.png")

    assert await pipeline.process(images) == images
    ai.analyze_image.assert_not_awaited()


@pytest.mark.asyncio
async def test_download_rejects_advertised_oversize(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"\x00" * 10, headers={"content-length": "999999"})

    cfg = settings.model_copy(update={"max_image_size_bytes": 1024})
    pipeline = ImagePipeline(cfg, httpx.AsyncClient(transport=httpx.MockTransport(handler)), _ai())

    with pytest.raises(ImageDownloadError, match="too large"):
        await pipeline.download("https://img.test/x")


@pytest.mark.asyncio
async def test_download_non_success_status(settings):
    pipeline = _pipeline(settings, _ai())
    with pytest.raises(ImageDownloadError, match="404"):
        await pipeline.download("https://img.test/missing")


@pytest.mark.asyncio
async def test_download_reports_media_type(settings):
    pipeline = _pipeline(settings, _ai())
    data, media_type = await pipeline.download("https://img.test/ok.png")
    assert data == PNG
    assert media_type == "image/png"


@pytest.mark.asyncio
async def test_slow_image_times_out_without_affecting_sibling(settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/slow.png":
            await asyncio.sleep(2)
        return httpx.Response(200, content=PNG, headers={"content-type": "image/png"})

    # Image deadline is separate from the page deadline
    cfg = settings.model_copy(
        update={
            "enable_image_analysis": True,
            "image_timeout_seconds": 0.1,
            "http_timeout_seconds": 30.0,
            "image_concurrency": 2,
        }
    )
    pipeline = ImagePipeline(cfg, httpx.AsyncClient(transport=httpx.MockTransport(handler)), _ai())

    start = time.perf_counter()
    slow, ok = await pipeline.process(_images("/slow.png", "/ok.png"))
    elapsed = time.perf_counter() - start

    assert elapsed < 1.5
    assert slow.id
    assert slow.url == "https://img.test/slow.png"
    assert slow.base64_data == ""
    assert ok.id
    assert base64.b64decode(ok.base64_data) == PNG
