"""AI client tests — model calls are mocked at the pydantic-ai Agent."""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.scraper.ai_client import AIClient, strip_code_fences, sniff_media_type


def _ai_settings(settings, **overrides):
    return settings.model_copy(update={"ai_enabled": True, **overrides})


def _mock_agent(mock_agent_cls, output=None, side_effect=None):
    result = MagicMock()
    result.output = output
    agent = AsyncMock()
    agent.run = AsyncMock(return_value=result, side_effect=side_effect)
    mock_agent_cls.return_value = agent
    return agent


# --- helpers (synchronous) ---


def test_strip_code_fences_json_block():
    assert strip_code_fences('```json\n["a"]\n```') == '["a"]'


def test_strip_code_fences_plain_text():
    assert strip_code_fences('  ["a"]  ') == '["a"]'


def test_strip_code_fences_unterminated():
    assert strip_code_fences('```\n{"x": 1}') == '{"x": 1}'


def test_sniff_media_type():
    assert sniff_media_type(b"\x89PNG\r\n\x1a\nrest") == "image/png"
    assert sniff_media_type(b"GIF89a...") == "image/gif"
    assert sniff_media_type(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_media_type(b"unknown") == "image/jpeg"


# --- disabled client never calls the model ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_disabled_client_uses_fallbacks(mock_agent_cls, settings):
    client = AIClient(settings)

    cleaned = await client.clean_content("raw text")
    links = await client.filter_links(["https://a.test"], "t", "c")
    image = await client.analyze_image(b"data")
    score = await client.score_content("https://a.test", "t", "c")

    assert (cleaned.value, cleaned.ai_used) == ("raw text", False)
    assert (links.value, links.ai_used) == (["https://a.test"], False)
    assert image.value.summary == "" and image.ai_used is False
    assert score.value is None and score.ai_used is False
    mock_agent_cls.assert_not_called()


# --- clean_content ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_clean_content_success(mock_agent_cls, settings):
    agent = _mock_agent(mock_agent_cls, output="  Clean article body  ")
    client = AIClient(_ai_settings(settings))

    result = await client.clean_content("Menu Home Clean article body Footer")

    assert result.value == "Clean article body"
    assert result.ai_used is True
    mock_agent_cls.assert_called_once_with("openai:gpt-4o-mini")
    prompt = agent.run.call_args.args[0]
    assert "Menu Home Clean article body Footer" in prompt


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_clean_content_failure_returns_raw(mock_agent_cls, settings):
    _mock_agent(mock_agent_cls, side_effect=RuntimeError("model down"))
    client = AIClient(_ai_settings(settings))

    result = await client.clean_content("raw text")

    assert result.value == "raw text"
    assert result.ai_used is False


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_clean_content_empty_reply_returns_raw(mock_agent_cls, settings):
    _mock_agent(mock_agent_cls, output="   ")
    client = AIClient(_ai_settings(settings))

    result = await client.clean_content("raw text")

    assert result.value == "raw text"
    assert result.ai_used is False


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_clean_content_blank_input_skips_model(mock_agent_cls, settings):
    client = AIClient(_ai_settings(settings))
    result = await client.clean_content("   ")
    assert result.ai_used is False
    mock_agent_cls.assert_not_called()


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_clean_content_truncates_long_input(mock_agent_cls, settings):
    agent = _mock_agent(mock_agent_cls, output="ok")
    client = AIClient(_ai_settings(settings, ai_max_input_chars=10))

    await client.clean_content("x" * 50)

    prompt = agent.run.call_args.args[0]
    assert "x" * 10 + "..." in prompt
    assert "x" * 11 not in prompt


# --- filter_links ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_filter_links_decodes_fenced_json(mock_agent_cls, settings):
    kept = ["https://a.test/article"]
    _mock_agent(mock_agent_cls, output=f"```json\n{json.dumps(kept)}\n```")
    client = AIClient(_ai_settings(settings))

    result = await client.filter_links(["https://a.test/article", "https://a.test/login"], "t", "c")

    assert result.value == kept
    assert result.ai_used is True


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_filter_links_bad_json_keeps_all(mock_agent_cls, settings):
    _mock_agent(mock_agent_cls, output="Here are the links you asked for")
    client = AIClient(_ai_settings(settings))
    links = ["https://a.test/1", "https://a.test/2"]

    result = await client.filter_links(links, "t", "c")

    assert result.value == links
    assert result.ai_used is False


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_filter_links_empty_input(mock_agent_cls, settings):
    client = AIClient(_ai_settings(settings))
    result = await client.filter_links([], "t", "c")
    assert result.value == []
    assert result.ai_used is False
    mock_agent_cls.assert_not_called()


# --- analyze_image ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_analyze_image_success(mock_agent_cls, settings):
    agent = _mock_agent(
        mock_agent_cls, output='{"summary": "A cat on a sofa", "tags": ["cat", "sofa"]}'
    )
    client = AIClient(_ai_settings(settings, vision_llm="gpt-4o"))

    result = await client.analyze_image(b"\x89PNG\r\n\x1a\n....", alt_text="pet photo")

    assert result.ai_used is True
    assert result.value.summary == "A cat on a sofa"
    assert result.value.tags == ["cat", "sofa"]
    mock_agent_cls.assert_called_once_with("openai:gpt-4o")
    prompt, image = agent.run.call_args.args[0]
    assert "pet photo" in prompt
    assert image.media_type == "image/png"


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_analyze_image_undecodable_reply(mock_agent_cls, settings):
    _mock_agent(mock_agent_cls, output="A cat, probably.")
    client = AIClient(_ai_settings(settings))

    result = await client.analyze_image(b"data")

    assert result.ai_used is False
    assert result.value.summary == ""
    assert result.value.tags == []


# --- score_content ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_score_content_success(mock_agent_cls, settings):
    reply = {"score": 0.85, "reason": "Detailed article", "categories": ["news"], "malicious_indicators": []}
    _mock_agent(mock_agent_cls, output=json.dumps(reply))
    client = AIClient(_ai_settings(settings))

    result = await client.score_content("https://a.test", "Title", "Body")

    assert result.ai_used is True
    assert result.value.score == 0.85
    assert result.value.categories == ["news"]


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_score_content_out_of_range_rejected(mock_agent_cls, settings):
    _mock_agent(mock_agent_cls, output='{"score": 7, "reason": "great"}')
    client = AIClient(_ai_settings(settings))

    result = await client.score_content("https://a.test", "Title", "Body")

    assert result.value is None
    assert result.ai_used is False


# --- timeouts ---


@pytest.mark.asyncio
@patch("src.scraper.ai_client.Agent")
async def test_slow_model_times_out_to_fallbacks(mock_agent_cls, settings):
    async def slow_run(*args, **kwargs):
        await asyncio.sleep(5)

    agent = MagicMock()
    agent.run = slow_run
    mock_agent_cls.return_value = agent
    client = AIClient(_ai_settings(settings, ai_timeout_seconds=0.05))

    start = time.perf_counter()
    cleaned = await client.clean_content("hello world")
    score = await client.score_content("https://a.test", "Title", "Body")
    elapsed = time.perf_counter() - start

    assert (cleaned.value, cleaned.ai_used) == ("hello world", False)
    assert (score.value, score.ai_used) == (None, False)
    assert elapsed < 2
