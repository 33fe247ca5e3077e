"""Scrape stage progress, reported to an optional async callback."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Coroutine

logger = logging.getLogger(__name__)

STAGE_EVENT = "stage"

# Async callback receiving (event_name, payload); the payload comes from stage_payload().
EventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class Stage(str, Enum):
    VALIDATING = "validating"
    FETCHING = "fetching"
    PARSING = "parsing"
    EXTRACTING = "extracting"
    AUGMENTING = "augmenting"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


def stage_payload(
    stage: Stage, url: str, error: str | None = None, failed_stage: str | None = None
) -> dict[str, Any]:
    """``{"stage", "url"}``; a FAILED payload also carries ``error`` and ``failed_stage``."""
    payload: dict[str, Any] = {"stage": stage.value, "url": url}
    if stage is Stage.FAILED:
        payload["error"] = error or ""
        payload["failed_stage"] = failed_stage or ""
    return payload


async def emit_stage(
    on_event: EventCallback | None,
    stage: Stage,
    url: str,
    *,
    error: str | None = None,
    failed_stage: str | None = None,
) -> None:
    if on_event is None:
        return
    logger.debug("scrape stage", extra={"stage": stage.value, "url": url})
    await on_event(STAGE_EVENT, stage_payload(stage, url, error, failed_stage))
