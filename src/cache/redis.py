"""Redis record store — URL-keyed atomic upsert, child image rows, tag search.

Layout (all keys under ``KEY_PREFIX``):

- ``record:{id}``          hash: url, data (record JSON), created_at, updated_at
- ``url:{normalized_url}`` string: id of the single record stored for that URL
- ``records``              sorted set: record ids scored by created_at
- ``record:{id}:images``   list: image ids in discovery order
- ``image:{id}``           hash: record_id, url, alt_text, summary, tags, base64_data, created_at
- ``images``               sorted set: image ids scored by created_at
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as redis
from pydantic import ValidationError
from redis.backoff import ExponentialBackoff
from redis.exceptions import WatchError
from redis.retry import Retry

from src.api.schemas import ExtractedImage, ScrapedRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "scraper:"
RECORDS_INDEX = f"{KEY_PREFIX}records"
IMAGES_INDEX = f"{KEY_PREFIX}images"


def normalize_url(url: str) -> str:
    """Canonical form used as the uniqueness key for a URL."""
    url = url.strip()
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.netloc:
        return url
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", parts.query, "")
    )


def tags_match(query_tags: list[str], stored_tags: list[str]) -> bool:
    """True if any query tag is a case-insensitive substring of any stored tag, or vice versa."""
    stored = [t.lower() for t in stored_tags if t.strip()]
    for query in query_tags:
        q = query.lower()
        if any(q in tag or tag in q for tag in stored):
            return True
    return False


def _record_key(record_id: str) -> str:
    return f"{KEY_PREFIX}record:{record_id}"


def _record_images_key(record_id: str) -> str:
    return f"{KEY_PREFIX}record:{record_id}:images"


def _image_key(image_id: str) -> str:
    return f"{KEY_PREFIX}image:{image_id}"


def _url_key(url: str) -> str:
    return f"{KEY_PREFIX}url:{normalize_url(url)}"


def _image_from_hash(image_id: str, row: dict[str, str]) -> ExtractedImage:
    raw_tags = row.get("tags") or "[]"
    tags = json.loads(raw_tags)
    return ExtractedImage(
        id=image_id,
        url=row.get("url", ""),
        alt_text=row.get("alt_text", ""),
        summary=row.get("summary", ""),
        tags=tags if isinstance(tags, list) else [],
        base64_data=row.get("base64_data", ""),
    )


class RecordStore:
    """Async Redis persistence for scraped records. Holds at most one record per URL."""

    def __init__(self, client: redis.Redis, max_save_attempts: int = 5) -> None:
        self._client = client
        self._max_save_attempts = max_save_attempts

    async def save(self, record: ScrapedRecord) -> bool:
        """Upsert *record* and replace its images in one transaction. Returns ``False`` on error."""
        url_key = _url_key(record.url)
        record_key = _record_key(record.id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for attempt in range(1, self._max_save_attempts + 1):
                    try:
                        now = datetime.now(timezone.utc)
                        await pipe.watch(url_key, record_key)

                        previous_id = await pipe.get(url_key)
                        created_at = record.created_at.isoformat()
                        superseded_images: list[str] = []
                        if previous_id:
                            created_at = await pipe.hget(_record_key(previous_id), "created_at") or created_at
                            if previous_id != record.id:
                                superseded_images = await pipe.lrange(_record_images_key(previous_id), 0, -1)
                        existing_images = await pipe.lrange(_record_images_key(record.id), 0, -1)

                        stored = record.model_copy(
                            update={"created_at": datetime.fromisoformat(created_at)}
                        )

                        pipe.multi()
                        if previous_id and previous_id != record.id:
                            self._queue_delete(pipe, previous_id, superseded_images)
                        self._queue_delete_images(pipe, record.id, existing_images)

                        pipe.hset(
                            record_key,
                            mapping={
                                "url": record.url,
                                "data": stored.model_dump_json(),
                                "created_at": created_at,
                                "updated_at": now.isoformat(),
                            },
                        )
                        pipe.set(url_key, record.id)
                        pipe.zadd(RECORDS_INDEX, {record.id: datetime.fromisoformat(created_at).timestamp()})

                        for image in record.images:
                            if not image.id:
                                continue
                            pipe.hset(
                                _image_key(image.id),
                                mapping={
                                    "record_id": record.id,
                                    "url": image.url,
                                    "alt_text": image.alt_text,
                                    "summary": image.summary,
                                    "tags": json.dumps(image.tags),
                                    "base64_data": image.base64_data,
                                    "created_at": now.isoformat(),
                                },
                            )
                            pipe.rpush(_record_images_key(record.id), image.id)
                            pipe.zadd(IMAGES_INDEX, {image.id: now.timestamp()})

                        await pipe.execute()
                        logger.debug(
                            "record saved",
                            extra={
                                "record_id": record.id,
                                "url": record.url,
                                "superseded_id": previous_id if previous_id != record.id else None,
                                "images": len(record.images),
                            },
                        )
                        return True
                    except WatchError:
                        logger.debug("record save conflict, retrying", extra={"url": record.url, "attempt": attempt})
                        continue
            logger.warning("record save gave up after conflicts", extra={"url": record.url})
            return False
        except redis.RedisError:
            logger.warning("record save failed", extra={"url": record.url}, exc_info=True)
            return False

    def _queue_delete_images(self, pipe, record_id: str, image_ids: list[str]) -> None:
        for image_id in image_ids:
            pipe.delete(_image_key(image_id))
        if image_ids:
            pipe.zrem(IMAGES_INDEX, *image_ids)
        pipe.delete(_record_images_key(record_id))

    def _queue_delete(self, pipe, record_id: str, image_ids: list[str]) -> None:
        self._queue_delete_images(pipe, record_id, image_ids)
        pipe.delete(_record_key(record_id))
        pipe.zrem(RECORDS_INDEX, record_id)

    async def get_by_id(self, record_id: str) -> ScrapedRecord | None:
        """Return the stored record, or ``None`` on miss / error."""
        try:
            raw = await self._client.hget(_record_key(record_id), "data")
            if raw is None:
                logger.debug("record miss", extra={"record_id": record_id})
                return None
            return ScrapedRecord.model_validate_json(raw)
        except redis.RedisError:
            logger.warning("record get failed", extra={"record_id": record_id}, exc_info=True)
            return None
        except ValidationError:
            logger.warning("stored record is corrupt", extra={"record_id": record_id}, exc_info=True)
            return None

    async def get_by_url(self, url: str) -> ScrapedRecord | None:
        try:
            record_id = await self._client.get(_url_key(url))
        except redis.RedisError:
            logger.warning("record lookup failed", extra={"url": url}, exc_info=True)
            return None
        if record_id is None:
            logger.debug("cache miss", extra={"url": url})
            return None
        logger.debug("cache hit", extra={"url": url, "record_id": record_id})
        return await self.get_by_id(record_id)

    async def exists(self, url: str) -> bool:
        try:
            return bool(await self._client.exists(_url_key(url)))
        except redis.RedisError:
            logger.warning("record exists check failed", extra={"url": url}, exc_info=True)
            return False

    async def delete_by_id(self, record_id: str) -> bool:
        """Delete a record and its images. Returns ``False`` if nothing was deleted."""
        record_key = _record_key(record_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                for attempt in range(1, self._max_save_attempts + 1):
                    try:
                        await pipe.watch(record_key)
                        url = await pipe.hget(record_key, "url")
                        if url is None:
                            return False
                        url_key = _url_key(url)
                        await pipe.watch(url_key)
                        owner = await pipe.get(url_key)
                        image_ids = await pipe.lrange(_record_images_key(record_id), 0, -1)

                        pipe.multi()
                        self._queue_delete(pipe, record_id, image_ids)
                        if owner == record_id:
                            pipe.delete(url_key)
                        await pipe.execute()
                        logger.debug("record deleted", extra={"record_id": record_id, "images": len(image_ids)})
                        return True
                    except WatchError:
                        logger.debug("record delete conflict, retrying", extra={"record_id": record_id, "attempt": attempt})
                        continue
            logger.warning("record delete gave up after conflicts", extra={"record_id": record_id})
            return False
        except redis.RedisError:
            logger.warning("record delete failed", extra={"record_id": record_id}, exc_info=True)
            return False

    async def list_records(self, limit: int = 20, offset: int = 0) -> list[ScrapedRecord]:
        """Records ordered by creation time, newest first."""
        if limit <= 0:
            return []
        try:
            ids = await self._client.zrevrange(RECORDS_INDEX, offset, offset + limit - 1)
            if not ids:
                return []
            async with self._client.pipeline(transaction=False) as pipe:
                for record_id in ids:
                    pipe.hget(_record_key(record_id), "data")
                rows = await pipe.execute()
        except redis.RedisError:
            logger.warning("record list failed", extra={"limit": limit, "offset": offset}, exc_info=True)
            return []

        records: list[ScrapedRecord] = []
        for record_id, raw in zip(ids, rows):
            if raw is None:
                continue
            try:
                records.append(ScrapedRecord.model_validate_json(raw))
            except ValidationError:
                logger.warning("stored record is corrupt", extra={"record_id": record_id})
        return records

    async def count(self) -> int:
        try:
            return await self._client.zcard(RECORDS_INDEX)
        except redis.RedisError:
            logger.warning("record count failed", exc_info=True)
            return 0

    async def get_image(self, image_id: str) -> ExtractedImage | None:
        try:
            row = await self._client.hgetall(_image_key(image_id))
        except redis.RedisError:
            logger.warning("image get failed", extra={"image_id": image_id}, exc_info=True)
            return None
        if not row:
            return None
        try:
            return _image_from_hash(image_id, row)
        except json.JSONDecodeError:
            logger.warning("stored image tags are corrupt", extra={"image_id": image_id})
            return None

    async def images_for_record(self, record_id: str) -> list[ExtractedImage]:
        """Images stored for *record_id*, in discovery order."""
        try:
            image_ids = await self._client.lrange(_record_images_key(record_id), 0, -1)
            return await self._load_images(image_ids)
        except redis.RedisError:
            logger.warning("record images get failed", extra={"record_id": record_id}, exc_info=True)
            return []

    async def search_images_by_tags(self, tags: list[str]) -> list[ExtractedImage]:
        """Fuzzy tag search over every stored image, newest first."""
        query = [t.strip() for t in tags if t.strip()]
        if not query:
            return []
        try:
            image_ids = await self._client.zrevrange(IMAGES_INDEX, 0, -1)
            images = await self._load_images(image_ids)
        except redis.RedisError:
            logger.warning("image search failed", extra={"tags": query}, exc_info=True)
            return []

        matches = [img for img in images if tags_match(query, img.tags)]
        logger.debug("image search", extra={"tags": query, "scanned": len(images), "matched": len(matches)})
        return matches

    async def _load_images(self, image_ids: list[str]) -> list[ExtractedImage]:
        if not image_ids:
            return []
        async with self._client.pipeline(transaction=False) as pipe:
            for image_id in image_ids:
                pipe.hgetall(_image_key(image_id))
            rows = await pipe.execute()

        images: list[ExtractedImage] = []
        for image_id, row in zip(image_ids, rows):
            if not row:
                continue
            try:
                images.append(_image_from_hash(image_id, row))
            except json.JSONDecodeError:
                logger.debug("skipping image with corrupt tags", extra={"image_id": image_id})
        return images


async def create_redis_client(redis_url: str) -> redis.Redis:
    # Strip credentials for logging (everything before @ if present)
    safe_url = redis_url.split("@")[-1] if "@" in redis_url else redis_url
    logger.info("connecting to redis", extra={"redis_url": safe_url})
    retry = Retry(ExponentialBackoff(), retries=3)
    return redis.from_url(
        redis_url,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
        retry=retry,
        retry_on_error=[redis.ConnectionError, redis.TimeoutError],
    )
