"""Key-value document store holding room metadata and deletion markers."""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.services.errors import MetadataStoreError

logger = logging.getLogger("app.metadata")

ROOM_METADATA_KEY = "room-metadata"
ROOM_ORDER_KEY = "room-order"
DELETED_ROOMS_KEY = "deleted-rooms"
CMS_CONFIG_KEY = "cms-config"


def deleted_images_key(room_id: str) -> str:
    return f"deleted-images:{room_id}"


class MetadataStore(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def add_to_set(self, key: str, member: str) -> None: ...

    async def members_of(self, key: str) -> set[str]: ...

    async def ping(self) -> bool: ...


@lru_cache
def get_redis() -> Redis:
    return Redis.from_url(get_settings().redis_url, decode_responses=True)


class RedisMetadataStore:
    """Stores JSON documents under plain string keys and markers in Redis sets."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
        except RedisError as exc:
            raise MetadataStoreError(details=str(exc)) from exc
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Discarding undecodable metadata document", extra={"key": key})
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            await self._client.set(key, json.dumps(value, ensure_ascii=False))
        except RedisError as exc:
            raise MetadataStoreError(details=str(exc)) from exc

    async def add_to_set(self, key: str, member: str) -> None:
        try:
            await self._client.sadd(key, member)
        except RedisError as exc:
            raise MetadataStoreError(details=str(exc)) from exc

    async def members_of(self, key: str) -> set[str]:
        try:
            members = await self._client.smembers(key)
        except RedisError as exc:
            raise MetadataStoreError(details=str(exc)) from exc
        return {str(member) for member in members}

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            logger.exception("Metadata store unreachable")
            return False


__all__ = [
    "CMS_CONFIG_KEY",
    "DELETED_ROOMS_KEY",
    "MetadataStore",
    "ROOM_METADATA_KEY",
    "ROOM_ORDER_KEY",
    "RedisMetadataStore",
    "deleted_images_key",
    "get_redis",
]
