from __future__ import annotations

import copy
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from app.services.errors import CmsError
from app.services.metadata_store import (
    CMS_CONFIG_KEY,
    DELETED_ROOMS_KEY,
    ROOM_METADATA_KEY,
    ROOM_ORDER_KEY,
    MetadataStore,
)
from app.services.room_locks import RoomLocks, room_locks

logger = logging.getLogger("app.rooms")


def now_ms() -> int:
    return int(time.time() * 1000)


def next_timestamp(previous: Any = None) -> int:
    """Return a cache-busting timestamp strictly greater than ``previous``."""

    current = now_ms()
    if isinstance(previous, (int, float)) and not isinstance(previous, bool):
        return max(current, int(previous) + 1)
    return current


async def load_rooms(store: MetadataStore) -> dict[str, dict[str, Any]]:
    document = await store.get(ROOM_METADATA_KEY)
    if not isinstance(document, dict):
        return {}
    return {str(room_id): room for room_id, room in document.items() if isinstance(room, dict)}


async def save_rooms(store: MetadataStore, rooms: dict[str, dict[str, Any]]) -> None:
    await store.set(ROOM_METADATA_KEY, rooms)


@asynccontextmanager
async def editing_rooms(
    store: MetadataStore, *, locks: RoomLocks | None = None
) -> AsyncIterator[dict[str, dict[str, Any]]]:
    """Load the shared room blob, yield it for changes and save it back.

    Every room lives in one record, so edits to different rooms must not
    interleave between the load and the save. The blob is only written when
    the body changed it.
    """

    async with (locks or room_locks).for_room(ROOM_METADATA_KEY):
        rooms = await load_rooms(store)
        original = copy.deepcopy(rooms)
        yield rooms
        if rooms != original:
            await save_rooms(store, rooms)


async def load_order(store: MetadataStore) -> list[str]:
    order = await store.get(ROOM_ORDER_KEY)
    if not isinstance(order, list):
        return []
    return [str(room_id) for room_id in order]


async def save_order(store: MetadataStore, order: list[str]) -> None:
    await store.set(ROOM_ORDER_KEY, order)


@asynccontextmanager
async def editing_order(
    store: MetadataStore, *, locks: RoomLocks | None = None
) -> AsyncIterator[list[str]]:
    async with (locks or room_locks).for_room(ROOM_ORDER_KEY):
        order = await load_order(store)
        original = list(order)
        yield order
        if order != original:
            await save_order(store, order)


async def deleted_rooms(store: MetadataStore) -> set[str]:
    return await store.members_of(DELETED_ROOMS_KEY)


async def load_cms_config(store: MetadataStore) -> dict[str, Any]:
    config = await store.get(CMS_CONFIG_KEY)
    return config if isinstance(config, dict) else {}


async def save_cms_config(store: MetadataStore, config: dict[str, Any]) -> None:
    await store.set(CMS_CONFIG_KEY, config)


@asynccontextmanager
async def editing_cms_config(
    store: MetadataStore, *, locks: RoomLocks | None = None
) -> AsyncIterator[dict[str, Any]]:
    async with (locks or room_locks).for_room(CMS_CONFIG_KEY):
        config = await load_cms_config(store)
        original = copy.deepcopy(config)
        yield config
        if config != original:
            await save_cms_config(store, config)


async def touch_catalogue(store: MetadataStore, *, locks: RoomLocks | None = None) -> int | None:
    """Bump ``roomsLastUpdated`` after a room is added, removed or reordered."""

    try:
        async with editing_cms_config(store, locks=locks) as config:
            timestamp = next_timestamp(config.get("roomsLastUpdated"))
            config["roomsLastUpdated"] = timestamp
    except CmsError as exc:
        logger.warning("Could not bump catalogue timestamp", extra={"error": exc.details or exc.error})
        return None
    return timestamp


async def _bump(
    store: MetadataStore, room_id: str, locks: RoomLocks | None, **fields: Any
) -> int | None:
    # A stale cached record is tolerated, a failed request is not.
    timestamp: int | None = None
    try:
        async with editing_rooms(store, locks=locks) as rooms:
            room = rooms.get(room_id)
            if room is not None:
                timestamp = next_timestamp(room.get("lastUpdated"))
                room.update(fields)
                room["lastUpdated"] = timestamp
    except CmsError as exc:
        logger.warning(
            "Could not update room metadata",
            extra={"room_id": room_id, "error": exc.error, "details": exc.details},
        )
        return None
    return timestamp


async def refresh_main_image(
    store: MetadataStore,
    room_id: str,
    main_image_url: str,
    *,
    locks: RoomLocks | None = None,
) -> int | None:
    """Mirror the current main image URL into the room record and bump ``lastUpdated``.

    Returns the new timestamp, or ``None`` when the room has no metadata
    record or the store could not be updated.
    """

    return await _bump(store, room_id, locks, mainImageUrl=main_image_url)


async def touch_room(
    store: MetadataStore, room_id: str, *, locks: RoomLocks | None = None
) -> int | None:
    return await _bump(store, room_id, locks)


__all__ = [
    "deleted_rooms",
    "editing_cms_config",
    "editing_order",
    "editing_rooms",
    "load_cms_config",
    "load_order",
    "load_rooms",
    "next_timestamp",
    "now_ms",
    "refresh_main_image",
    "save_cms_config",
    "save_order",
    "save_rooms",
    "touch_catalogue",
    "touch_room",
]
