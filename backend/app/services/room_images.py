"""Per-room image namespace on top of the object store.

A room's photos live under ``rooms/<roomId>/``. Exactly one visible file is
named ``main.<ext>``; the rest are ``image-<k>.<ext>``. A ``_hidden_`` prefix
keeps an image out of public listings without deleting it, and ``_swap_``
objects are staging copies that only exist while a swap is in flight.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable

from app.core.config import Settings, get_settings
from app.services.errors import InvalidRequestError
from app.services.metadata_store import MetadataStore, deleted_images_key
from app.services.storage import IMAGE_EXTENSIONS, ObjectPayload, ObjectStore, is_image_key

logger = logging.getLogger("app.room_images")

HIDDEN_PREFIX = "_hidden_"
STAGING_PREFIX = "_swap_"
MAIN_STEM = "main"
ADDITIONAL_STEM = "image"

ROOM_ID_RE = re.compile(r"^room(\d+)$")
_ADDITIONAL_RE = re.compile(r"^image-(\d+)\.([A-Za-z0-9]+)$")


def room_prefix(room_id: str) -> str:
    return f"rooms/{room_id}/"


def image_key(room_id: str, filename: str) -> str:
    return f"{room_prefix(room_id)}{filename}"


def strip_hidden(filename: str) -> str:
    if filename.startswith(HIDDEN_PREFIX):
        return filename[len(HIDDEN_PREFIX) :]
    return filename


def hidden_name(filename: str) -> str:
    return f"{HIDDEN_PREFIX}{strip_hidden(filename)}"


def split_extension(filename: str) -> tuple[str, str]:
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        return filename, ""
    return stem, ext.lower()


def is_main_filename(filename: str) -> bool:
    """True for ``main.<ext>`` and its hidden variant."""

    stem, ext = split_extension(strip_hidden(filename))
    return stem == MAIN_STEM and ext in IMAGE_EXTENSIONS


def main_filename(extension: str) -> str:
    return f"{MAIN_STEM}.{extension.lower()}"


def additional_filename(index: int, extension: str) -> str:
    return f"{ADDITIONAL_STEM}-{index}.{extension.lower()}"


def image_index(filename: str) -> int | None:
    match = _ADDITIONAL_RE.match(strip_hidden(filename))
    return int(match.group(1)) if match else None


def room_number(room_id: str) -> int | None:
    match = ROOM_ID_RE.match(room_id)
    return int(match.group(1)) if match else None


def validate_room_id(room_id: str | None) -> str:
    value = (room_id or "").strip()
    if not value:
        raise InvalidRequestError("Room ID is required")
    if not ROOM_ID_RE.match(value):
        raise InvalidRequestError("Invalid room ID", details=value)
    return value


def validate_filename(filename: str | None) -> str:
    value = (filename or "").strip()
    if not value:
        raise InvalidRequestError("Filename is required")
    if ".." in value or "/" in value or "\\" in value:
        raise InvalidRequestError("Invalid filename", details=value)
    if not is_image_key(value):
        raise InvalidRequestError("Unsupported image extension", details=value)
    return value


@dataclass(frozen=True, slots=True)
class RoomImage:
    room_id: str
    filename: str
    key: str
    url: str

    @property
    def base_filename(self) -> str:
        return strip_hidden(self.filename)

    @property
    def is_hidden(self) -> bool:
        return self.filename.startswith(HIDDEN_PREFIX)

    @property
    def is_main(self) -> bool:
        return not self.is_hidden and is_main_filename(self.filename)

    @property
    def extension(self) -> str:
        return split_extension(self.filename)[1]

    @property
    def index(self) -> int | None:
        return image_index(self.filename)


def find_main(images: Iterable[RoomImage]) -> RoomImage | None:
    mains = sorted((image for image in images if image.is_main), key=lambda image: image.filename)
    return mains[0] if mains else None


def resolve_image(images: Iterable[RoomImage], filename: str) -> RoomImage | None:
    """Match ``filename`` exactly, else through its hidden or visible twin."""

    candidates = list(images)
    for image in candidates:
        if image.filename == filename:
            return image
    base = strip_hidden(filename)
    for image in candidates:
        if image.base_filename == base:
            return image
    return None


def display_order(images: Iterable[RoomImage]) -> list[RoomImage]:
    """Main first, then additional images by index, then anything else by name."""

    def _key(image: RoomImage) -> tuple[int, int, str]:
        if image.is_main:
            return (0, 0, image.filename)
        index = image.index
        if index is not None:
            return (1, index, image.filename)
        return (2, 0, image.filename)

    return sorted(images, key=_key)


class RoomImageRepository:
    def __init__(
        self,
        objects: ObjectStore,
        metadata: MetadataStore,
        *,
        settle_timeout: float = 5.0,
        settle_initial_delay: float = 0.25,
        settle_max_delay: float = 2.0,
    ) -> None:
        self.objects = objects
        self.metadata = metadata
        self._settle_timeout = settle_timeout
        self._settle_initial_delay = settle_initial_delay
        self._settle_max_delay = settle_max_delay

    @classmethod
    def from_settings(
        cls,
        objects: ObjectStore,
        metadata: MetadataStore,
        settings: Settings | None = None,
    ) -> "RoomImageRepository":
        settings = settings or get_settings()
        return cls(
            objects,
            metadata,
            settle_timeout=settings.swap_settle_timeout_seconds,
            settle_initial_delay=settings.swap_settle_initial_delay_seconds,
            settle_max_delay=settings.swap_settle_max_delay_seconds,
        )

    def _to_image(self, room_id: str, key: str, url: str) -> RoomImage | None:
        filename = key[len(room_prefix(room_id)) :]
        if not filename or "/" in filename or not is_image_key(filename):
            return None
        if filename.startswith(STAGING_PREFIX):
            return None
        return RoomImage(room_id=room_id, filename=filename, key=key, url=url)

    async def list_stored(self, room_id: str) -> list[RoomImage]:
        """Every image object under the room, ignoring deletion markers."""

        images = []
        for stored in await self.objects.list(room_prefix(room_id)):
            image = self._to_image(room_id, stored.key, stored.url)
            if image is not None:
                images.append(image)
        return images

    async def deleted_filenames(self, room_id: str) -> set[str]:
        return await self.metadata.members_of(deleted_images_key(room_id))

    async def mark_deleted(self, room_id: str, filename: str) -> None:
        await self.metadata.add_to_set(deleted_images_key(room_id), filename)

    async def list_images(self, room_id: str) -> list[RoomImage]:
        stored = await self.list_stored(room_id)
        if not stored:
            return []
        deleted = await self.deleted_filenames(room_id)
        if not deleted:
            return stored
        return [
            image
            for image in stored
            if image.filename not in deleted and image.base_filename not in deleted
        ]

    async def find(self, room_id: str, filename: str) -> RoomImage | None:
        return resolve_image(await self.list_images(room_id), filename)

    def image(self, room_id: str, filename: str) -> RoomImage:
        key = image_key(room_id, filename)
        return RoomImage(
            room_id=room_id, filename=filename, key=key, url=self.objects.public_url(key)
        )

    async def read(self, image: RoomImage) -> ObjectPayload:
        return await self.objects.get(image.key)

    async def write(
        self,
        room_id: str,
        filename: str,
        data: bytes,
        *,
        content_type: str | None = None,
        allow_overwrite: bool = True,
    ) -> RoomImage:
        key = image_key(room_id, filename)
        url = await self.objects.put(
            key, data, content_type=content_type, allow_overwrite=allow_overwrite
        )
        return RoomImage(room_id=room_id, filename=filename, key=key, url=url)

    async def remove(self, image: RoomImage) -> None:
        await self.objects.delete_key(image.key)

    async def next_image_index(self, room_id: str) -> int:
        highest = 0
        for image in await self.list_stored(room_id):
            if image.index is not None:
                highest = max(highest, image.index)
        for filename in await self.deleted_filenames(room_id):
            index = image_index(filename)
            if index is not None:
                highest = max(highest, index)
        return highest + 1

    async def wait_for(
        self,
        room_id: str,
        condition: Callable[[list[RoomImage]], bool],
        *,
        description: str,
    ) -> tuple[bool, list[RoomImage]]:
        """Re-list the room until ``condition`` holds or the settle timeout expires.

        Returns whether the condition was met along with the last listing seen.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settle_timeout
        delay = self._settle_initial_delay
        attempts = 0
        while True:
            attempts += 1
            images = await self.list_stored(room_id)
            if condition(images):
                return True, images
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Room listing did not settle",
                    extra={"room_id": room_id, "condition": description, "attempts": attempts},
                )
                return False, images
            await asyncio.sleep(min(delay, remaining))
            delay = min(max(delay * 2, 0.05), self._settle_max_delay)


__all__ = [
    "HIDDEN_PREFIX",
    "STAGING_PREFIX",
    "RoomImage",
    "RoomImageRepository",
    "additional_filename",
    "display_order",
    "find_main",
    "hidden_name",
    "image_index",
    "image_key",
    "is_main_filename",
    "main_filename",
    "resolve_image",
    "room_number",
    "room_prefix",
    "split_extension",
    "strip_hidden",
    "validate_filename",
    "validate_room_id",
]
