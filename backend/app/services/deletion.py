from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from app.core.config import get_settings
from app.services.errors import (
    CmsError,
    ImageNotFoundError,
    MainImageProtectedError,
    RoomNotFoundError,
    StorageOperationError,
)
from app.services.metadata_store import DELETED_ROOMS_KEY
from app.services.room_images import (
    RoomImageRepository,
    is_main_filename,
    resolve_image,
    room_prefix,
    validate_filename,
    validate_room_id,
)
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import (
    deleted_rooms,
    editing_order,
    editing_rooms,
    load_order,
    load_rooms,
    touch_catalogue,
    touch_room,
)

logger = logging.getLogger("app.rooms")


@dataclass(slots=True)
class RoomDeletion:
    room_id: str
    objects_removed: int
    objects_failed: int


class DeletionService:
    def __init__(
        self,
        repository: RoomImageRepository,
        *,
        locks: RoomLocks | None = None,
        legacy_rooms_dir: str | Path | None = None,
    ) -> None:
        self.repository = repository
        self._locks = locks or room_locks
        self._legacy_rooms_dir = Path(
            legacy_rooms_dir if legacy_rooms_dir is not None else get_settings().legacy_rooms_dir
        )

    async def delete_image(self, room_id: str, filename: str) -> None:
        """Delete one image and tombstone its filename.

        The tombstone is written whether or not the object store confirmed the
        delete, so the image never resurfaces through a stale listing.
        """

        room_id = validate_room_id(room_id)
        filename = validate_filename(filename)
        if is_main_filename(filename):
            raise MainImageProtectedError(
                "Cannot delete the main image",
                details="Set another image as main before deleting this one",
            )

        async with self._locks.for_room(room_id):
            image = resolve_image(await self.repository.list_images(room_id), filename)
            if image is None:
                raise ImageNotFoundError(details=f"{filename} not found in {room_id}")
            try:
                await self.repository.remove(image)
            except CmsError as exc:
                await self._mark(room_id, image.filename)
                raise StorageOperationError(
                    "Failed to delete image",
                    details=exc.details or exc.error,
                    code="DELETE_FAILED",
                ) from exc
            await self._mark(room_id, image.filename)
            await touch_room(self.repository.metadata, room_id, locks=self._locks)
            logger.info("Deleted image", extra={"room_id": room_id, "image": image.filename})

    async def _mark(self, room_id: str, filename: str) -> None:
        try:
            await self.repository.mark_deleted(room_id, filename)
        except CmsError as exc:
            logger.error(
                "Could not record deleted image",
                extra={"room_id": room_id, "image": filename, "error": exc.details or exc.error},
            )

    async def delete_room(self, room_id: str) -> RoomDeletion:
        room_id = validate_room_id(room_id)
        metadata = self.repository.metadata

        async with self._locks.for_room(room_id):
            if room_id in await deleted_rooms(metadata):
                raise RoomNotFoundError(details=room_id)
            rooms = await load_rooms(metadata)
            order = await load_order(metadata)
            stored = await self.repository.objects.list(room_prefix(room_id))
            if room_id not in rooms and room_id not in order and not stored:
                raise RoomNotFoundError(details=room_id)

            removed = failed = 0
            for obj in stored:
                try:
                    await self.repository.objects.delete_key(obj.key)
                except CmsError as exc:
                    failed += 1
                    logger.warning(
                        "Could not delete room object",
                        extra={"room_id": room_id, "key": obj.key, "error": exc.details or exc.error},
                    )
                else:
                    removed += 1

            await metadata.add_to_set(DELETED_ROOMS_KEY, room_id)
            async with editing_rooms(metadata, locks=self._locks) as rooms:
                rooms.pop(room_id, None)
            async with editing_order(metadata, locks=self._locks) as order:
                order[:] = [entry for entry in order if entry != room_id]
            await self._remove_legacy_dir(room_id)
            await touch_catalogue(metadata, locks=self._locks)

        logger.info(
            "Deleted room",
            extra={"room_id": room_id, "objects_removed": removed, "objects_failed": failed},
        )
        return RoomDeletion(room_id=room_id, objects_removed=removed, objects_failed=failed)

    async def _remove_legacy_dir(self, room_id: str) -> None:
        path = self._legacy_rooms_dir / room_id
        if not path.is_dir():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as exc:
            logger.warning(
                "Could not remove legacy room directory",
                extra={"room_id": room_id, "path": str(path), "error": str(exc)},
            )


__all__ = ["DeletionService", "RoomDeletion"]
