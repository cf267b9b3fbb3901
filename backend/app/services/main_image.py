from __future__ import annotations

import logging
import random
from typing import Callable, Sequence

from app.core.metrics import record_promotion
from app.services.room_images import (
    RoomImage,
    RoomImageRepository,
    additional_filename,
    main_filename,
)
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import refresh_main_image

logger = logging.getLogger("app.room_images")

Chooser = Callable[[Sequence[RoomImage]], RoomImage]


class MainImageEnforcer:
    """Keeps exactly one visible ``main.<ext>`` in every room that has visible images."""

    def __init__(
        self,
        repository: RoomImageRepository,
        *,
        locks: RoomLocks | None = None,
        chooser: Chooser = random.choice,
    ) -> None:
        self.repository = repository
        self._locks = locks or room_locks
        self._choose = chooser

    async def ensure_main_image(self, room_id: str) -> bool:
        async with self._locks.for_room(room_id):
            return await self.repair(room_id)

    async def repair(self, room_id: str) -> bool:
        """Promote or demote images as needed; the caller holds the room lock.

        Returns ``False`` only when the room has no visible image to promote.
        """

        images = await self.repository.list_images(room_id)
        mains = sorted((image for image in images if image.is_main), key=lambda image: image.filename)
        if mains:
            for extra in mains[1:]:
                await self._demote(room_id, extra)
            return True

        candidates = [image for image in images if not image.is_hidden]
        if not candidates:
            return False

        candidate = self._choose(candidates)
        payload = await self.repository.read(candidate)
        promoted = await self.repository.write(
            room_id,
            main_filename(candidate.extension),
            payload.data,
            content_type=payload.content_type,
            allow_overwrite=True,
        )
        record_promotion()
        logger.info(
            "Promoted image to main",
            extra={"room_id": room_id, "source": candidate.filename, "main": promoted.filename},
        )
        await refresh_main_image(
            self.repository.metadata, room_id, promoted.url, locks=self._locks
        )
        return True

    async def _demote(self, room_id: str, image: RoomImage) -> None:
        index = await self.repository.next_image_index(room_id)
        payload = await self.repository.read(image)
        demoted = await self.repository.write(
            room_id,
            additional_filename(index, image.extension),
            payload.data,
            content_type=payload.content_type,
            allow_overwrite=False,
        )
        await self.repository.remove(image)
        logger.info(
            "Demoted duplicate main image",
            extra={"room_id": room_id, "source": image.filename, "target": demoted.filename},
        )


__all__ = ["MainImageEnforcer"]
