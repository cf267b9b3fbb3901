from __future__ import annotations

import logging

from app.services.errors import (
    CmsError,
    ImageNotFoundError,
    InvalidRequestError,
    MainImageProtectedError,
)
from app.services.room_images import (
    RoomImage,
    RoomImageRepository,
    find_main,
    hidden_name,
    is_main_filename,
    resolve_image,
    validate_filename,
    validate_room_id,
)
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import touch_room

logger = logging.getLogger("app.room_images")


class VisibilityToggle:
    """Moves images in and out of the ``_hidden_`` naming convention."""

    def __init__(self, repository: RoomImageRepository, *, locks: RoomLocks | None = None) -> None:
        self.repository = repository
        self._locks = locks or room_locks

    async def set_hidden(self, room_id: str, filename: str, hidden: bool) -> RoomImage:
        room_id = validate_room_id(room_id)
        filename = validate_filename(filename)
        if hidden and is_main_filename(filename):
            raise MainImageProtectedError(
                "Cannot hide the main image",
                details="Set another image as main before hiding this one",
            )

        async with self._locks.for_room(room_id):
            images = await self.repository.list_images(room_id)
            image = resolve_image(images, filename)
            if image is None:
                raise ImageNotFoundError(details=f"{filename} not found in {room_id}")

            new_filename = hidden_name(image.filename) if hidden else image.base_filename
            if new_filename == image.filename:
                return image
            if is_main_filename(new_filename) and find_main(images) is not None:
                raise InvalidRequestError(
                    "Room already has a main image",
                    details="Delete or rename the hidden main image instead",
                )

            payload = await self.repository.read(image)
            moved = await self.repository.write(
                room_id,
                new_filename,
                payload.data,
                content_type=payload.content_type,
                allow_overwrite=False,
            )
            try:
                await self.repository.remove(image)
            except CmsError as exc:
                logger.warning(
                    "Could not delete image after renaming",
                    extra={"room_id": room_id, "image": image.filename, "error": exc.details or exc.error},
                )
            await touch_room(self.repository.metadata, room_id, locks=self._locks)
            logger.info(
                "Changed image visibility",
                extra={"room_id": room_id, "image": moved.filename, "hidden": hidden},
            )
            return moved


__all__ = ["VisibilityToggle"]
