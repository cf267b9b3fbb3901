"""Room catalogue: metadata records, display order and room creation."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from app.core.config import Settings, get_settings
from app.schemas.room import RoomFields, RoomImageLink, RoomMetadata, RoomSummary
from app.services.errors import (
    CmsError,
    ImageNotFoundError,
    InvalidRequestError,
    RoomNotFoundError,
    StorageOperationError,
)
from app.services.room_images import (
    ROOM_ID_RE,
    RoomImage,
    RoomImageRepository,
    additional_filename,
    display_order,
    find_main,
    main_filename,
    resolve_image,
    room_number,
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
    next_timestamp,
    now_ms,
    refresh_main_image,
    touch_catalogue,
    touch_room,
)
from app.services.storage import ImageUpload, validate_image_upload

logger = logging.getLogger("app.rooms")

# Serialises room id allocation.
_CATALOGUE_LOCK = "catalogue"


@dataclass(slots=True)
class RoomUpdate:
    room: RoomMetadata
    added_images: list[str] = field(default_factory=list)
    failed_images: list[str] = field(default_factory=list)


def _sort_key(order: list[str]):
    positions = {room_id: index for index, room_id in enumerate(order)}

    def _key(room_id: str) -> tuple[int, float, str]:
        number = room_number(room_id)
        return (
            positions.get(room_id, len(positions)),
            number if number is not None else math.inf,
            room_id,
        )

    return _key


class RoomCatalogue:
    def __init__(
        self,
        repository: RoomImageRepository,
        *,
        locks: RoomLocks | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.metadata = repository.metadata
        self._locks = locks or room_locks
        self._settings = settings or get_settings()

    async def list_rooms(self) -> list[RoomSummary]:
        rooms = await load_rooms(self.metadata)
        deleted = await deleted_rooms(self.metadata)
        order = await load_order(self.metadata)
        active = sorted((room_id for room_id in rooms if room_id not in deleted), key=_sort_key(order))
        return list(
            await asyncio.gather(*(self._summarize(room_id, rooms[room_id]) for room_id in active))
        )

    async def _visible_images(self, room_id: str) -> list[RoomImage]:
        try:
            images = await self.repository.list_images(room_id)
        except CmsError as exc:
            logger.warning(
                "Could not list room images",
                extra={"room_id": room_id, "error": exc.details or exc.error},
            )
            return []
        return display_order(image for image in images if not image.is_hidden)

    async def _summarize(self, room_id: str, room: dict[str, Any]) -> RoomSummary:
        visible = await self._visible_images(room_id)
        main = find_main(visible)
        display = main or (visible[0] if visible else None)
        return RoomSummary(
            id=room_id,
            name=room.get("name") or room_id,
            type=room.get("type") or "",
            description=room.get("description") or "",
            description_i18n=room.get("descriptionI18n") or None,
            amenities=room.get("amenities") or [],
            bed_info=room.get("bedInfo") or "",
            max_guests=room.get("maxGuests") or 2,
            size=room.get("size") or "",
            address=room.get("address") or "",
            map_url=room.get("mapUrl") or "",
            alt_text=room.get("altText") or None,
            main_image=display.url if display else self._settings.room_placeholder_url,
            images=[
                RoomImageLink(filename=image.filename, url=image.url)
                for image in visible
                if image is not main
            ],
            has_images=bool(visible),
            last_updated=room.get("lastUpdated"),
        )

    async def get_room(self, room_id: str) -> dict[str, Any]:
        room_id = validate_room_id(room_id)
        if room_id in await deleted_rooms(self.metadata):
            raise RoomNotFoundError(details=room_id)
        room = (await load_rooms(self.metadata)).get(room_id)
        if room is None:
            raise RoomNotFoundError(details=room_id)
        return room

    async def next_room_id(self) -> str:
        """Allocate past every id ever used, deleted rooms included."""

        candidates = set(await load_rooms(self.metadata))
        candidates.update(await load_order(self.metadata))
        candidates.update(await deleted_rooms(self.metadata))
        numbers = [number for number in map(room_number, candidates) if number is not None]
        return f"room{max(numbers, default=0) + 1}"

    async def _save_room(self, room_id: str, document: dict[str, Any]) -> None:
        async with editing_rooms(self.metadata, locks=self._locks) as rooms:
            rooms[room_id] = document

    async def create_room(self, fields: RoomFields, uploads: list[ImageUpload]) -> RoomMetadata:
        if not uploads:
            raise InvalidRequestError("At least one image is required")
        for upload in uploads:
            validate_image_upload(upload)

        async with self._locks.for_room(_CATALOGUE_LOCK):
            room_id = await self.next_room_id()
            uploaded: list[RoomImage] = []
            try:
                for index, upload in enumerate(uploads):
                    filename = (
                        main_filename(upload.extension)
                        if index == 0
                        else additional_filename(index, upload.extension)
                    )
                    uploaded.append(
                        await self.repository.write(
                            room_id,
                            filename,
                            upload.data,
                            content_type=upload.content_type,
                            allow_overwrite=False,
                        )
                    )
            except CmsError as exc:
                logger.error(
                    "Room image upload failed, removing partial upload",
                    extra={"room_id": room_id, "uploaded": len(uploaded), "error": exc.details or exc.error},
                )
                for image in uploaded:
                    try:
                        await self.repository.remove(image)
                    except CmsError:
                        logger.warning(
                            "Could not remove partially uploaded image",
                            extra={"room_id": room_id, "key": image.key},
                        )
                raise StorageOperationError(
                    "Failed to upload images", details=exc.details or exc.error
                ) from exc

            room = RoomMetadata(
                **fields.model_dump(),
                id=room_id,
                main_image_url=uploaded[0].url,
                last_updated=now_ms(),
            )
            await self._save_room(room_id, room.to_document())
            async with editing_order(self.metadata, locks=self._locks) as order:
                if room_id not in order:
                    order.append(room_id)
            await touch_catalogue(self.metadata, locks=self._locks)

        logger.info("Created room", extra={"room_id": room_id, "images": len(uploaded)})
        return room

    async def update_room(
        self, room_id: str, fields: RoomFields, uploads: list[ImageUpload]
    ) -> RoomUpdate:
        """Replace the descriptive fields and append any new images.

        The cached main image URL survives the edit; individual image upload
        failures are reported rather than failing the whole update.
        """

        room_id = validate_room_id(room_id)
        existing = await self.get_room(room_id)
        for upload in uploads:
            validate_image_upload(upload)

        async with self._locks.for_room(room_id):
            added: list[str] = []
            failed: list[str] = []
            if uploads:
                index = await self.repository.next_image_index(room_id)
                for upload in uploads:
                    filename = additional_filename(index, upload.extension)
                    index += 1
                    try:
                        await self.repository.write(
                            room_id,
                            filename,
                            upload.data,
                            content_type=upload.content_type,
                            allow_overwrite=False,
                        )
                    except CmsError as exc:
                        logger.warning(
                            "Could not upload additional room image",
                            extra={"room_id": room_id, "image": filename, "error": exc.details or exc.error},
                        )
                        failed.append(upload.filename or filename)
                    else:
                        added.append(filename)

            room = RoomMetadata(
                **fields.model_dump(),
                id=room_id,
                main_image_url=existing.get("mainImageUrl"),
                last_updated=next_timestamp(existing.get("lastUpdated")),
            )
            await self._save_room(room_id, room.to_document())
            update = RoomUpdate(room=room, added_images=added, failed_images=failed)

        logger.info(
            "Updated room",
            extra={"room_id": room_id, "added": len(update.added_images), "failed": len(update.failed_images)},
        )
        return update

    async def replace_image(
        self, room_id: str, filename: str, upload: ImageUpload
    ) -> tuple[RoomImage, int | None]:
        room_id = validate_room_id(room_id)
        filename = validate_filename(filename)
        validate_image_upload(upload)

        async with self._locks.for_room(room_id):
            image = resolve_image(await self.repository.list_images(room_id), filename)
            if image is None:
                raise ImageNotFoundError(details=f"{filename} not found in {room_id}")
            stored = await self.repository.write(
                room_id,
                image.filename,
                upload.data,
                content_type=upload.content_type,
                allow_overwrite=True,
            )
            if stored.is_main:
                last_updated = await refresh_main_image(
                    self.metadata, room_id, stored.url, locks=self._locks
                )
            else:
                last_updated = await touch_room(self.metadata, room_id, locks=self._locks)

        logger.info("Replaced room image", extra={"room_id": room_id, "image": stored.filename})
        return stored, last_updated

    async def get_order(self) -> list[str]:
        deleted = await deleted_rooms(self.metadata)
        return [room_id for room_id in await load_order(self.metadata) if room_id not in deleted]

    async def set_order(self, order: list[str]) -> list[str]:
        invalid = [room_id for room_id in order if not ROOM_ID_RE.match(room_id)]
        if invalid:
            raise InvalidRequestError("Invalid room ID in order", details=", ".join(invalid))
        deleted = await deleted_rooms(self.metadata)
        cleaned = [room_id for room_id in order if room_id not in deleted]
        async with editing_order(self.metadata, locks=self._locks) as stored:
            stored[:] = cleaned
        await touch_catalogue(self.metadata, locks=self._locks)
        return cleaned

    async def list_deleted_rooms(self) -> list[str]:
        deleted = await deleted_rooms(self.metadata)
        return sorted(deleted, key=lambda room_id: (room_number(room_id) or 0, room_id))


__all__ = ["RoomCatalogue", "RoomUpdate"]
