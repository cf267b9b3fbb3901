from __future__ import annotations

import logging
from dataclasses import dataclass

from app.services.errors import CmsError, ImageNotFoundError
from app.services.metadata_store import MetadataStore
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import editing_cms_config, load_cms_config, next_timestamp
from app.services.storage import ImageUpload, ObjectStore, validate_image_upload

logger = logging.getLogger("app.hero")

HERO_KEY_STEM = "hero/hero-background"


@dataclass(frozen=True, slots=True)
class HeroImage:
    url: str
    timestamp: int | None
    is_fallback: bool = False


class HeroImageService:
    """Landing page background image; URL and cache-busting token live in ``cms-config``."""

    def __init__(
        self,
        objects: ObjectStore,
        metadata: MetadataStore,
        *,
        fallback_url: str,
        locks: RoomLocks | None = None,
    ) -> None:
        self.objects = objects
        self.metadata = metadata
        self._fallback_url = fallback_url
        self._locks = locks or room_locks

    async def current(self) -> HeroImage:
        try:
            config = await load_cms_config(self.metadata)
        except CmsError as exc:
            logger.warning("Could not read hero image config", extra={"error": exc.details or exc.error})
            return HeroImage(url=self._fallback_url, timestamp=None, is_fallback=True)
        url = config.get("heroImageUrl")
        timestamp = config.get("heroLastUpdated")
        if not url:
            return HeroImage(url=self._fallback_url, timestamp=timestamp, is_fallback=True)
        return HeroImage(url=url, timestamp=timestamp)

    async def replace(self, upload: ImageUpload) -> HeroImage:
        validate_image_upload(upload)
        url = await self.objects.put(
            f"{HERO_KEY_STEM}.{upload.extension}",
            upload.data,
            content_type=upload.content_type,
            allow_overwrite=True,
        )
        async with editing_cms_config(self.metadata, locks=self._locks) as config:
            previous = config.get("heroImageUrl")
            if previous and previous != url:
                try:
                    await self.objects.delete(previous)
                except CmsError as exc:
                    logger.warning(
                        "Could not delete previous hero image",
                        extra={"url": previous, "error": exc.details or exc.error},
                    )
            timestamp = next_timestamp(config.get("heroLastUpdated"))
            config.update(heroImageUrl=url, heroLastUpdated=timestamp)
        logger.info("Updated hero image", extra={"url": url})
        return HeroImage(url=url, timestamp=timestamp)

    async def remove(self) -> int:
        async with editing_cms_config(self.metadata, locks=self._locks) as config:
            url = config.get("heroImageUrl")
            if not url:
                raise ImageNotFoundError("No hero image to delete")
            await self.objects.delete(url)
            timestamp = next_timestamp(config.get("heroLastUpdated"))
            config.pop("heroImageUrl", None)
            config["heroLastUpdated"] = timestamp
        logger.info("Deleted hero image", extra={"url": url})
        return timestamp


__all__ = ["HERO_KEY_STEM", "HeroImage", "HeroImageService"]
