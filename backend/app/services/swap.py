"""Exchange the main designation between two images of one room.

The swap runs in four phases: stage both images to temporary ``_swap_``
objects, clear the two originals, commit the staged bytes under their new
names, then clean up and verify. Only the commit can leave the room in a
mixed state; when it fails the originals are restored from the staging
copies, and the staging copies are kept when that restore fails too. A
swap that changes file extensions also reports the originals it could not
delete, since a leftover ``main.<ext>`` would compete with the new main.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from app.core.metrics import record_swap_outcome
from app.services.errors import CmsError, ImageNotFoundError, InvalidRequestError
from app.services.main_image import MainImageEnforcer
from app.services.room_images import (
    STAGING_PREFIX,
    RoomImage,
    RoomImageRepository,
    find_main,
    is_main_filename,
    main_filename,
    resolve_image,
    split_extension,
    validate_filename,
    validate_room_id,
)
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import refresh_main_image

logger = logging.getLogger("app.swap")


class SwapPhase(str, Enum):
    STAGE = "stage"
    CLEAR = "clear"
    COMMIT = "commit"
    RESTORE = "restore"
    VERIFY = "verify"


class SwapOutcome(str, Enum):
    SUCCESS = "success"
    NOOP = "noop"
    STAGE_FAILED = "stage_failed"
    COMMIT_FAILED = "commit_failed"
    RESTORE_FAILED = "restore_failed"
    CLEANUP_FAILED = "cleanup_failed"


@dataclass(slots=True)
class SwapVerification:
    main_image_exists: bool
    source_image_exists: bool
    main_image_url: str | None
    url_changed: bool
    stale_keys: list[str] = field(default_factory=list)


@dataclass(slots=True)
class SwapResult:
    room_id: str
    outcome: SwapOutcome
    message: str
    old_main: str | None = None
    old_source: str | None = None
    new_main: RoomImage | None = None
    new_source: RoomImage | None = None
    failed_phase: SwapPhase | None = None
    error: str | None = None
    details: str | None = None
    verification: SwapVerification | None = None
    last_updated: int | None = None
    staging_keys: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome in (SwapOutcome.SUCCESS, SwapOutcome.NOOP)

    @property
    def manual_recovery_required(self) -> bool:
        return self.outcome in (SwapOutcome.RESTORE_FAILED, SwapOutcome.CLEANUP_FAILED)


def _describe(exc: CmsError) -> str:
    return exc.details or exc.error


class SwapOrchestrator:
    def __init__(
        self,
        repository: RoomImageRepository,
        enforcer: MainImageEnforcer | None = None,
        *,
        locks: RoomLocks | None = None,
    ) -> None:
        self.repository = repository
        self._locks = locks or room_locks
        self.enforcer = enforcer or MainImageEnforcer(repository, locks=self._locks)

    async def swap_main(self, room_id: str, filename: str) -> SwapResult:
        try:
            room_id = validate_room_id(room_id)
            filename = validate_filename(filename)
            async with self._locks.for_room(room_id):
                result = await self._swap(room_id, filename)
        except CmsError:
            record_swap_outcome("rejected")
            raise
        record_swap_outcome(result.outcome.value)
        return result

    async def _swap(self, room_id: str, filename: str) -> SwapResult:
        await self.enforcer.repair(room_id)
        images = await self.repository.list_images(room_id)

        target = resolve_image(images, filename)
        if target is None:
            raise ImageNotFoundError(details=f"{filename} not found in {room_id}")
        current = find_main(images)
        if target.is_main:
            return SwapResult(
                room_id=room_id,
                outcome=SwapOutcome.NOOP,
                message="Image is already the main image",
                old_main=target.filename,
                new_main=target,
            )
        if is_main_filename(target.filename):
            raise InvalidRequestError(
                "Hidden main image cannot be promoted",
                details="Make the image visible before using it as the main image",
            )
        if current is None:
            raise ImageNotFoundError(
                "Main image not found", details=f"{room_id} has no visible images"
            )

        new_main_name = main_filename(target.extension)
        new_source_name = f"{split_extension(target.base_filename)[0]}.{current.extension}"

        # Stage. Nothing observable changes until both copies exist.
        token = uuid4().hex[:12]
        staged: list[RoomImage] = []
        try:
            main_payload, target_payload = await asyncio.gather(
                self.repository.read(current), self.repository.read(target)
            )
            staged.append(
                await self.repository.write(
                    room_id,
                    f"{STAGING_PREFIX}{token}_main.{current.extension}",
                    main_payload.data,
                    content_type=main_payload.content_type,
                    allow_overwrite=False,
                )
            )
            staged.append(
                await self.repository.write(
                    room_id,
                    f"{STAGING_PREFIX}{token}_target.{target.extension}",
                    target_payload.data,
                    content_type=target_payload.content_type,
                    allow_overwrite=False,
                )
            )
        except CmsError as exc:
            logger.warning(
                "Swap staging failed",
                extra={"room_id": room_id, "target": target.filename, "error": _describe(exc)},
            )
            await self._discard(room_id, staged)
            return SwapResult(
                room_id=room_id,
                outcome=SwapOutcome.STAGE_FAILED,
                message="Could not prepare the swap; no images were changed. Please retry.",
                old_main=current.filename,
                old_source=target.filename,
                failed_phase=SwapPhase.STAGE,
                error="Failed to stage images for swap",
                details=_describe(exc),
            )
        staged_main, staged_target = staged

        # Clear.
        cleared = {current.key, target.key}
        for image in (current, target):
            try:
                await self.repository.remove(image)
            except CmsError as exc:
                logger.warning(
                    "Could not delete image before swap commit",
                    extra={"room_id": room_id, "image": image.filename, "error": _describe(exc)},
                )
        await self.repository.wait_for(
            room_id,
            lambda listing: not any(image.key in cleared for image in listing),
            description="swap originals cleared",
        )

        # Commit. Overwrite is forced since the clear may not have propagated.
        written: list[RoomImage] = []
        try:
            from_target = await self.repository.read(staged_target)
            from_main = await self.repository.read(staged_main)
            new_main = await self.repository.write(
                room_id,
                new_main_name,
                from_target.data,
                content_type=from_target.content_type,
                allow_overwrite=True,
            )
            written.append(new_main)
            new_source = await self.repository.write(
                room_id,
                new_source_name,
                from_main.data,
                content_type=from_main.content_type,
                allow_overwrite=True,
            )
            written.append(new_source)
        except CmsError as exc:
            logger.error(
                "Swap commit failed, restoring originals",
                extra={"room_id": room_id, "target": target.filename, "error": _describe(exc)},
            )
            return await self._restore(
                room_id, current, target, staged_main, staged_target, written, exc
            )

        # Cleanup and verify. An original renamed by the swap is not overwritten
        # by the commit, so a failed clear would leave it next to its successor.
        await self._discard(room_id, staged)
        expected = {new_main.key, new_source.key}
        stale = {current.key, target.key} - expected

        def _committed(listing: list[RoomImage]) -> bool:
            keys = {image.key for image in listing}
            return expected <= keys and not stale & keys

        settled, listing = await self.repository.wait_for(
            room_id, _committed, description="swap results visible"
        )
        leftovers = [image for image in listing if image.key in stale]
        if leftovers:
            await self._discard(room_id, leftovers)
            settled, listing = await self.repository.wait_for(
                room_id, _committed, description="swap originals removed"
            )
        keys = {image.key for image in listing}
        verification = SwapVerification(
            main_image_exists=new_main.key in keys,
            source_image_exists=new_source.key in keys,
            main_image_url=new_main.url,
            url_changed=new_main.url != current.url,
            stale_keys=sorted(stale & keys),
        )
        if verification.stale_keys:
            logger.error(
                "Swap committed but replaced originals are still stored",
                extra={"room_id": room_id, "stale_keys": verification.stale_keys},
            )
            last_updated = await refresh_main_image(
                self.repository.metadata, room_id, new_main.url, locks=self._locks
            )
            return SwapResult(
                room_id=room_id,
                outcome=SwapOutcome.CLEANUP_FAILED,
                message=(
                    "Swap committed but the replaced originals could not be deleted. "
                    "Delete the listed files before editing this room again."
                ),
                old_main=current.filename,
                old_source=target.filename,
                new_main=new_main,
                new_source=new_source,
                failed_phase=SwapPhase.CLEAR,
                error="Failed to remove replaced images after swap",
                details=", ".join(verification.stale_keys),
                verification=verification,
                last_updated=last_updated,
            )
        if not settled:
            logger.error(
                "Swap committed but results are not listed yet",
                extra={
                    "room_id": room_id,
                    "main_image_exists": verification.main_image_exists,
                    "source_image_exists": verification.source_image_exists,
                },
            )
        last_updated = await refresh_main_image(
            self.repository.metadata, room_id, new_main.url, locks=self._locks
        )
        logger.info(
            "Swapped main image",
            extra={"room_id": room_id, "old_main": current.filename, "new_main_source": target.filename},
        )
        message = f"Main image swapped with {target.filename}"
        if not settled:
            message += "; storage listing has not caught up yet, refresh to verify"
        return SwapResult(
            room_id=room_id,
            outcome=SwapOutcome.SUCCESS,
            message=message,
            old_main=current.filename,
            old_source=target.filename,
            new_main=new_main,
            new_source=new_source,
            verification=verification,
            last_updated=last_updated,
        )

    async def _restore(
        self,
        room_id: str,
        current: RoomImage,
        target: RoomImage,
        staged_main: RoomImage,
        staged_target: RoomImage,
        written: list[RoomImage],
        cause: CmsError,
    ) -> SwapResult:
        originals = {current.key, target.key}
        try:
            for image in written:
                if image.key not in originals:
                    await self.repository.remove(image)
            for staged, original in ((staged_main, current), (staged_target, target)):
                payload = await self.repository.read(staged)
                await self.repository.write(
                    room_id,
                    original.filename,
                    payload.data,
                    content_type=payload.content_type,
                    allow_overwrite=True,
                )
        except CmsError as exc:
            keys = [staged_main.key, staged_target.key]
            logger.critical(
                "Swap restore failed, manual recovery required",
                extra={"room_id": room_id, "staging_keys": keys, "error": _describe(exc)},
            )
            return SwapResult(
                room_id=room_id,
                outcome=SwapOutcome.RESTORE_FAILED,
                message=(
                    "Swap failed and the original images could not be restored. "
                    "Manual recovery is required from the staging copies."
                ),
                old_main=current.filename,
                old_source=target.filename,
                failed_phase=SwapPhase.RESTORE,
                error="Failed to restore images after swap failure",
                details=f"{_describe(cause)}; restore: {_describe(exc)}",
                staging_keys=keys,
            )

        await self._discard(room_id, [staged_main, staged_target])
        await self.repository.wait_for(
            room_id,
            lambda listing: originals <= {image.key for image in listing},
            description="swap originals restored",
        )
        return SwapResult(
            room_id=room_id,
            outcome=SwapOutcome.COMMIT_FAILED,
            message=(
                "Swap failed; the original images were restored. "
                "Please verify the room's images before retrying."
            ),
            old_main=current.filename,
            old_source=target.filename,
            failed_phase=SwapPhase.COMMIT,
            error="Failed to commit swapped images",
            details=_describe(cause),
        )

    async def _discard(self, room_id: str, staged: list[RoomImage]) -> None:
        for image in staged:
            try:
                await self.repository.remove(image)
            except CmsError as exc:
                logger.warning(
                    "Could not delete swap staging object",
                    extra={"room_id": room_id, "key": image.key, "error": _describe(exc)},
                )


__all__ = [
    "SwapOrchestrator",
    "SwapOutcome",
    "SwapPhase",
    "SwapResult",
    "SwapVerification",
]
