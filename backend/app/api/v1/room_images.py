from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import JSONResponse

from app.deps import (
    RepositoryDep,
    get_deletion_service,
    get_enforcer,
    get_room_catalogue,
    get_swap_orchestrator,
    get_visibility_toggle,
    read_image_upload,
)
from app.schemas.room_image import (
    DeleteImageResponse,
    ReplaceImageResponse,
    RoomImageRead,
    RoomImagesResponse,
    SetMainImageRequest,
    SetMainImageResponse,
    ToggleVisibilityRequest,
    ToggleVisibilityResponse,
)
from app.services.deletion import DeletionService
from app.services.errors import CmsError
from app.services.main_image import MainImageEnforcer
from app.services.room_images import display_order, validate_room_id
from app.services.room_metadata import load_rooms
from app.services.rooms import RoomCatalogue
from app.services.swap import SwapOrchestrator, SwapOutcome
from app.services.visibility import VisibilityToggle

logger = logging.getLogger("app.room_images")

router = APIRouter(tags=["room-images"])

Enforcer = Annotated[MainImageEnforcer, Depends(get_enforcer)]
Swapper = Annotated[SwapOrchestrator, Depends(get_swap_orchestrator)]
Visibility = Annotated[VisibilityToggle, Depends(get_visibility_toggle)]
Deletion = Annotated[DeletionService, Depends(get_deletion_service)]
Catalogue = Annotated[RoomCatalogue, Depends(get_room_catalogue)]

_SWAP_STATUS = {
    SwapOutcome.SUCCESS: status.HTTP_200_OK,
    SwapOutcome.NOOP: status.HTTP_200_OK,
    SwapOutcome.STAGE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    SwapOutcome.COMMIT_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    SwapOutcome.RESTORE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    SwapOutcome.CLEANUP_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@router.get("/rooms-images", response_model=RoomImagesResponse)
async def list_room_images(
    room_id: Annotated[str, Query(alias="roomId")],
    repository: RepositoryDep,
    enforcer: Enforcer,
) -> RoomImagesResponse:
    """List a room's images for the admin panel, repairing the main image first."""

    room_id = validate_room_id(room_id)
    try:
        await enforcer.ensure_main_image(room_id)
    except CmsError as exc:
        logger.warning(
            "Could not ensure main image before listing",
            extra={"room_id": room_id, "error": exc.details or exc.error},
        )

    images = display_order(await repository.list_images(room_id))
    last_updated = None
    try:
        room = (await load_rooms(repository.metadata)).get(room_id) or {}
        last_updated = room.get("lastUpdated")
    except CmsError:
        logger.warning("Could not read room timestamp", extra={"room_id": room_id})

    return RoomImagesResponse(
        room_id=room_id,
        images=[
            RoomImageRead(
                filename=image.filename,
                url=image.url,
                is_main=image.is_main,
                is_hidden=image.is_hidden,
                order=position,
            )
            for position, image in enumerate(images)
        ],
        has_main=any(image.is_main for image in images),
        last_updated=last_updated,
    )


@router.post("/set-main-image", response_model=SetMainImageResponse)
async def set_main_image(payload: SetMainImageRequest, swapper: Swapper) -> JSONResponse:
    result = await swapper.swap_main(payload.room_id, payload.filename)
    body = SetMainImageResponse.from_result(result)
    return JSONResponse(
        status_code=_SWAP_STATUS[result.outcome],
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.post("/toggle-image-visibility", response_model=ToggleVisibilityResponse)
async def toggle_image_visibility(
    payload: ToggleVisibilityRequest, visibility: Visibility
) -> ToggleVisibilityResponse:
    image = await visibility.set_hidden(payload.room_id, payload.filename, payload.hide)
    return ToggleVisibilityResponse(
        message="Image hidden" if image.is_hidden else "Image visible",
        new_filename=image.filename,
        url=image.url,
        is_hidden=image.is_hidden,
    )


@router.delete("/delete-image", response_model=DeleteImageResponse)
async def delete_image(
    room_id: Annotated[str, Query(alias="roomId")],
    filename: Annotated[str, Query()],
    deletion: Deletion,
) -> DeleteImageResponse:
    await deletion.delete_image(room_id, filename)
    return DeleteImageResponse(message=f"Deleted {filename}")


@router.post("/update-image", response_model=ReplaceImageResponse)
async def update_image(
    room_id: Annotated[str, Form(alias="roomId")],
    filename: Annotated[str, Form()],
    image: Annotated[UploadFile, File()],
    catalogue: Catalogue,
) -> ReplaceImageResponse:
    stored, last_updated = await catalogue.replace_image(
        room_id, filename, await read_image_upload(image)
    )
    return ReplaceImageResponse(
        message=f"Replaced {stored.filename}",
        filename=stored.filename,
        url=stored.url,
        last_updated=last_updated,
    )


__all__ = ["router"]
