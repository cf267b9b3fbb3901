from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, Response
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from app.core.config import get_settings
from app.deps import get_deletion_service, get_room_catalogue, read_image_upload
from app.schemas.room import (
    DeletedRoomsResponse,
    RoomCreateResponse,
    RoomDeleteResponse,
    RoomFields,
    RoomListResponse,
    RoomOrder,
    RoomOrderResponse,
    RoomUpdateResponse,
)
from app.services.deletion import DeletionService
from app.services.errors import InvalidRequestError
from app.services.rooms import RoomCatalogue
from app.services.storage import ImageUpload

public_router = APIRouter(tags=["rooms"])
router = APIRouter(tags=["rooms"])

Catalogue = Annotated[RoomCatalogue, Depends(get_room_catalogue)]
Deletion = Annotated[DeletionService, Depends(get_deletion_service)]


def _room_fields(form: Any) -> RoomFields:
    try:
        return RoomFields.from_form(form, get_settings().supported_languages)
    except ValidationError as exc:
        fields = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise InvalidRequestError("Missing or invalid room fields", details=", ".join(fields)) from exc


async def _uploads(form: Any) -> list[ImageUpload]:
    # Browsers submit an empty part for an untouched file input.
    return [
        await read_image_upload(item)
        for item in form.getlist("images")
        if isinstance(item, UploadFile) and item.filename
    ]


@public_router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(response: Response, catalogue: Catalogue) -> RoomListResponse:
    response.headers["Cache-Control"] = "no-store"
    return RoomListResponse(rooms=await catalogue.list_rooms())


@router.post("/upload-room", response_model=RoomCreateResponse)
async def upload_room(request: Request, catalogue: Catalogue) -> RoomCreateResponse:
    form = await request.form()
    fields = _room_fields(form)
    room = await catalogue.create_room(fields, await _uploads(form))
    return RoomCreateResponse(
        message=f"Room {room.name} created",
        room_id=room.id,
        main_image_url=room.main_image_url,
    )


@router.post("/update-room", response_model=RoomUpdateResponse)
async def update_room(request: Request, catalogue: Catalogue) -> RoomUpdateResponse:
    form = await request.form()
    room_id = form.get("roomId")
    if not isinstance(room_id, str) or not room_id.strip():
        raise InvalidRequestError("Room ID is required")
    fields = _room_fields(form)
    update = await catalogue.update_room(room_id.strip(), fields, await _uploads(form))
    message = f"Room {update.room.name} updated"
    if update.failed_images:
        message += f"; {len(update.failed_images)} image(s) failed to upload"
    return RoomUpdateResponse(
        message=message,
        room_id=update.room.id,
        last_updated=update.room.last_updated or 0,
        added_images=update.added_images,
        failed_images=update.failed_images,
    )


@router.delete("/delete-room", response_model=RoomDeleteResponse)
async def delete_room(
    room_id: Annotated[str, Query(alias="roomId")], deletion: Deletion
) -> RoomDeleteResponse:
    result = await deletion.delete_room(room_id)
    message = f"Room {result.room_id} deleted"
    if result.objects_failed:
        message += f"; {result.objects_failed} stored image(s) could not be removed"
    return RoomDeleteResponse(
        message=message,
        objects_removed=result.objects_removed,
        objects_failed=result.objects_failed,
    )


@router.get("/room-order", response_model=RoomOrderResponse)
async def get_room_order(catalogue: Catalogue) -> RoomOrderResponse:
    return RoomOrderResponse(order=await catalogue.get_order())


@router.post("/room-order", response_model=RoomOrderResponse)
async def set_room_order(payload: RoomOrder, catalogue: Catalogue) -> RoomOrderResponse:
    return RoomOrderResponse(order=await catalogue.set_order(payload.order))


@router.get("/deleted-rooms", response_model=DeletedRoomsResponse)
async def list_deleted_rooms(catalogue: Catalogue) -> DeletedRoomsResponse:
    return DeletedRoomsResponse(deleted_rooms=await catalogue.list_deleted_rooms())


__all__ = ["public_router", "router"]
