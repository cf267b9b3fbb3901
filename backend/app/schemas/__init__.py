from .room import (
    RoomFields,
    RoomListResponse,
    RoomMetadata,
    RoomOrder,
    RoomSummary,
)
from .room_image import (
    RoomImageRead,
    RoomImagesResponse,
    SetMainImageRequest,
    SetMainImageResponse,
    ToggleVisibilityRequest,
)

__all__ = [
    "RoomFields",
    "RoomImageRead",
    "RoomImagesResponse",
    "RoomListResponse",
    "RoomMetadata",
    "RoomOrder",
    "RoomSummary",
    "SetMainImageRequest",
    "SetMainImageResponse",
    "ToggleVisibilityRequest",
]
