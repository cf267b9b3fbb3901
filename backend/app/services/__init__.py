from .deletion import DeletionService, RoomDeletion
from .errors import (
    CmsError,
    ImageNotFoundError,
    InvalidRequestError,
    MainImageProtectedError,
    RoomNotFoundError,
    StorageOperationError,
)
from .main_image import MainImageEnforcer
from .room_images import RoomImage, RoomImageRepository
from .swap import SwapOrchestrator, SwapOutcome, SwapResult
from .visibility import VisibilityToggle

__all__ = [
    "CmsError",
    "DeletionService",
    "ImageNotFoundError",
    "InvalidRequestError",
    "MainImageEnforcer",
    "MainImageProtectedError",
    "RoomDeletion",
    "RoomImage",
    "RoomImageRepository",
    "RoomNotFoundError",
    "StorageOperationError",
    "SwapOrchestrator",
    "SwapOutcome",
    "SwapResult",
    "VisibilityToggle",
]
