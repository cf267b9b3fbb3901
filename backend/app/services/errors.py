"""Error types shared by the CMS services.

Every error carries the HTTP status and the user-visible ``error`` string the
API renders as ``{"success": false, "error": ..., "details": ..., "code": ...}``.
"""

from __future__ import annotations


class CmsError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        error: str | None = None,
        *,
        details: str | None = None,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error = error or self.default_message
        super().__init__(self.error)
        self.details = details
        self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": False, "error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        if self.code is not None:
            payload["code"] = self.code
        return payload


class InvalidRequestError(CmsError):
    status_code = 400
    default_message = "Invalid request"


class MainImageProtectedError(InvalidRequestError):
    """Raised when a request would hide or delete the room's main image."""


class RoomNotFoundError(CmsError):
    status_code = 404
    default_message = "Room not found"


class ImageNotFoundError(CmsError):
    status_code = 404
    default_message = "Image not found"


class StorageUnavailableError(CmsError):
    status_code = 503
    default_message = "Storage backend not configured"


class StorageOperationError(CmsError):
    status_code = 502
    default_message = "Storage backend error"


class ObjectNotFoundError(StorageOperationError):
    status_code = 404
    default_message = "Stored object not found"


class ObjectExistsError(StorageOperationError):
    status_code = 409
    default_message = "Stored object already exists"


class MetadataStoreError(CmsError):
    status_code = 503
    default_message = "Metadata store unavailable"


__all__ = [
    "CmsError",
    "ImageNotFoundError",
    "InvalidRequestError",
    "MainImageProtectedError",
    "MetadataStoreError",
    "ObjectExistsError",
    "ObjectNotFoundError",
    "RoomNotFoundError",
    "StorageOperationError",
    "StorageUnavailableError",
]
