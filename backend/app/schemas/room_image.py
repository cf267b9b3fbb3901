"""Schemas for the room image management endpoints."""

from __future__ import annotations

from pydantic import Field

from app.schemas.base import CamelModel
from app.services.swap import SwapResult


class RoomImageRead(CamelModel):
    filename: str
    url: str
    is_main: bool
    is_hidden: bool
    order: int


class RoomImagesResponse(CamelModel):
    success: bool = True
    room_id: str
    images: list[RoomImageRead]
    has_main: bool
    last_updated: int | None = None


class SetMainImageRequest(CamelModel):
    room_id: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)


class SwappedImages(CamelModel):
    new_main: str | None = None
    new_source: str | None = None
    old_main: str | None = None
    old_source: str | None = None


class SwapVerificationRead(CamelModel):
    main_image_exists: bool
    source_image_exists: bool
    main_image_url: str | None = None
    url_changed: bool
    stale_keys: list[str] = Field(default_factory=list)


class SetMainImageResponse(CamelModel):
    success: bool
    message: str
    outcome: str
    swapped: SwappedImages | None = None
    verification: SwapVerificationRead | None = None
    main_image_url: str | None = None
    last_updated: int | None = None
    error: str | None = None
    details: str | None = None
    phase: str | None = None
    manual_recovery_required: bool = False
    staging_keys: list[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: SwapResult) -> "SetMainImageResponse":
        verification = None
        if result.verification is not None:
            verification = SwapVerificationRead(
                main_image_exists=result.verification.main_image_exists,
                source_image_exists=result.verification.source_image_exists,
                main_image_url=result.verification.main_image_url,
                url_changed=result.verification.url_changed,
                stale_keys=list(result.verification.stale_keys),
            )
        return cls(
            success=result.success,
            message=result.message,
            outcome=result.outcome.value,
            swapped=SwappedImages(
                new_main=result.new_main.filename if result.new_main else None,
                new_source=result.new_source.filename if result.new_source else None,
                old_main=result.old_main,
                old_source=result.old_source,
            ),
            verification=verification,
            main_image_url=result.new_main.url if result.new_main else None,
            last_updated=result.last_updated,
            error=result.error,
            details=result.details,
            phase=result.failed_phase.value if result.failed_phase else None,
            manual_recovery_required=result.manual_recovery_required,
            staging_keys=list(result.staging_keys),
        )


class ToggleVisibilityRequest(CamelModel):
    room_id: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    hide: bool


class ToggleVisibilityResponse(CamelModel):
    success: bool = True
    message: str
    new_filename: str
    url: str
    is_hidden: bool


class DeleteImageResponse(CamelModel):
    success: bool = True
    message: str


class ReplaceImageResponse(CamelModel):
    success: bool = True
    message: str
    filename: str
    url: str
    last_updated: int | None = None


__all__ = [
    "DeleteImageResponse",
    "ReplaceImageResponse",
    "RoomImageRead",
    "RoomImagesResponse",
    "SetMainImageRequest",
    "SetMainImageResponse",
    "SwapVerificationRead",
    "SwappedImages",
    "ToggleVisibilityRequest",
    "ToggleVisibilityResponse",
]
