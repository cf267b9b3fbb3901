"""Schemas for the room description translation tools."""

from __future__ import annotations

from pydantic import Field

from app.schemas.base import CamelModel


class AutoTranslateRequest(CamelModel):
    overwrite: bool = False
    dry_run: bool = False


class RoomTranslationStatus(CamelModel):
    room_id: str
    name: str | None = None
    status: str
    languages: list[str] = Field(default_factory=list)
    translations: dict[str, str] | None = None


class TranslationSummary(CamelModel):
    total: int = 0
    translated: int = 0
    skipped: int = 0
    errors: int = 0


class AutoTranslateResponse(CamelModel):
    success: bool = True
    message: str
    dry_run: bool = False
    results: list[RoomTranslationStatus]
    summary: TranslationSummary


class TranslationPreviewItem(CamelModel):
    room_id: str
    name: str
    has_description: bool
    translated_languages: list[str]
    needs_translation: bool


class TranslationPreviewResponse(CamelModel):
    success: bool = True
    rooms: list[TranslationPreviewItem]
    supported_languages: list[str]


class BulkTranslateRequest(CamelModel):
    translations: dict[str, dict[str, str]]


class BulkTranslateResponse(CamelModel):
    success: bool = True
    message: str
    results: list[RoomTranslationStatus]
    summary: TranslationSummary


class RoomTranslationEntry(CamelModel):
    room_id: str
    name: str
    description: str
    description_i18n: dict[str, str] = Field(default_factory=dict, alias="descriptionI18n")


class RoomsForTranslationResponse(CamelModel):
    success: bool = True
    rooms: list[RoomTranslationEntry]


__all__ = [
    "AutoTranslateRequest",
    "AutoTranslateResponse",
    "BulkTranslateRequest",
    "BulkTranslateResponse",
    "RoomTranslationEntry",
    "RoomTranslationStatus",
    "RoomsForTranslationResponse",
    "TranslationPreviewItem",
    "TranslationPreviewResponse",
    "TranslationSummary",
]
