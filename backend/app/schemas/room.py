"""Schemas for room metadata and the room catalogue endpoints."""

from __future__ import annotations

import re
from typing import Any

from pydantic import Field, field_validator

from app.schemas.base import CamelModel

DEFAULT_AMENITIES = ["Wi-Fi", "Private Bathroom"]
DEFAULT_MAX_GUESTS = 2
ALT_TEXT_FIELDS = {"en": "altTextEn", "ja": "altTextJa", "ko": "altTextKo", "zh": "altTextZh"}

_SIZE_SUFFIX_RE = re.compile(r"\s*m(²|2)?\s*$", re.IGNORECASE)


def normalize_size(value: str) -> str:
    """Render a floor area as ``<n> m²`` whatever unit spelling was typed."""

    cleaned = value.strip()
    lowered = cleaned.lower()
    if lowered.endswith("m²"):
        return cleaned
    if lowered.endswith("m2"):
        return cleaned[:-2] + "m²"
    return f"{_SIZE_SUFFIX_RE.sub('', cleaned)} m²"


class RoomFields(CamelModel):
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    description_i18n: dict[str, str] | None = Field(default=None, alias="descriptionI18n")
    amenities: list[str] = Field(default_factory=lambda: list(DEFAULT_AMENITIES))
    bed_info: str = Field(..., min_length=1)
    max_guests: int = Field(DEFAULT_MAX_GUESTS, ge=1)
    size: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    map_url: str = Field(..., min_length=1)
    alt_text: dict[str, str] | None = None

    @field_validator("name", "type", "description", "bed_info", "size", "address", "map_url", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("size")
    @classmethod
    def _normalize_size(cls, value: str) -> str:
        return normalize_size(value)

    @field_validator("amenities", mode="before")
    @classmethod
    def _default_amenities(cls, value: Any) -> Any:
        if value is None:
            return list(DEFAULT_AMENITIES)
        if isinstance(value, str):
            value = [value]
        cleaned = [str(item).strip() for item in value if str(item).strip()]
        return cleaned or list(DEFAULT_AMENITIES)

    @field_validator("max_guests", mode="before")
    @classmethod
    def _coerce_max_guests(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_MAX_GUESTS
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return DEFAULT_MAX_GUESTS
        return value

    @field_validator("description_i18n", "alt_text", mode="before")
    @classmethod
    def _drop_blank_translations(cls, value: Any) -> Any:
        if not value:
            return None
        cleaned = {
            str(lang): str(text).strip() for lang, text in dict(value).items() if text and str(text).strip()
        }
        return cleaned or None

    @classmethod
    def from_form(cls, form: Any, languages: list[str]) -> "RoomFields":
        """Build from a multipart form.

        Translations arrive as ``descriptionI18n-<lang>`` fields and alt texts
        as ``altTextEn``/``altTextJa``/``altTextKo``/``altTextZh``.
        """

        def _text(name: str) -> str | None:
            value = form.get(name)
            return value if isinstance(value, str) else None

        return cls.model_validate(
            {
                "name": _text("name"),
                "type": _text("type"),
                "description": _text("description"),
                "descriptionI18n": {lang: _text(f"descriptionI18n-{lang}") for lang in languages},
                "amenities": [item for item in form.getlist("amenities") if isinstance(item, str)],
                "bedInfo": _text("bedInfo"),
                "maxGuests": _text("maxGuests"),
                "size": _text("size"),
                "address": _text("address"),
                "mapUrl": _text("mapUrl"),
                "altText": {lang: _text(field) for lang, field in ALT_TEXT_FIELDS.items()},
            }
        )


class RoomMetadata(RoomFields):
    id: str
    main_image_url: str | None = None
    last_updated: int | None = None

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RoomImageLink(CamelModel):
    filename: str
    url: str


class RoomSummary(CamelModel):
    id: str
    name: str
    type: str
    description: str
    description_i18n: dict[str, str] | None = Field(default=None, alias="descriptionI18n")
    amenities: list[str] = Field(default_factory=list)
    bed_info: str = ""
    max_guests: int = DEFAULT_MAX_GUESTS
    size: str = ""
    address: str = ""
    map_url: str = ""
    alt_text: dict[str, str] | None = None
    main_image: str
    images: list[RoomImageLink] = Field(default_factory=list)
    has_images: bool = False
    last_updated: int | None = None


class RoomListResponse(CamelModel):
    success: bool = True
    rooms: list[RoomSummary]


class RoomCreateResponse(CamelModel):
    success: bool = True
    message: str
    room_id: str
    main_image_url: str | None = None


class RoomUpdateResponse(CamelModel):
    success: bool = True
    message: str
    room_id: str
    last_updated: int
    added_images: list[str] = Field(default_factory=list)
    failed_images: list[str] = Field(default_factory=list)


class RoomDeleteResponse(CamelModel):
    success: bool = True
    message: str
    objects_removed: int = 0
    objects_failed: int = 0


class RoomOrder(CamelModel):
    order: list[str] = Field(default_factory=list)

    @field_validator("order")
    @classmethod
    def _unique(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for room_id in value:
            room_id = room_id.strip()
            if room_id and room_id not in seen:
                seen.append(room_id)
        return seen


class RoomOrderResponse(RoomOrder):
    success: bool = True


class DeletedRoomsResponse(CamelModel):
    success: bool = True
    deleted_rooms: list[str]


__all__ = [
    "DEFAULT_AMENITIES",
    "DEFAULT_MAX_GUESTS",
    "DeletedRoomsResponse",
    "RoomCreateResponse",
    "RoomDeleteResponse",
    "RoomFields",
    "RoomImageLink",
    "RoomListResponse",
    "RoomMetadata",
    "RoomOrder",
    "RoomOrderResponse",
    "RoomSummary",
    "RoomUpdateResponse",
    "normalize_size",
]
