"""Room description translation through a MyMemory-compatible HTTP API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.config import get_settings
from app.schemas.translation import (
    RoomTranslationEntry,
    RoomTranslationStatus,
    TranslationPreviewItem,
    TranslationSummary,
)
from app.services.errors import CmsError, RoomNotFoundError
from app.services.metadata_store import MetadataStore
from app.services.room_locks import RoomLocks, room_locks
from app.services.room_metadata import deleted_rooms, editing_rooms, load_rooms, next_timestamp

logger = logging.getLogger("app.translation")

LANGUAGE_CODES = {"zh": "zh-CN"}

STATUS_TRANSLATED = "translated"
STATUS_WOULD_TRANSLATE = "would be translated"
STATUS_HAS_TRANSLATIONS = "skipped (already has translations)"
STATUS_NO_DESCRIPTION = "skipped (no description)"
STATUS_ROOM_NOT_FOUND = "error: room not found"
STATUS_UPDATED = "updated with translations"


def provider_language(code: str) -> str:
    return LANGUAGE_CODES.get(code, code)


async def translate_text(
    text: str,
    target_language: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Translate ``text``; any failure returns ``text`` unchanged."""

    settings = get_settings()
    source = settings.translation_source_language
    if not text.strip() or target_language == source:
        return text
    params = {"q": text, "langpair": f"{source}|{provider_language(target_language)}"}

    async def _perform(request_client: httpx.AsyncClient) -> str:
        try:
            response = await request_client.get(
                settings.translation_api_url,
                params=params,
                timeout=settings.translation_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Translation request failed",
                extra={"language": target_language, "error": str(exc)},
            )
            return text
        if response.status_code != 200:
            logger.warning(
                "Translation provider returned an error",
                extra={"language": target_language, "status_code": response.status_code},
            )
            return text
        try:
            payload: Any = response.json()
        except ValueError:
            return text
        if not isinstance(payload, dict) or payload.get("responseStatus") not in (200, "200"):
            return text
        translated = (payload.get("responseData") or {}).get("translatedText")
        return translated if isinstance(translated, str) and translated.strip() else text

    if client is not None:
        return await _perform(client)
    async with httpx.AsyncClient() as owned_client:
        return await _perform(owned_client)


async def translate_description(
    text: str,
    *,
    languages: list[str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, str]:
    """Translate into every supported language concurrently; the source is copied as-is."""

    settings = get_settings()
    languages = languages or settings.supported_languages
    source = settings.translation_source_language
    targets = [lang for lang in languages if lang != source]

    async def _run(request_client: httpx.AsyncClient) -> dict[str, str]:
        translated = await asyncio.gather(
            *(translate_text(text, lang, client=request_client) for lang in targets)
        )
        return {source: text, **dict(zip(targets, translated))}

    if client is not None:
        return await _run(client)
    async with httpx.AsyncClient() as owned_client:
        return await _run(owned_client)


def _has_translations(room: dict[str, Any]) -> bool:
    return bool(room.get("descriptionI18n"))


@dataclass(slots=True)
class TranslationRun:
    results: list[RoomTranslationStatus] = field(default_factory=list)

    @property
    def summary(self) -> TranslationSummary:
        done = (STATUS_TRANSLATED, STATUS_WOULD_TRANSLATE, STATUS_UPDATED)
        translated = sum(1 for item in self.results if item.status in done)
        skipped = sum(1 for item in self.results if item.status.startswith("skipped"))
        errors = sum(1 for item in self.results if item.status.startswith("error"))
        return TranslationSummary(
            total=len(self.results), translated=translated, skipped=skipped, errors=errors
        )


class RoomTranslator:
    def __init__(
        self,
        metadata: MetadataStore,
        *,
        client: httpx.AsyncClient | None = None,
        languages: list[str] | None = None,
        locks: RoomLocks | None = None,
    ) -> None:
        self.metadata = metadata
        self._client = client
        self._locks = locks or room_locks
        self._languages = languages or get_settings().supported_languages

    async def _active_rooms(self) -> dict[str, dict[str, Any]]:
        rooms = await load_rooms(self.metadata)
        deleted = await deleted_rooms(self.metadata)
        return {room_id: room for room_id, room in rooms.items() if room_id not in deleted}

    async def preview(self) -> list[TranslationPreviewItem]:
        rooms = await self._active_rooms()
        return [
            TranslationPreviewItem(
                room_id=room_id,
                name=room.get("name") or room_id,
                has_description=bool((room.get("description") or "").strip()),
                translated_languages=sorted(room.get("descriptionI18n") or {}),
                needs_translation=not _has_translations(room)
                and bool((room.get("description") or "").strip()),
            )
            for room_id, room in rooms.items()
        ]

    async def rooms_for_translation(self) -> list[RoomTranslationEntry]:
        rooms = await self._active_rooms()
        return [
            RoomTranslationEntry(
                room_id=room_id,
                name=room.get("name") or room_id,
                description=room.get("description") or "",
                description_i18n=room.get("descriptionI18n") or {},
            )
            for room_id, room in rooms.items()
        ]

    async def auto_translate(self, *, overwrite: bool = False, dry_run: bool = False) -> TranslationRun:
        rooms = await self._active_rooms()
        if not rooms:
            raise RoomNotFoundError("No rooms found")

        run = TranslationRun()
        updated: dict[str, dict[str, Any]] = {}
        for room_id, room in rooms.items():
            name = room.get("name") or room_id
            if not overwrite and _has_translations(room):
                run.results.append(
                    RoomTranslationStatus(room_id=room_id, name=name, status=STATUS_HAS_TRANSLATIONS)
                )
                continue
            description = (room.get("description") or "").strip()
            if not description:
                run.results.append(
                    RoomTranslationStatus(room_id=room_id, name=name, status=STATUS_NO_DESCRIPTION)
                )
                continue
            translations = await translate_description(
                description, languages=self._languages, client=self._client
            )
            updated[room_id] = translations
            run.results.append(
                RoomTranslationStatus(
                    room_id=room_id,
                    name=name,
                    status=STATUS_WOULD_TRANSLATE if dry_run else STATUS_TRANSLATED,
                    languages=sorted(translations),
                    translations=translations if dry_run else None,
                )
            )

        if updated and not dry_run:
            await self._store(updated)
        return run

    async def bulk_translate(self, translations: dict[str, dict[str, str]]) -> TranslationRun:
        rooms = await self._active_rooms()
        run = TranslationRun()
        updated: dict[str, dict[str, str]] = {}
        for room_id, texts in translations.items():
            room = rooms.get(room_id)
            if room is None:
                run.results.append(RoomTranslationStatus(room_id=room_id, status=STATUS_ROOM_NOT_FOUND))
                continue
            cleaned = {lang: text.strip() for lang, text in texts.items() if text and text.strip()}
            if not cleaned:
                run.results.append(
                    RoomTranslationStatus(
                        room_id=room_id, name=room.get("name"), status=STATUS_NO_DESCRIPTION
                    )
                )
                continue
            updated[room_id] = cleaned
            run.results.append(
                RoomTranslationStatus(
                    room_id=room_id,
                    name=room.get("name") or room_id,
                    status=STATUS_UPDATED,
                    languages=sorted(cleaned),
                )
            )
        if updated:
            await self._store(updated)
        return run

    async def _store(self, translations: dict[str, dict[str, str]]) -> None:
        # Translations can take a while; merge into a fresh copy of the blob.
        try:
            async with editing_rooms(self.metadata, locks=self._locks) as rooms:
                for room_id, texts in translations.items():
                    room = rooms.get(room_id)
                    if room is None:
                        continue
                    room["descriptionI18n"] = texts
                    room["lastUpdated"] = next_timestamp(room.get("lastUpdated"))
        except CmsError:
            logger.error("Could not store room translations", extra={"rooms": sorted(translations)})
            raise
        logger.info("Stored room translations", extra={"rooms": sorted(translations)})


__all__ = [
    "LANGUAGE_CODES",
    "RoomTranslator",
    "TranslationRun",
    "provider_language",
    "translate_description",
    "translate_text",
]
