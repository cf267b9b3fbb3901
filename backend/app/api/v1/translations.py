from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Depends

from app.core.config import get_settings
from app.deps import get_translator
from app.schemas.translation import (
    AutoTranslateRequest,
    AutoTranslateResponse,
    BulkTranslateRequest,
    BulkTranslateResponse,
    RoomsForTranslationResponse,
    TranslationPreviewResponse,
)
from app.services.translation import RoomTranslator

router = APIRouter(tags=["translations"])

Translator = Annotated[RoomTranslator, Depends(get_translator)]


@router.get("/auto-translate-rooms", response_model=TranslationPreviewResponse)
async def preview_translations(translator: Translator) -> TranslationPreviewResponse:
    return TranslationPreviewResponse(
        rooms=await translator.preview(),
        supported_languages=list(get_settings().supported_languages),
    )


@router.post("/auto-translate-rooms", response_model=AutoTranslateResponse)
async def auto_translate_rooms(
    translator: Translator,
    payload: Annotated[AutoTranslateRequest | None, Body()] = None,
) -> AutoTranslateResponse:
    options = payload or AutoTranslateRequest()
    run = await translator.auto_translate(overwrite=options.overwrite, dry_run=options.dry_run)
    summary = run.summary
    if options.dry_run:
        message = f"Dry run: {summary.translated} room(s) would be translated"
    else:
        message = f"Translated {summary.translated} of {summary.total} room(s)"
    return AutoTranslateResponse(
        message=message,
        dry_run=options.dry_run,
        results=run.results,
        summary=summary,
    )


@router.post("/bulk-translate-rooms", response_model=BulkTranslateResponse)
async def bulk_translate_rooms(
    payload: BulkTranslateRequest, translator: Translator
) -> BulkTranslateResponse:
    run = await translator.bulk_translate(payload.translations)
    summary = run.summary
    return BulkTranslateResponse(
        message=f"Updated translations for {summary.translated} room(s)",
        results=run.results,
        summary=summary,
    )


@router.get("/fetch-rooms-for-translation", response_model=RoomsForTranslationResponse)
async def fetch_rooms_for_translation(translator: Translator) -> RoomsForTranslationResponse:
    return RoomsForTranslationResponse(rooms=await translator.rooms_for_translation())


__all__ = ["router"]
