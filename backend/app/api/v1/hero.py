from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, File, Response, UploadFile

from app.deps import get_hero_service, read_image_upload
from app.schemas.cms import HeroDeleteResponse, HeroImageResponse, HeroUpdateResponse
from app.services.hero import HeroImageService

public_router = APIRouter(tags=["hero"])
router = APIRouter(tags=["hero"])

Hero = Annotated[HeroImageService, Depends(get_hero_service)]


@public_router.get("/hero-image", response_model=HeroImageResponse)
async def get_hero_image(response: Response, hero: Hero) -> HeroImageResponse:
    response.headers["Cache-Control"] = "no-store"
    current = await hero.current()
    return HeroImageResponse(url=current.url, timestamp=current.timestamp, is_fallback=current.is_fallback)


@router.post("/update-hero", response_model=HeroUpdateResponse)
async def update_hero(image: Annotated[UploadFile, File()], hero: Hero) -> HeroUpdateResponse:
    updated = await hero.replace(await read_image_upload(image))
    return HeroUpdateResponse(
        message="Hero image updated",
        url=updated.url,
        timestamp=updated.timestamp or 0,
    )


@router.delete("/delete-hero", response_model=HeroDeleteResponse)
async def delete_hero(hero: Hero) -> HeroDeleteResponse:
    timestamp = await hero.remove()
    return HeroDeleteResponse(message="Hero image deleted", timestamp=timestamp)


__all__ = ["public_router", "router"]
