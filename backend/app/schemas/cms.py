from __future__ import annotations

from app.schemas.base import CamelModel


class HeroImageResponse(CamelModel):
    url: str
    timestamp: int | None = None
    is_fallback: bool = False


class HeroUpdateResponse(CamelModel):
    success: bool = True
    message: str
    url: str
    timestamp: int


class HeroDeleteResponse(CamelModel):
    success: bool = True
    message: str
    timestamp: int


__all__ = ["HeroDeleteResponse", "HeroImageResponse", "HeroUpdateResponse"]
