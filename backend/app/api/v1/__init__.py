from fastapi import APIRouter, Depends

from app.deps import require_admin

from . import health, hero, inquiry, room_images, rooms, translations

cms_router = APIRouter(prefix="/cms", dependencies=[Depends(require_admin)])
cms_router.include_router(room_images.router)
cms_router.include_router(rooms.router)
cms_router.include_router(hero.router)
cms_router.include_router(translations.router)

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health.router, tags=["health"])
api_router.include_router(rooms.public_router)
api_router.include_router(hero.public_router)
api_router.include_router(inquiry.router)
api_router.include_router(cms_router, tags=["cms"])

__all__ = ["api_router"]
