from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.datastructures import UploadFile

from app.core.config import get_settings
from app.services.deletion import DeletionService
from app.services.hero import HeroImageService
from app.services.main_image import MainImageEnforcer
from app.services.metadata_store import MetadataStore, RedisMetadataStore, get_redis
from app.services.room_images import RoomImageRepository
from app.services.rooms import RoomCatalogue
from app.services.storage import ImageUpload, ObjectStore
from app.services.swap import SwapOrchestrator
from app.services.translation import RoomTranslator
from app.services.visibility import VisibilityToggle

basic_auth = HTTPBasic(auto_error=False, realm="Admin")


def require_admin(
    credentials: Annotated[HTTPBasicCredentials | None, Depends(basic_auth)],
) -> str:
    settings = get_settings()
    if not settings.admin_user or not settings.admin_pass:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin credentials not configured",
        )

    challenge = {"WWW-Authenticate": "Basic"}
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers=challenge,
        )

    user_ok = secrets.compare_digest(
        credentials.username.encode("utf-8"), settings.admin_user.encode("utf-8")
    )
    pass_ok = secrets.compare_digest(
        credentials.password.encode("utf-8"), settings.admin_pass.encode("utf-8")
    )
    if not (user_ok and pass_ok):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers=challenge,
        )
    return credentials.username


async def read_image_upload(file: UploadFile) -> ImageUpload:
    data = await file.read()
    return ImageUpload(
        filename=file.filename or "",
        content_type=file.content_type or "",
        data=data,
    )


def get_object_store() -> ObjectStore:
    return ObjectStore.from_settings()


def get_metadata_store() -> MetadataStore:
    return RedisMetadataStore(get_redis())


ObjectStoreDep = Annotated[ObjectStore, Depends(get_object_store)]
MetadataStoreDep = Annotated[MetadataStore, Depends(get_metadata_store)]


def get_repository(objects: ObjectStoreDep, metadata: MetadataStoreDep) -> RoomImageRepository:
    return RoomImageRepository.from_settings(objects, metadata)


RepositoryDep = Annotated[RoomImageRepository, Depends(get_repository)]


def get_enforcer(repository: RepositoryDep) -> MainImageEnforcer:
    return MainImageEnforcer(repository)


def get_swap_orchestrator(
    repository: RepositoryDep,
    enforcer: Annotated[MainImageEnforcer, Depends(get_enforcer)],
) -> SwapOrchestrator:
    return SwapOrchestrator(repository, enforcer)


def get_visibility_toggle(repository: RepositoryDep) -> VisibilityToggle:
    return VisibilityToggle(repository)


def get_deletion_service(repository: RepositoryDep) -> DeletionService:
    return DeletionService(repository)


def get_room_catalogue(repository: RepositoryDep) -> RoomCatalogue:
    return RoomCatalogue(repository)


def get_hero_service(objects: ObjectStoreDep, metadata: MetadataStoreDep) -> HeroImageService:
    return HeroImageService(objects, metadata, fallback_url=get_settings().hero_fallback_url)


def get_translator(metadata: MetadataStoreDep) -> RoomTranslator:
    return RoomTranslator(metadata)


__all__ = [
    "MetadataStoreDep",
    "ObjectStoreDep",
    "RepositoryDep",
    "basic_auth",
    "get_deletion_service",
    "get_enforcer",
    "get_hero_service",
    "get_metadata_store",
    "get_object_store",
    "get_repository",
    "get_room_catalogue",
    "get_swap_orchestrator",
    "get_translator",
    "get_visibility_toggle",
    "read_image_upload",
    "require_admin",
]
