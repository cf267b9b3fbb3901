from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException

from app.deps import get_metadata_store, get_object_store
from app.services.errors import CmsError

logger = logging.getLogger("app.health")

router = APIRouter(prefix="/health")


@router.get("/live", tags=["health"])
def live() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@router.get("/ready", tags=["health"])
async def ready() -> dict[str, str]:
    """Readiness probe verifying the metadata store and the storage bucket."""

    is_ready, detail = await _backends_ready()
    if not is_ready:
        raise HTTPException(status_code=503, detail=detail)
    return {"status": "ok"}


async def _backends_ready() -> tuple[bool, str]:
    if not await get_metadata_store().ping():
        return False, "metadata_store_unreachable"

    try:
        objects = get_object_store()
    except CmsError as exc:
        logger.error("Storage not configured during readiness check", extra={"error": exc.details or exc.error})
        return False, "storage_not_configured"
    if not await objects.ping():
        return False, "storage_unreachable"
    return True, "ok"
