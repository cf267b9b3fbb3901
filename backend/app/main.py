"""Application entrypoint for the Pica Inn API."""

from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import ExceptionHandler

from app.api.v1 import api_router
from app.core.config import get_settings
from app.core.limiter import limiter
from app.core.logging import RequestIDMiddleware, RequestLoggingMiddleware, configure_logging
from app.core.metrics import setup_metrics
from app.core.sentry import init_sentry
from app.services.errors import CmsError
from app.services.metadata_store import get_redis

logger = logging.getLogger("app.errors")


async def _cms_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = cast(CmsError, exc)
    log = logger.error if error.status_code >= 500 else logger.info
    log(
        "Request failed",
        extra={
            "path": request.url.path,
            "status_code": error.status_code,
            "error": error.error,
            "details": error.details,
        },
    )
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    init_sentry(settings)

    lifecycle = logging.getLogger("app.lifecycle")

    app = FastAPI(title="Pica Inn API", version="1.0.0")

    app.state.limiter = limiter
    app.add_exception_handler(
        RateLimitExceeded,
        cast(ExceptionHandler, _rate_limit_exceeded_handler),
    )
    app.add_exception_handler(CmsError, _cms_error_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_min_length)

    allow_origins = list(settings.cors_allowed_origins)
    if not allow_origins:
        allow_origins = ["*"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(api_router)

    app.state.instrumentator = setup_metrics(app)

    @app.on_event("startup")
    async def _on_startup() -> None:
        if not settings.s3_bucket:
            lifecycle.warning("S3_BUCKET is not set; room image endpoints will answer 503")
        if not (settings.admin_user and settings.admin_pass):
            lifecycle.warning("ADMIN_USER/ADMIN_PASS are not set; CMS endpoints are locked")
        lifecycle.info(
            "Application startup complete",
            extra={"environment": settings.app_env, "bucket": settings.s3_bucket},
        )

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        if get_redis.cache_info().currsize:
            await get_redis().aclose()
            get_redis.cache_clear()
        lifecycle.info("Application shutdown complete")

    return app


app = create_app()
