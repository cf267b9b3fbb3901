"""Logging setup shared by the API and the CMS services.

Every record carries the id of the request that produced it, and the access
log records which room an admin request touched so a failed swap can be
traced from the request line to the storage calls behind it.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.config import Settings

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_CONTEXT: ContextVar[str | None] = ContextVar("request_id", default=None)

# Probe and scrape traffic is logged at DEBUG.
QUIET_PATHS = frozenset({"/metrics", "/api/v1/health/live", "/api/v1/health/ready"})

_configured = False

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_BUILTIN_RECORD_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "request_id"}


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = REQUEST_ID_CONTEXT.get()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            entry["request_id"] = request_id
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _BUILTIN_RECORD_KEYS and not key.startswith("_")
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def configure_logging(settings: Settings) -> None:
    """Route the root and uvicorn loggers through a single stdout handler."""

    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    if settings.log_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S%z",
            )
        )

    level = settings.log_level.upper()
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.setLevel(level)
        server_logger.propagate = False

    # botocore logs credential discovery at INFO on every client build.
    for name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))

    _configured = True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Reuse the caller's request id or mint one, and echo it back."""

    def __init__(self, app: Any, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = request_id
        token = REQUEST_ID_CONTEXT.set(request_id)
        try:
            response = await call_next(request)
        finally:
            REQUEST_ID_CONTEXT.reset(token)
        response.headers[self.header_name] = request_id
        return response


def access_fields(request: Request, status_code: int, started: float) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "method": request.method,
        "path": request.url.path,
        "status_code": status_code,
        "duration_ms": round((time.perf_counter() - started) * 1000, 3),
        "client_ip": request.client.host if request.client else None,
    }
    room_id = request.query_params.get("roomId")
    if room_id:
        fields["room_id"] = room_id
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: Any, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger or logging.getLogger("app.request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.logger.exception(
                "Unhandled error during request", extra=access_fields(request, 500, started)
            )
            raise

        fields = access_fields(request, response.status_code, started)
        if response.status_code >= 500:
            self.logger.warning("Request failed", extra=fields)
        elif request.url.path in QUIET_PATHS:
            self.logger.debug("Request completed", extra=fields)
        else:
            self.logger.info("Request completed", extra=fields)
        return response


__all__ = [
    "JsonFormatter",
    "QUIET_PATHS",
    "REQUEST_ID_CONTEXT",
    "REQUEST_ID_HEADER",
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "access_fields",
    "configure_logging",
]
