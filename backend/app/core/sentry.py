"""Error tracking for the CMS.

Swap failures that leave a room needing manual recovery are logged at ERROR,
so the logging integration turns them into Sentry events. Events are tagged
with the room being worked on and scrubbed of guest e-mail addresses, which
reach the logs through booking inquiries.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from app.core.config import Settings
from app.core.mail import mask_addresses

logger = logging.getLogger("app.sentry")


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return mask_addresses(value)
    if isinstance(value, dict):
        return {key: _scrub(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_scrub(item) for item in value]
    return value


def before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any]:
    extra = event.get("extra") or {}
    room_id = extra.get("room_id")
    if room_id:
        event.setdefault("tags", {})["room_id"] = room_id
    for field in ("message", "logentry", "extra", "breadcrumbs"):
        if field in event:
            event[field] = _scrub(event[field])
    return event


def init_sentry(settings: Settings) -> bool:
    """Start the SDK when ``SENTRY_DSN`` is set; return whether it was started."""

    if not settings.sentry_dsn:
        logger.info("Sentry DSN not configured; skipping error tracking setup")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=before_send,
        send_default_pii=False,
    )
    logger.info(
        "Sentry initialised",
        extra={"environment": settings.app_env, "traces_sample_rate": settings.sentry_traces_sample_rate},
    )
    return True


__all__ = ["before_send", "init_sentry"]
