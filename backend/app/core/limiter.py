from starlette.requests import Request

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import get_settings

TEST_RATE_LIMIT_HEADER = "X-Test-Rate-Limit-Key"


def client_key(request: Request) -> str:
    """Rate limit bucket for a guest.

    The public site sits behind a proxy, so the first ``X-Forwarded-For`` hop
    identifies the guest. Tests may pick their own bucket through a header,
    which is ignored outside ``APP_ENV=test``.
    """

    if get_settings().app_env == "test":
        override = request.headers.get(TEST_RATE_LIMIT_HEADER)
        if override:
            return override
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",", 1)[0].strip()
    return first_hop or get_remote_address(request)


def inquiry_rate_limit() -> str:
    return get_settings().inquiry_rate_limit


limiter = Limiter(key_func=client_key, default_limits=[], headers_enabled=True)

__all__ = ["TEST_RATE_LIMIT_HEADER", "client_key", "inquiry_rate_limit", "limiter"]
