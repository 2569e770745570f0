"""
Login throttling with SlowAPI.

Counters live in Redis when REDIS_URL is set so every instance shares them,
otherwise in process memory.
"""

import logging
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from upnext.core.config import settings

logger = logging.getLogger("upnext.rate_limiter")

DEFAULT_RETRY_AFTER = 60


def get_real_client_ip(request: Request) -> str:
    """Client address as seen by the outermost proxy."""
    for header in ("X-Forwarded-For", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For is "client, proxy1, proxy2"
            return value.split(",")[0].strip()
    return get_remote_address(request)


def _storage_uri() -> Optional[str]:
    if settings.REDIS_URL:
        logger.info(f"Rate limit counters in Redis at {settings.REDIS_URL.rpartition('@')[2]}")
        return settings.REDIS_URL
    if settings.ENVIRONMENT.lower() == "production":
        logger.warning("Rate limit counters are per-process; set REDIS_URL to share them across instances")
    return None


limiter = Limiter(
    key_func=get_real_client_ip,
    storage_uri=_storage_uri(),
    strategy="fixed-window",
    headers_enabled=False,
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = getattr(exc, "retry_after", None) or DEFAULT_RETRY_AFTER
    logger.warning(f"Throttled {get_real_client_ip(request)} on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "detail": f"Too many requests. Retry in {retry_after} seconds.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )
