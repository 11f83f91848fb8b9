"""
Rate limiting for the HTTP API.

Two per-client budgets, kept in memory by slowapi:

- the default budget, applied to every route by the middleware
- the upstream budget, for routes that make Patreon requests on the caller's
  behalf (starting a sync, archiving an item now)

A limit of zero or less turns that budget off. The upstream budget is read
from config on every request.
"""

import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import config

logger = logging.getLogger(__name__)

UNLIMITED = "1000000/minute"


def per_minute(limit: int) -> str:
    return f"{limit}/minute" if limit > 0 else UNLIMITED


def default_rate_limit() -> str:
    return per_minute(config.RATE_LIMIT_PER_MINUTE)


def upstream_rate_limit() -> str:
    return per_minute(config.UPSTREAM_RATE_LIMIT_PER_MINUTE)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[default_rate_limit()],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 telling the client how long the exceeded window lasts."""
    retry_after = exc.limit.limit.get_expiry()
    logger.warning(
        f"Rate limit {exc.detail} exceeded by {get_remote_address(request)} on {request.url.path}"
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


def setup_rate_limiting(app):
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
