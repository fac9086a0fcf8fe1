"""Per-client request throttling for the HTTP surface."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from app.schemas import SyncErrorCode
from services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = frozenset({"/health"})


def client_key(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is not None:
        return request.client.host
    return "unknown"


def install_rate_limit(app: FastAPI, limiter: FixedWindowRateLimiter, limit: int) -> None:
    """Reject requests beyond ``limit`` per client per minute with HTTP 429."""

    @app.middleware("http")
    async def enforce_rate_limit(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.url.path in _EXEMPT_PATHS:
            return await call_next(request)

        key = client_key(request)
        if not limiter.try_consume(key, limit):
            logger.warning("Rate limit exceeded", extra={"rate_key": key})
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "status": status.HTTP_429_TOO_MANY_REQUESTS,
                    "error_code": SyncErrorCode.rate_limit_exceeded.value,
                    "detail": f"Rate limit exceeded. Maximum {limit} requests per minute.",
                },
                headers={"X-RateLimit-Limit": str(limit), "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(limiter.remaining(key, limit))
        return response
