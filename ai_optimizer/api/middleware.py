"""
Rate-limit wrapper for HTTP handlers.

Throttles requests per client address and reports the allowance in
``X-RateLimit-*`` response headers.
"""

import functools
import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from ai_optimizer.core.rate_limit import RATE_LIMITS, RateLimitConfig, RateLimiter, retry_after_seconds

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

UNKNOWN_CLIENT = "unknown"


def client_identifier(request: Request) -> str:
    """Best-effort client address from proxy headers.

    The headers are client-controlled unless a trusted reverse proxy
    overwrites them, so this is only good enough for throttling.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT


def with_rate_limit(
    handler: Handler,
    limiter: RateLimiter,
    config: RateLimitConfig = RATE_LIMITS["general"],
) -> Handler:
    """Reject requests over ``config`` with a 429 JSON response.

    Allowed requests reach ``handler`` and get the remaining/reset/limit
    headers added to its response. Rejected ones get
    ``{"error": "Rate limit exceeded", "retryAfter": <seconds>}`` and a
    ``Retry-After`` header without ``handler`` being called.
    """
    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        identifier = client_identifier(request)
        limit = limiter.check(identifier, config)
        headers = {
            "X-RateLimit-Remaining": str(limit.remaining),
            "X-RateLimit-Reset": str(limit.reset_at_ms),
            "X-RateLimit-Limit": str(config.max_requests),
        }

        if not limit.allowed:
            retry_after = retry_after_seconds(limit, limiter.now())
            logger.debug("Rejected request from %s", identifier)
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retryAfter": retry_after},
                headers={"Retry-After": str(retry_after), **headers},
            )

        response = await handler(request)
        response.headers.update(headers)
        return response

    return wrapper
