"""
Rate limiting middleware for FastAPI.

Applies per-endpoint rate limits and adds X-RateLimit-* headers to responses.
"""

import logging
from typing import Callable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from services.ratelimit import RateLimiter, get_limit_config

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    HTTP middleware for rate limiting API requests.

    The limiter is looked up per request because it only exists once the
    Redis connection is up; until then (or without Redis) requests pass.
    """

    def __init__(
        self,
        app,
        get_limiter: Callable[[], Optional[RateLimiter]],
        enabled: bool = True,
    ):
        """
        Initialize rate limit middleware.

        Args:
            app: FastAPI application.
            get_limiter: Returns the RateLimiter, or None when unavailable.
            enabled: Whether rate limiting is enabled.
        """
        super().__init__(app)
        self.get_limiter = get_limiter
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        limiter = self.get_limiter()
        if not self.enabled or limiter is None:
            return await call_next(request)

        tier = get_limit_config(request.url.path, request.method)
        if tier is None:
            return await call_next(request)

        tier_name, (limit, window) = tier
        full_key = f"{tier_name}:{limiter.get_client_key(request)}"

        allowed, info = await limiter.is_allowed(full_key, limit, window)

        if allowed:
            response = await call_next(request)
        else:
            response = JSONResponse(
                status_code=429,
                content={
                    "error": "RateLimitExceeded",
                    "message": f"Too many requests. Please wait {info['reset']} seconds.",
                    "retry_after": info["reset"],
                },
            )

        response.headers["X-RateLimit-Limit"] = str(info["limit"])
        response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
        response.headers["X-RateLimit-Reset"] = str(info["reset"])

        if not allowed:
            response.headers["Retry-After"] = str(info["reset"])

        return response
