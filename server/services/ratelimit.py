"""
Redis-based rate limiter service.

Implements a fixed window counter using Redis so limits hold across
multiple server instances. Game creation gets its own, much tighter limit:
there are only a few dozen game ids, and a single client could otherwise
hold all of them.
"""

import hashlib
import logging
import time
from typing import Optional

import redis.asyncio as redis
from fastapi import Request

logger = logging.getLogger(__name__)


# Rate limit configurations: (max_requests, window_seconds)
RATE_LIMITS = {
    "api_general": (120, 60),      # 120 requests per minute (clients poll)
    "api_create_game": (5, 60),    # 5 game creations per minute
    "api_action": (30, 10),        # 30 joins/plays/votes per 10 seconds
}


class RateLimiter:
    """Fixed window rate limiter using Redis."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize rate limiter with Redis client.

        Args:
            redis_client: Async Redis client for state storage.
        """
        self.redis = redis_client

    async def is_allowed(
        self,
        key: str,
        limit: int,
        window_seconds: int,
    ) -> tuple[bool, dict]:
        """
        Check if request is allowed under rate limit.

        Counts requests in the current window with an atomic
        INCR + EXPIRE pipeline.

        Args:
            key: Unique identifier for the rate limit bucket.
            limit: Maximum requests allowed in window.
            window_seconds: Time window in seconds.

        Returns:
            Tuple of (allowed, info) where info contains:
            - remaining: requests remaining in window
            - reset: seconds until window resets
            - limit: the limit that was applied
        """
        now = int(time.time())
        window_key = f"ratelimit:{key}:{now // window_seconds}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(window_key)
                pipe.expire(window_key, window_seconds + 1)
                results = await pipe.execute()
        except redis.RedisError as e:
            # Redis unavailable: fail open
            logger.error(f"Rate limiter Redis error: {e}")
            return True, {"remaining": limit, "reset": window_seconds, "limit": limit}

        current_count = results[0]
        info = {
            "remaining": max(0, limit - current_count),
            "reset": window_seconds - (now % window_seconds),
            "limit": limit,
        }

        allowed = current_count <= limit
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}: {current_count}/{limit}")

        return allowed, info

    def get_client_key(self, request: Request) -> str:
        """
        Generate rate limit key for a client from a hash of its IP.

        Args:
            request: HTTP request.

        Returns:
            Unique client identifier string.
        """
        client_ip = self._get_client_ip(request)
        ip_hash = hashlib.sha256(client_ip.encode()).hexdigest()[:16]
        return f"ip:{ip_hash}"

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP from request, handling proxies."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

        if request.client:
            return request.client.host

        return "unknown"


def get_limit_config(path: str, method: str) -> Optional[tuple[str, tuple[int, int]]]:
    """
    Pick the rate limit tier for a request.

    Args:
        path: Request URL path.
        method: HTTP method.

    Returns:
        Tuple of (tier name, (limit, window_seconds)) or None for no limiting.
    """
    if not path.startswith("/api"):
        return None

    key = path.rstrip("/")
    if method == "POST" and key == "/api/games":
        return "api_create_game", RATE_LIMITS["api_create_game"]
    if method == "POST":
        return "api_action", RATE_LIMITS["api_action"]
    return "api_general", RATE_LIMITS["api_general"]
