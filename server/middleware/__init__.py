"""
Middleware components for the Difference Between server.

Provides:
- RateLimitMiddleware: API rate limiting with Redis backend
- RequestIDMiddleware: Request tracing with X-Request-ID and game context
"""

from .ratelimit import RateLimitMiddleware
from .request_id import RequestIDMiddleware

__all__ = [
    "RateLimitMiddleware",
    "RequestIDMiddleware",
]
