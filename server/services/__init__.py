"""Services package for the Difference Between server."""

from .game_service import GameService, FetchCards
from .ratelimit import RateLimiter, RATE_LIMITS, get_limit_config

__all__ = [
    "GameService",
    "FetchCards",
    "RateLimiter",
    "RATE_LIMITS",
    "get_limit_config",
]
