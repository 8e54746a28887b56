"""FastAPI server for the Difference Between party card game."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog import create_card_catalog
from config import config
from errors import GameError
from logging_config import setup_logging
from middleware.ratelimit import RateLimitMiddleware
from middleware.request_id import RequestIDMiddleware
from registry import GameRegistry
from routers.games import game_error_handler, router as games_router, set_game_service
from routers.health import router as health_router, set_health_dependencies
from services.game_service import GameService
from services.ratelimit import RateLimiter

# Initialize Sentry if configured
if config.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )

setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

if config.SENTRY_DSN:
    logger.info("Sentry error tracking initialized")


# =============================================================================
# Games (in memory for the life of the process)
# =============================================================================

registry = GameRegistry(
    max_id=config.game.max_game_id,
    expiry_seconds=config.game.expiry_hours * 3600,
)
card_catalog = create_card_catalog(config.cards)
game_service = GameService(
    registry=registry,
    fetch_cards=card_catalog.fetch_cards,
    hand_size=config.game.hand_size,
)
set_game_service(game_service)

_redis_client: Optional[redis.Redis] = None
_rate_limiter: Optional[RateLimiter] = None
_expiry_task: Optional[asyncio.Task] = None


async def _init_redis():
    """Initialize Redis client and rate limiter."""
    global _redis_client, _rate_limiter
    try:
        _redis_client = redis.from_url(config.REDIS_URL, decode_responses=False)
        await _redis_client.ping()
        logger.info("Redis client connected")

        if config.RATE_LIMIT_ENABLED:
            _rate_limiter = RateLimiter(_redis_client)
            logger.info("Rate limiter initialized")
    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - rate limiting disabled")
        _redis_client = None
        _rate_limiter = None


async def _periodic_expiry():
    """Evict idle games so their ids can be reused."""
    while True:
        try:
            await asyncio.sleep(config.game.expiry_sweep_seconds)
            registry.expire()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Game expiry sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _expiry_task

    if config.REDIS_URL:
        await _init_redis()
    else:
        logger.warning("REDIS_URL not configured - rate limiting disabled")

    set_health_dependencies(redis_client=_redis_client, registry=registry)

    _expiry_task = asyncio.create_task(_periodic_expiry())
    logger.info(f"Difference Between server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    _expiry_task.cancel()
    try:
        await _expiry_task
    except asyncio.CancelledError:
        pass

    if _redis_client:
        await _redis_client.aclose()
        logger.info("Redis connection closed")
    logger.info(f"Shutdown complete ({len(registry)} games discarded)")


app = FastAPI(
    title="Difference Between",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)


# =============================================================================
# Middleware Setup (order matters: last added = outermost)
# =============================================================================

app.add_middleware(
    RateLimitMiddleware,
    get_limiter=lambda: _rate_limiter,
    enabled=config.RATE_LIMIT_ENABLED,
)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(GameError, game_error_handler)


# =============================================================================
# Routers
# =============================================================================

app.include_router(games_router)
app.include_router(health_router)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Difference Between server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
