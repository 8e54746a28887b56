"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /status - Plain "OK" for load balancers
- /ready - Readiness check (can the app handle requests?)
- /metrics - Game metrics for monitoring
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse

from registry import GameRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_redis_client = None
_registry: Optional[GameRegistry] = None


def set_health_dependencies(
    redis_client=None,
    registry: Optional[GameRegistry] = None,
):
    """Set dependencies for health checks."""
    global _redis_client, _registry
    _redis_client = redis_client
    _registry = registry


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status", response_class=PlainTextResponse)
async def status_check():
    """Plain-text liveness check."""
    logger.debug("status called")
    return "OK"


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app handle requests?

    Games live in memory, so the registry must be up. Redis is optional
    (rate limiting only); a configured but unreachable Redis is reported as
    degraded.
    """
    checks = {}
    overall_healthy = True

    if _registry is not None:
        checks["registry"] = {"status": "ok"}
    else:
        checks["registry"] = {"status": "error", "message": "not initialized"}
        overall_healthy = False

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            checks["redis"] = {"status": "ok"}
        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            checks["redis"] = {"status": "error", "message": str(e)}
            overall_healthy = False
    else:
        checks["redis"] = {"status": "not_configured"}

    return JSONResponse(
        content={
            "status": "ok" if overall_healthy else "degraded",
            "checks": checks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        status_code=200 if overall_healthy else 503,
    )


@router.get("/metrics")
async def metrics():
    """
    Expose game metrics for monitoring.

    Returns operational metrics useful for dashboards and alerting.
    """
    metrics_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if _registry is not None:
        games = _registry.games()
        phases = Counter(g.phase.value for g in games)
        metrics_data.update({
            "active_games": len(games),
            "total_players": sum(len(g.players) for g in games),
            "games_by_phase": dict(phases),
            "free_ids": _registry.free_count(),
            "max_id": _registry.max_id,
        })

    return metrics_data
