"""
Health Router

Explicit health checks of every provider and the cache store.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from collekt.core.dependencies import Orchestrator
from collekt.models.contracts.health import GeneralHealthResponse, HealthCheck

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    response_model=GeneralHealthResponse,
    response_model_by_alias=True,
    summary="Service health",
    description="Checks every upstream provider and the cache store",
)
async def health(orchestrator: Orchestrator) -> GeneralHealthResponse:
    results = await orchestrator.health_check()

    checks = []
    for name, result in results.items():
        checks.append(
            HealthCheck(
                service=name,
                healthy=result.is_healthy,
                message="OK" if result.is_healthy else (result.error_message or "Unhealthy"),
                metadata={"response_time_ms": result.response_time_ms},
            )
        )

    # unhealthy when the cache or every provider is down
    cache_ok = results.get("cache") is None or results["cache"].is_healthy
    if all(c.healthy for c in checks):
        overall = "healthy"
    elif cache_ok and any(c.healthy for c in checks if c.service != "cache"):
        overall = "degraded"
    else:
        overall = "unhealthy"

    if overall != "healthy":
        logger.warning(f"Health check {overall}: {[c.service for c in checks if not c.healthy]}")

    return GeneralHealthResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
