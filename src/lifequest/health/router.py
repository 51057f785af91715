"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends, Request

from lifequest.dependencies import Services, get_services
from lifequest.redis_client import redis_status

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    services: Services = Depends(get_services),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: durable store and counter store reachability."""
    checks: dict[str, object] = dict(await services.storage.health())
    checks["counters"] = await redis_status()
    checks["quota"] = "bypassed" if services.quota.bypassed else "ok"
    degraded = checks["storage"] == "degraded" or checks["counters"] == "degraded"
    status = "degraded" if degraded else "ready"
    return {"status": status, "mode": services.storage.mode, "checks": checks}


@router.get("/version")
async def version(request: Request) -> dict[str, str]:
    """Return API version and environment."""
    settings = request.app.state.settings
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
