"""
Health check endpoints.
Provides basic and detailed health status of the service and its dependencies.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.infrastructure.events import check_redis_health
from shared.utils.health import HealthStatus, aggregate_health_checks, health_check_with_timeout
from menu_sync.core.container import ServiceContainer, get_container


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": "healthy",
        "service": "menu-sync",
        "environment": settings.environment,
    }


@health_check_with_timeout(timeout=3.0, component="document_store")
async def check_store_health(container: ServiceContainer) -> dict:
    """Check document store connectivity."""
    await container.store.ping()
    return {"backend": type(container.store).__name__}


@router.get("/health/detailed")
async def detailed_health_check(container: ServiceContainer = Depends(get_container)):
    """
    Detailed health check that verifies connectivity to dependencies.

    Redis is only checked when it carries events. Returns 503 if any
    dependency is down.
    """
    checks = [check_store_health(container)]
    if settings.events_backend == "redis":
        checks.append(check_redis_health())
    health_results = await aggregate_health_checks(checks)

    engines = [
        {"scope": scope.key, **container.registry.status(scope.tenant_id, scope.location_id).model_dump(by_alias=True)}
        for scope in container.registry.scopes()
    ]
    body = {
        "service": "menu-sync",
        "environment": settings.environment,
        "status": health_results["status"],
        "dependencies": health_results["components"],
        "costSyncEngines": engines,
    }

    if health_results["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=body, status_code=503)
    return body
