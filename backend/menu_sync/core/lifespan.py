"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.settings import settings
from shared.config.logging import setup_logging, sync_api_logger as logger
from shared.infrastructure.events import close_redis_pool
from menu_sync.core.container import ServiceContainer


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    # Validate configuration before startup
    config_errors = settings.validate_production_settings()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with this configuration."
            )

    logger.info(
        "Starting menu sync service",
        port=settings.api_port,
        env=settings.environment,
        store=settings.store_backend,
        events=settings.events_backend,
    )

    # Store (tables are created by the SQL store factory) and services
    container = getattr(app.state, "container", None)
    if container is None:
        container = ServiceContainer.from_settings(settings)
        app.state.container = container
    logger.info("Service container ready")

    # Cost engines configured to run from startup
    for tenant_id, location_id in settings.parse_auto_start_scopes():
        try:
            await container.registry.start(tenant_id, location_id)
        except Exception as e:
            # One unreachable scope must not keep the service down
            logger.error(
                "Auto-start of cost sync failed",
                tenant_id=tenant_id,
                location_id=location_id,
                error=str(e),
            )

    yield

    # Shutdown
    logger.info("Shutting down menu sync service")

    await container.close()
    logger.info("Cost sync engines stopped and store closed")

    await close_redis_pool()
    logger.info("Redis connection pool closed")
