"""
Menu sync service main application.
Entry point for the FastAPI server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from shared.infrastructure.correlation import CorrelationIdMiddleware
from menu_sync.core.cors import configure_cors
from menu_sync.core.lifespan import lifespan
from menu_sync.routers import health_router, maintenance_router


app = FastAPI(
    title="Menu Sync API",
    description="Menu/POS synchronization and real-time cost propagation",
    version="0.1.0",
    lifespan=lifespan,
)

configure_cors(app)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health_router)
app.include_router(maintenance_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("menu_sync.main:app", host="0.0.0.0", port=settings.api_port)
