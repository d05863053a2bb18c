"""
Redis Health Check Functions.
"""

from __future__ import annotations

from typing import Any

from shared.config.settings import settings
from shared.utils.health import health_check_with_timeout
from .redis_pool import get_redis_pool


@health_check_with_timeout(timeout=3.0, component="redis")
async def check_redis_health() -> dict[str, Any]:
    """Ping the async Redis pool used by the event emitter."""
    pool = await get_redis_pool()
    await pool.ping()
    return {"max_connections": settings.redis_pool_max_connections}
