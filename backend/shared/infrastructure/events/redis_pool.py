"""
Process-wide async Redis client used by the event emitter and health checks.

Created on first use and closed from the application lifespan.
"""

from __future__ import annotations

import asyncio

import redis.asyncio as redis

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)

_client: redis.Redis | None = None
_client_lock: asyncio.Lock | None = None


async def get_redis_pool() -> redis.Redis:
    """Shared client, created on first call."""
    global _client, _client_lock

    if _client is not None:
        return _client

    # Created lazily so the lock binds to the running loop
    if _client_lock is None:
        _client_lock = asyncio.Lock()

    async with _client_lock:
        if _client is None:
            _client = redis.from_url(
                settings.redis_url,
                max_connections=settings.redis_pool_max_connections,
                decode_responses=True,
                socket_connect_timeout=settings.redis_socket_timeout,
                socket_timeout=settings.redis_socket_timeout,
                health_check_interval=30,
            )
            logger.info(
                "Redis client created",
                max_connections=settings.redis_pool_max_connections,
                socket_timeout=settings.redis_socket_timeout,
            )
    return _client


async def close_redis_pool() -> None:
    """Close the shared client if one was created. Safe to call repeatedly."""
    global _client, _client_lock

    client, _client = _client, None
    _client_lock = None
    if client is not None:
        await client.aclose()
        logger.info("Redis client closed")
