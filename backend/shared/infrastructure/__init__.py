"""
Infrastructure module: Database and Redis/events.

Provides:
- Engine factory and commit helper for the SQL document store (db.py)
- Redis pub/sub for real-time notifications (events/)
- Request correlation IDs (correlation.py)
"""

from shared.infrastructure.db import (
    build_engine,
    safe_commit,
)
from shared.infrastructure.events import (
    get_redis_pool,
    close_redis_pool,
    publish_event,
)

__all__ = [
    # db
    "build_engine",
    "safe_commit",
    # events (Redis)
    "get_redis_pool",
    "close_redis_pool",
    "publish_event",
]
