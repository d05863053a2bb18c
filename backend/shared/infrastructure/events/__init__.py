"""
Event System for real-time notifications via Redis pub/sub.

This package provides:
- circuit_breaker.py: Circuit breaker guarding publishes
- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Channel naming functions
- redis_pool.py: Connection pool management
- health_checks.py: Redis health check
- publisher.py: Core publish_event with retry
"""

from .circuit_breaker import (
    CircuitState,
    EventCircuitBreaker,
    get_event_circuit_breaker,
)
from .event_types import (
    MENU_COSTS_UPDATED,
    POS_CATALOG_RESYNCED,
    POS_CATALOG_RESET,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import (
    channel_location_menu,
    channel_tenant_menu,
)
from .redis_pool import (
    get_redis_pool,
    close_redis_pool,
)
from .health_checks import check_redis_health
from .publisher import publish_event

__all__ = [
    # Circuit Breaker
    "CircuitState",
    "EventCircuitBreaker",
    "get_event_circuit_breaker",
    # Event Types
    "MENU_COSTS_UPDATED",
    "POS_CATALOG_RESYNCED",
    "POS_CATALOG_RESET",
    "MAX_EVENT_SIZE",
    # Event Schema
    "Event",
    # Channels
    "channel_location_menu",
    "channel_tenant_menu",
    # Redis Pool
    "get_redis_pool",
    "close_redis_pool",
    # Health
    "check_redis_health",
    # Publishing
    "publish_event",
]
