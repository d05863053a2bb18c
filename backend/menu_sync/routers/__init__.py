"""
HTTP routers.

- health: liveness and dependency checks
- maintenance: operator surface under /api/sync/{tenant_id}/{location_id}
"""

from .health import router as health_router
from .maintenance import router as maintenance_router

__all__ = ["health_router", "maintenance_router"]
