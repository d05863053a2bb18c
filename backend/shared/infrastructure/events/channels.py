"""
Redis Channel Naming.

Channels are scoped by (tenant, location), mirroring the document store
partitioning.
"""

from __future__ import annotations


def _validate_scope_id(id_value: str, name: str) -> None:
    """Scope identifiers must be non-empty strings without the ':' separator."""
    if not isinstance(id_value, str) or not id_value.strip():
        raise ValueError(f"{name} must be a non-empty string, got {id_value!r}")
    if ":" in id_value:
        raise ValueError(f"{name} must not contain ':', got {id_value!r}")


def channel_location_menu(tenant_id: str, location_id: str) -> str:
    """Channel for menu catalog notifications (cost updates, resyncs) of one location."""
    _validate_scope_id(tenant_id, "tenant_id")
    _validate_scope_id(location_id, "location_id")
    return f"tenant:{tenant_id}:location:{location_id}:menu"


def channel_tenant_menu(tenant_id: str) -> str:
    """Channel for tenant-wide menu notifications."""
    _validate_scope_id(tenant_id, "tenant_id")
    return f"tenant:{tenant_id}:menu"
