"""
Centralized constants for the menu sync service.
Avoids magic strings for collection names, statuses and sync types.

Usage:
    from shared.config.constants import Collections, MenuItemStatus

    await store.query(Collections.MENU_ITEMS, scope)

    if item.status == MenuItemStatus.ACTIVE:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# Document Store Collections
# =============================================================================


class Collections:
    """Logical collections, each partitioned by (tenantId, locationId)."""

    MENU_ITEMS: Final[str] = "menuItems"
    POS_ITEMS: Final[str] = "posItems"
    INVENTORY_ITEMS: Final[str] = "inventoryItems"

    ALL: Final[list[str]] = [MENU_ITEMS, POS_ITEMS, INVENTORY_ITEMS]


# =============================================================================
# Menu Item Status
# =============================================================================


class MenuItemStatus:
    """Menu item lifecycle status."""

    ACTIVE: Final[str] = "active"
    INACTIVE: Final[str] = "inactive"
    OUT_OF_STOCK: Final[str] = "out_of_stock"

    ALL: Final[list[str]] = [ACTIVE, INACTIVE, OUT_OF_STOCK]


# =============================================================================
# Cost Propagation
# =============================================================================


class EngineState(str, Enum):
    """Lifecycle of a per-scope cost propagation engine."""

    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"


class CostSyncType:
    """Value of lastCostSync.syncType written with every cost update."""

    REALTIME: Final[str] = "automatic-realtime"
    FORCE_SYNC: Final[str] = "force-sync"


# =============================================================================
# POS Projection Defaults
# =============================================================================


class ProjectionDefaults:
    """Defaults applied when a menu item omits an optional display field."""

    EMOJI: Final[str] = "🍽️"
    PREPARATION_TIME: Final[int] = 15  # minutes
    INGREDIENT_UNIT: Final[str] = "unit"


# =============================================================================
# Pricing Analysis
# =============================================================================


class ImpactPriority:
    """How a recommended price change should be handled."""

    AUTO: Final[str] = "auto"
    REVIEW: Final[str] = "review"
    MANUAL: Final[str] = "manual"
