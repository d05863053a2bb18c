"""
Event Type Constants.

Defines the event types this service publishes to Redis pub/sub.
"""

from typing import Final

# =============================================================================
# Menu cost events
# Emitted after a cost propagation batch commits.
# =============================================================================

MENU_COSTS_UPDATED: Final[str] = "MENU_COSTS_UPDATED"

# =============================================================================
# Catalog maintenance events
# Emitted after operator maintenance actions change the POS catalog.
# =============================================================================

POS_CATALOG_RESYNCED: Final[str] = "POS_CATALOG_RESYNCED"
POS_CATALOG_RESET: Final[str] = "POS_CATALOG_RESET"

# =============================================================================
# Size limits
# =============================================================================

# Larger payloads are rejected before publishing
MAX_EVENT_SIZE: Final[int] = 64 * 1024
