"""
Entry points for the menu-editing collaborator.

Called after a menu item write has succeeded. Reconciliation here is
best-effort: a failure is logged and never fails the triggering mutation;
the next full sync repairs whatever was missed.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from shared.config.logging import reconciliation_logger as logger
from menu_sync.schemas import MenuItem
from menu_sync.store import StoreError
from .engine_registry import CostSyncRegistry
from .reconciliation import ReconciliationEngine


class MenuSyncHooks:
    def __init__(
        self,
        reconciliation: ReconciliationEngine,
        registry: CostSyncRegistry | None = None,
    ):
        self._reconciliation = reconciliation
        self._registry = registry

    async def on_menu_item_created(self, item: MenuItem | dict[str, Any]) -> bool:
        return await self._upsert(item, "created")

    async def on_menu_item_updated(self, item: MenuItem | dict[str, Any]) -> bool:
        return await self._upsert(item, "updated")

    async def on_menu_item_deleted(self, tenant_id: str, location_id: str, menu_item_id: str) -> bool:
        try:
            await self._reconciliation.remove(tenant_id, location_id, menu_item_id)
        except Exception as e:
            logger.error(
                "POS removal after menu delete failed",
                tenant_id=tenant_id,
                location_id=location_id,
                item_id=menu_item_id,
                error=str(e),
                exc_info=not isinstance(e, StoreError),
            )
            return False
        await self._refresh_costs(tenant_id, location_id)
        return True

    async def _upsert(self, item: MenuItem | dict[str, Any], action: str) -> bool:
        try:
            menu_item = item if isinstance(item, MenuItem) else MenuItem.model_validate(item)
            await self._reconciliation.upsert(menu_item)
        except Exception as e:
            logger.error(
                f"POS sync after menu item {action} failed",
                item_id=item.id if isinstance(item, MenuItem) else (item or {}).get("id"),
                error=str(e),
                exc_info=not isinstance(e, (StoreError, PydanticValidationError)),
            )
            return False
        await self._refresh_costs(menu_item.tenant_id, menu_item.location_id)
        return True

    async def _refresh_costs(self, tenant_id: str, location_id: str) -> None:
        if self._registry is None:
            return
        try:
            await self._registry.refresh_menu(tenant_id, location_id)
        except Exception as e:
            logger.warning(
                "Cost sync menu refresh failed",
                tenant_id=tenant_id,
                location_id=location_id,
                error=str(e),
            )
