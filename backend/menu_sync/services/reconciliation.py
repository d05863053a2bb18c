"""
Reconciliation engine: keeps the POS catalog aligned with the menu catalog.

- upsert / remove: incremental steps driven by menu mutations
- full_sync: rebuild every projection for a scope, writing only drifted ones
- cleanup_orphans: delete POS items whose menu item no longer exists

Projection writes are last-writer-wins; full_sync is the convergence
mechanism for anything an incremental step missed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from shared.config.constants import Collections
from shared.config.logging import reconciliation_logger as logger
from shared.utils.retry import retry_async
from menu_sync.schemas import FullSyncResult, MenuItem, POSItem
from menu_sync.store import DocumentStore, Scope, StoreError, TransientStoreError
from .derivation import derive_projection
from .validator import ConsistencyValidator


class ReconciliationEngine:
    def __init__(self, store: DocumentStore, validator: ConsistencyValidator | None = None):
        self._store = store
        self._validator = validator or ConsistencyValidator(store)

    @property
    def validator(self) -> ConsistencyValidator:
        return self._validator

    # =========================================================================
    # Incremental steps
    # =========================================================================

    async def upsert(self, menu_item: MenuItem) -> POSItem:
        """Write the projection of ``menu_item`` (overwrite semantics)."""
        projection = derive_projection(menu_item)
        scope = Scope(menu_item.tenant_id, menu_item.location_id)
        await retry_async(
            self._store.put,
            Collections.POS_ITEMS,
            scope,
            projection.id,
            projection.to_document(),
            retry_on=(TransientStoreError,),
            description="upsert POS item",
        )
        logger.debug(
            "POS item upserted",
            tenant_id=scope.tenant_id,
            location_id=scope.location_id,
            item_id=projection.id,
        )
        return projection

    async def remove(self, tenant_id: str, location_id: str, menu_item_id: str) -> bool:
        """Delete the POS item for ``menu_item_id``. Missing is not an error."""
        scope = Scope(tenant_id, location_id)
        deleted = await retry_async(
            self._store.delete,
            Collections.POS_ITEMS,
            scope,
            menu_item_id,
            retry_on=(TransientStoreError,),
            description="remove POS item",
        )
        logger.debug(
            "POS item removed" if deleted else "POS item already absent",
            tenant_id=tenant_id,
            location_id=location_id,
            item_id=menu_item_id,
        )
        return deleted

    # =========================================================================
    # Bulk operations
    # =========================================================================

    async def full_sync(self, tenant_id: str, location_id: str) -> FullSyncResult:
        """
        Re-project every menu item of the scope.

        Items whose stored POS projection already matches are skipped, so
        running this twice without intervening edits writes nothing the
        second time. A failure on one item is logged and counted; the loop
        moves on to the next item.
        """
        scope = Scope(tenant_id, location_id)
        filters = {"tenantId": tenant_id, "locationId": location_id}

        menu_docs = await retry_async(
            self._store.query, Collections.MENU_ITEMS, scope, filters,
            retry_on=(TransientStoreError,),
            description="load menu items",
        )
        pos_docs = await retry_async(
            self._store.query, Collections.POS_ITEMS, scope, filters,
            retry_on=(TransientStoreError,),
            description="load POS items",
        )
        existing = {str(doc.get("id")): doc for doc in pos_docs}

        result = FullSyncResult(menu_items=len(menu_docs))
        now = datetime.now(timezone.utc)

        for doc in menu_docs:
            item_id = doc.get("id")
            try:
                menu_item = MenuItem.model_validate(doc)
                projection = derive_projection(menu_item, now=now)

                current = existing.get(menu_item.id)
                if current is not None and self._is_current(current, projection):
                    result.unchanged += 1
                    continue

                await retry_async(
                    self._store.put,
                    Collections.POS_ITEMS,
                    scope,
                    projection.id,
                    projection.to_document(),
                    retry_on=(TransientStoreError,),
                    description="write POS item",
                )
                result.written += 1
            except (StoreError, PydanticValidationError) as e:
                result.failed += 1
                logger.error(
                    "Full sync failed for item",
                    tenant_id=tenant_id,
                    location_id=location_id,
                    item_id=item_id,
                    error=str(e),
                )

        logger.info(
            "Full sync completed",
            tenant_id=tenant_id,
            location_id=location_id,
            menu_items=result.menu_items,
            written=result.written,
            unchanged=result.unchanged,
            failed=result.failed,
        )
        return result

    @staticmethod
    def _is_current(stored: dict, projection: POSItem) -> bool:
        try:
            return POSItem.model_validate(stored).projected_fields() == projection.projected_fields()
        except PydanticValidationError:
            return False

    async def cleanup_orphans(self, tenant_id: str, location_id: str) -> int:
        """Delete POS items with no menu item. Returns how many were removed."""
        report = await self._validator.validate(tenant_id, location_id)
        scope = Scope(tenant_id, location_id)

        removed = 0
        for orphan_id in report.orphan_ids:
            deleted = await retry_async(
                self._store.delete,
                Collections.POS_ITEMS,
                scope,
                orphan_id,
                retry_on=(TransientStoreError,),
                description="delete orphan POS item",
            )
            if deleted:
                removed += 1

        logger.info(
            "Orphan cleanup completed",
            tenant_id=tenant_id,
            location_id=location_id,
            orphans_found=len(report.orphan_ids),
            removed=removed,
        )
        return removed
