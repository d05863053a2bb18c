"""
Consistency validator: diffs the menu catalog against the POS catalog.

Read-only. A mismatch is reported through ``SyncReport(valid=False)``;
it is a normal outcome, not an error.
"""

from shared.config.constants import Collections
from shared.config.logging import reconciliation_logger as logger
from shared.utils.retry import retry_async
from menu_sync.schemas import SyncReport, SyncStats
from menu_sync.store import DocumentStore, Scope, TransientStoreError


class ConsistencyValidator:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def _ids(self, collection: str, scope: Scope) -> set[str]:
        documents = await retry_async(
            self._store.query,
            collection,
            scope,
            {"tenantId": scope.tenant_id, "locationId": scope.location_id},
            retry_on=(TransientStoreError,),
            description=f"query {collection}",
        )
        return {str(doc["id"]) for doc in documents if doc.get("id")}

    async def validate(self, tenant_id: str, location_id: str) -> SyncReport:
        """
        Compare menu item ids with POS item ids for one scope.

        orphans  = POS ids without a menu item
        unlinked = menu ids without a POS item
        """
        scope = Scope(tenant_id, location_id)
        menu_ids = await self._ids(Collections.MENU_ITEMS, scope)
        pos_ids = await self._ids(Collections.POS_ITEMS, scope)

        orphans = sorted(pos_ids - menu_ids)
        unlinked = sorted(menu_ids - pos_ids)

        issues = [f"Orphaned POS item {item_id}: no matching menu item" for item_id in orphans]
        issues += [f"Menu item {item_id} has no POS item" for item_id in unlinked]
        if len(menu_ids) != len(pos_ids):
            issues.append(
                f"Count mismatch: {len(menu_ids)} menu items vs {len(pos_ids)} POS items"
            )

        report = SyncReport(
            valid=not issues,
            issues=issues,
            stats=SyncStats(
                menu_items=len(menu_ids),
                pos_items=len(pos_ids),
                linked_items=len(menu_ids & pos_ids),
                orphaned_items=len(orphans),
            ),
            orphan_ids=orphans,
            unlinked_ids=unlinked,
        )

        logger.info(
            "Validation complete",
            tenant_id=tenant_id,
            location_id=location_id,
            valid=report.valid,
            menu_items=report.stats.menu_items,
            pos_items=report.stats.pos_items,
            orphans=len(orphans),
            unlinked=len(unlinked),
        )
        return report
