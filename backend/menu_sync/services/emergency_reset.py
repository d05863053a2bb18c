"""
Emergency reset: wipe a scope's POS catalog and rebuild it from the menu.

Phase 1 deletes every POS item of the scope in chunked atomic batches.
Phase 2 runs a full sync. The two phases are not atomic together: between
them the POS catalog is empty. Re-running the reset always converges.
"""

from shared.config.constants import Collections
from shared.config.logging import reconciliation_logger as logger
from shared.config.settings import settings
from shared.utils.retry import retry_async
from menu_sync.schemas import EmergencyResetResult
from menu_sync.store import BatchOperation, DocumentStore, Scope, TransientStoreError
from .reconciliation import ReconciliationEngine


class EmergencyReset:
    def __init__(
        self,
        store: DocumentStore,
        reconciliation: ReconciliationEngine,
        batch_limit: int | None = None,
    ):
        self._store = store
        self._reconciliation = reconciliation
        self._batch_limit = batch_limit or settings.store_batch_limit

    async def run(self, tenant_id: str, location_id: str) -> EmergencyResetResult:
        scope = Scope(tenant_id, location_id)
        logger.warning("Emergency reset started", tenant_id=tenant_id, location_id=location_id)

        pos_docs = await retry_async(
            self._store.query,
            Collections.POS_ITEMS,
            scope,
            {"tenantId": tenant_id, "locationId": location_id},
            retry_on=(TransientStoreError,),
            description="load POS items",
        )
        ids = [str(doc["id"]) for doc in pos_docs if doc.get("id")]

        deleted = 0
        for start in range(0, len(ids), self._batch_limit):
            chunk = ids[start:start + self._batch_limit]
            await retry_async(
                self._store.commit_batch,
                scope,
                [BatchOperation.delete(Collections.POS_ITEMS, item_id) for item_id in chunk],
                retry_on=(TransientStoreError,),
                description="delete POS chunk",
            )
            deleted += len(chunk)
            logger.info(
                "Emergency reset chunk deleted",
                tenant_id=tenant_id,
                location_id=location_id,
                deleted=deleted,
                total=len(ids),
            )

        logger.info(
            "Emergency reset phase 1 complete",
            tenant_id=tenant_id,
            location_id=location_id,
            deleted=deleted,
        )

        sync = await self._reconciliation.full_sync(tenant_id, location_id)

        logger.warning(
            "Emergency reset completed",
            tenant_id=tenant_id,
            location_id=location_id,
            deleted=deleted,
            written=sync.written,
            failed=sync.failed,
        )
        return EmergencyResetResult(deleted=deleted, sync=sync)
