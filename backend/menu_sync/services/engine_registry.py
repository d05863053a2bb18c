"""
Registry of cost propagation engines, one per (tenant, location) scope.

Owned by the service container; there is no module-level registry.
"""

from __future__ import annotations

import asyncio

from shared.config.logging import cost_sync_logger as logger
from menu_sync.schemas import CostUpdate, SyncStatus
from menu_sync.store import DocumentStore, Scope
from .cost_events import CostEventEmitter
from .cost_propagation import CostPropagationEngine
from .reconciliation import ReconciliationEngine


class CostSyncRegistry:
    def __init__(
        self,
        store: DocumentStore,
        emitter: CostEventEmitter | None = None,
        queue_size: int | None = None,
        reconciliation: ReconciliationEngine | None = None,
    ):
        self._store = store
        self._emitter = emitter
        self._queue_size = queue_size
        self._reconciliation = reconciliation or ReconciliationEngine(store)
        self._engines: dict[Scope, CostPropagationEngine] = {}

    def get(self, scope: Scope) -> CostPropagationEngine:
        """Engine for ``scope``, created (stopped) on first use."""
        engine = self._engines.get(scope)
        if engine is None:
            engine = CostPropagationEngine(
                self._store,
                scope,
                emitter=self._emitter,
                queue_size=self._queue_size,
                reconciliation=self._reconciliation,
            )
            self._engines[scope] = engine
        return engine

    def find(self, scope: Scope) -> CostPropagationEngine | None:
        return self._engines.get(scope)

    def scopes(self) -> list[Scope]:
        return list(self._engines)

    async def remove(self, scope: Scope) -> None:
        """Stop the engine for ``scope`` and forget it."""
        engine = self._engines.pop(scope, None)
        if engine is not None:
            await engine.stop()

    async def start(self, tenant_id: str, location_id: str) -> SyncStatus:
        engine = self.get(Scope(tenant_id, location_id))
        await engine.start()
        return engine.get_status()

    async def stop(self, tenant_id: str, location_id: str) -> SyncStatus:
        scope = Scope(tenant_id, location_id)
        engine = self._engines.get(scope)
        if engine is None:
            return self.status(tenant_id, location_id)
        await engine.stop()
        return engine.get_status()

    def status(self, tenant_id: str, location_id: str) -> SyncStatus:
        scope = Scope(tenant_id, location_id)
        engine = self._engines.get(scope)
        if engine is None:
            return SyncStatus(active=False, state="stopped", menu_item_count=0, inventory_item_count=0)
        return engine.get_status()

    async def force_sync(self, tenant_id: str, location_id: str) -> list[CostUpdate]:
        """Force-sync a scope; runs directly when its engine is not running."""
        return await self.get(Scope(tenant_id, location_id)).force_sync_all()

    async def refresh_menu(self, tenant_id: str, location_id: str) -> None:
        engine = self._engines.get(Scope(tenant_id, location_id))
        if engine is not None:
            await engine.refresh_menu()

    async def shutdown(self) -> None:
        """Stop every engine."""
        engines = list(self._engines.values())
        self._engines.clear()
        results = await asyncio.gather(*(engine.stop() for engine in engines), return_exceptions=True)
        for engine, result in zip(engines, results):
            if isinstance(result, Exception):
                logger.error(
                    "Cost sync engine failed to stop",
                    scope=engine.scope.key,
                    error=str(result),
                )
        logger.info("Cost sync registry shut down", engines=len(engines))
