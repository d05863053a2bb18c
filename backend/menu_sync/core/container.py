"""
Service container: builds and owns every long-lived service instance.

Held on ``app.state.container``; routers reach it through ``get_container``.
Tests build one around an in-memory store and override the dependency.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from shared.config.settings import Settings
from menu_sync.store import DocumentStore, build_store
from menu_sync.services import (
    ConsistencyValidator,
    CostEventEmitter,
    CostImpactAnalyzer,
    CostSyncRegistry,
    EmergencyReset,
    MenuSyncHooks,
    ReconciliationEngine,
    build_emitter,
)


@dataclass
class ServiceContainer:
    store: DocumentStore
    emitter: CostEventEmitter
    validator: ConsistencyValidator
    reconciliation: ReconciliationEngine
    emergency_reset: EmergencyReset
    registry: CostSyncRegistry
    hooks: MenuSyncHooks
    cost_impact: CostImpactAnalyzer

    @classmethod
    def build(
        cls,
        store: DocumentStore,
        emitter: CostEventEmitter,
        queue_size: int | None = None,
    ) -> "ServiceContainer":
        validator = ConsistencyValidator(store)
        reconciliation = ReconciliationEngine(store, validator)
        registry = CostSyncRegistry(store, emitter, queue_size=queue_size, reconciliation=reconciliation)
        return cls(
            store=store,
            emitter=emitter,
            validator=validator,
            reconciliation=reconciliation,
            emergency_reset=EmergencyReset(store, reconciliation),
            registry=registry,
            hooks=MenuSyncHooks(reconciliation, registry),
            cost_impact=CostImpactAnalyzer(store),
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "ServiceContainer":
        return cls.build(
            build_store(config),
            build_emitter(config.events_backend),
            queue_size=config.cost_sync_queue_size,
        )

    async def close(self) -> None:
        """Stop all engines, then release the store."""
        await self.registry.shutdown()
        await self.store.close()


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's container."""
    return request.app.state.container
