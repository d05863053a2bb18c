"""
Operator maintenance endpoints for one (tenant, location) scope.

Validation, orphan cleanup, full sync, emergency reset, cost sync engine
control and cost impact analysis. Store failures that survive the
call-site retries surface as 503 without store internals in the body.
"""

from contextlib import contextmanager
from typing import Iterator

from fastapi import APIRouter, Depends
from pydantic import Field

from shared.config.logging import sync_api_logger as logger
from shared.infrastructure.events import POS_CATALOG_RESET, POS_CATALOG_RESYNCED
from shared.utils.exceptions import (
    ConfirmationRequiredError,
    ConflictError,
    ServiceUnavailableError,
    ValidationError,
)
from menu_sync.core.container import ServiceContainer, get_container
from menu_sync.schemas import (
    ApiModel,
    CostImpact,
    CostUpdate,
    EmergencyResetResult,
    FullSyncResult,
    SyncReport,
    SyncStatus,
)
from menu_sync.services import EngineStoppedError
from menu_sync.store import Scope, StoreError


router = APIRouter(prefix="/api/sync/{tenant_id}/{location_id}", tags=["sync"])


class EmergencyResetRequest(ApiModel):
    confirm: bool = False
    confirm_scope: str = ""


class CostImpactRequest(ApiModel):
    changed_inventory_ids: list[str] = Field(min_length=1)


class CleanupResult(ApiModel):
    removed: int


class ForceSyncResult(ApiModel):
    updated: int
    updates: list[CostUpdate]


def _scope(tenant_id: str, location_id: str) -> Scope:
    if ":" in tenant_id or ":" in location_id:
        raise ValidationError("Scope identifiers must not contain ':'")
    try:
        return Scope(tenant_id, location_id)
    except ValueError as e:
        raise ValidationError(str(e)) from e


@contextmanager
def _store_errors(operation: str, scope: Scope) -> Iterator[None]:
    try:
        yield
    except StoreError as e:
        raise ServiceUnavailableError(
            "document store",
            operation=operation,
            scope=scope.key,
            error=str(e),
        ) from e


async def _announce(container: ServiceContainer, scope: Scope, event_type: str, entity: dict) -> None:
    try:
        await container.emitter.emit_catalog_event(scope, event_type, entity)
    except Exception as e:
        logger.warning("Catalog event not published", event_type=event_type, scope=scope.key, error=str(e))


# =============================================================================
# Menu / POS consistency
# =============================================================================


@router.get("/validate", response_model=SyncReport)
async def validate_sync(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> SyncReport:
    """Compare the menu catalog with the POS catalog. Read-only."""
    scope = _scope(tenant_id, location_id)
    with _store_errors("validate", scope):
        return await container.validator.validate(scope.tenant_id, scope.location_id)


@router.post("/cleanup-orphans", response_model=CleanupResult)
async def cleanup_orphans(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> CleanupResult:
    """Delete POS items whose menu item no longer exists."""
    scope = _scope(tenant_id, location_id)
    with _store_errors("cleanup-orphans", scope):
        removed = await container.reconciliation.cleanup_orphans(scope.tenant_id, scope.location_id)
    return CleanupResult(removed=removed)


@router.post("/full-sync", response_model=FullSyncResult)
async def full_sync(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> FullSyncResult:
    """Re-project every menu item; unchanged projections are not rewritten."""
    scope = _scope(tenant_id, location_id)
    with _store_errors("full-sync", scope):
        result = await container.reconciliation.full_sync(scope.tenant_id, scope.location_id)
    if result.written:
        await _announce(container, scope, POS_CATALOG_RESYNCED, result.model_dump(by_alias=True))
    return result


@router.post("/emergency-reset", response_model=EmergencyResetResult)
async def emergency_reset(
    tenant_id: str,
    location_id: str,
    body: EmergencyResetRequest,
    container: ServiceContainer = Depends(get_container),
) -> EmergencyResetResult:
    """
    Delete the whole POS catalog of the scope and rebuild it.

    Requires ``confirm: true`` and ``confirmScope`` equal to
    ``"{tenant_id}/{location_id}"``.
    """
    scope = _scope(tenant_id, location_id)
    expected = f"{scope.tenant_id}/{scope.location_id}"
    if not body.confirm or body.confirm_scope != expected:
        raise ConfirmationRequiredError("Emergency reset", expected=expected)

    with _store_errors("emergency-reset", scope):
        result = await container.emergency_reset.run(scope.tenant_id, scope.location_id)
    await _announce(container, scope, POS_CATALOG_RESET, result.model_dump(by_alias=True))
    return result


# =============================================================================
# Cost sync engine
# =============================================================================


@router.post("/cost-sync/start", response_model=SyncStatus)
async def start_cost_sync(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> SyncStatus:
    scope = _scope(tenant_id, location_id)
    with _store_errors("cost-sync-start", scope):
        return await container.registry.start(scope.tenant_id, scope.location_id)


@router.post("/cost-sync/stop", response_model=SyncStatus)
async def stop_cost_sync(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> SyncStatus:
    scope = _scope(tenant_id, location_id)
    return await container.registry.stop(scope.tenant_id, scope.location_id)


@router.get("/cost-sync/status", response_model=SyncStatus)
async def cost_sync_status(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> SyncStatus:
    scope = _scope(tenant_id, location_id)
    return container.registry.status(scope.tenant_id, scope.location_id)


@router.post("/cost-sync/force", response_model=ForceSyncResult)
async def force_cost_sync(
    tenant_id: str,
    location_id: str,
    container: ServiceContainer = Depends(get_container),
) -> ForceSyncResult:
    """Recompute every menu item cost from current inventory prices."""
    scope = _scope(tenant_id, location_id)
    try:
        with _store_errors("cost-sync-force", scope):
            updates = await container.registry.force_sync(scope.tenant_id, scope.location_id)
    except EngineStoppedError as e:
        raise ConflictError(str(e), scope=scope.key) from e
    return ForceSyncResult(updated=len(updates), updates=updates)


# =============================================================================
# Pricing analysis
# =============================================================================


@router.post("/cost-impact", response_model=list[CostImpact])
async def cost_impact(
    tenant_id: str,
    location_id: str,
    body: CostImpactRequest,
    container: ServiceContainer = Depends(get_container),
) -> list[CostImpact]:
    """Margin impact of current inventory prices on items using the given ids."""
    scope = _scope(tenant_id, location_id)
    with _store_errors("cost-impact", scope):
        return await container.cost_impact.analyze(
            scope.tenant_id, scope.location_id, body.changed_inventory_ids
        )
