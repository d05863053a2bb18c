"""
Real-time cost propagation for one (tenant, location) scope.

Lifecycle: STOPPED -> STARTING -> ACTIVE -> STOPPED.

A single worker task drains a bounded command queue, so inventory
deliveries, forced syncs and menu reloads for a scope never interleave.
The worker owns the inventory price index and the menu item cache.

Per inventory delivery:
1. Build the costPerUnit index and diff it against the cached one.
2. No price moved beyond epsilon -> replace the cache, write nothing.
3. Recompute every cached menu item that references a changed id and
   stage an update where the rounded cost moved.
4. Commit all staged updates as ONE atomic batch, re-project the updated
   items onto the POS catalog, then emit one "costs updated" event.
5. If the batch fails, restore the previous price index so the next
   delivery detects the same change again.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Mapping

from pydantic import ValidationError as PydanticValidationError

from shared.config.constants import Collections, CostSyncType, EngineState
from shared.config.logging import cost_sync_logger as logger
from shared.config.settings import settings
from shared.utils.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_feed_retry_config,
    retry_async,
)
from menu_sync.schemas import CostAudit, CostUpdate, InventoryItem, MenuItem, SyncStatus
from menu_sync.store import (
    AtomicBatchFailure,
    BatchOperation,
    Document,
    DocumentStore,
    Scope,
    Subscription,
    TransientStoreError,
)
from .cost_events import CostEventEmitter
from .derivation import compute_cost, costs_differ, round_money
from .reconciliation import ReconciliationEngine


class EngineStoppedError(Exception):
    """A command was submitted to (or left queued in) a stopped engine."""

    def __init__(self, scope: Scope):
        self.scope = scope
        super().__init__(f"Cost sync engine for {scope.key} is stopped")


CommandKind = Literal["snapshot", "force_sync", "load_menu"]


@dataclass(slots=True)
class _Command:
    kind: CommandKind
    payload: Any = None
    future: asyncio.Future | None = None


_SHUTDOWN = _Command("load_menu")


@dataclass(slots=True)
class _StagedBatch:
    operations: list[BatchOperation]
    updates: list[CostUpdate]
    items: dict[str, MenuItem]


class CostPropagationEngine:
    """Per-scope cost propagation worker."""

    def __init__(
        self,
        store: DocumentStore,
        scope: Scope,
        emitter: CostEventEmitter | None = None,
        queue_size: int | None = None,
        feed_retry: RetryConfig | None = None,
        reconciliation: ReconciliationEngine | None = None,
    ):
        self._store = store
        self._scope = scope
        self._emitter = emitter
        self._reconciliation = reconciliation or ReconciliationEngine(store)
        self._queue_size = queue_size or settings.cost_sync_queue_size
        self._feed_retry = feed_retry

        self._state = EngineState.STOPPED
        self._accepting = False
        self._queue: asyncio.Queue[_Command] | None = None
        self._worker: asyncio.Task | None = None
        self._pump: asyncio.Task | None = None
        self._subscription: Subscription | None = None
        self._lifecycle_lock = asyncio.Lock()

        # Worker-private caches
        self._inventory: dict[str, InventoryItem] = {}
        self._menu: dict[str, MenuItem] = {}

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == EngineState.ACTIVE

    def get_status(self) -> SyncStatus:
        return SyncStatus(
            active=self.is_active,
            state=self._state.value,
            menu_item_count=len(self._menu),
            inventory_item_count=len(self._inventory),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Start the worker, seed the caches and open the inventory feed.

        Starting an engine that is already running is a no-op. If any step
        fails the engine is torn down to STOPPED and the error propagates.
        """
        async with self._lifecycle_lock:
            if self._state != EngineState.STOPPED:
                return

            self._state = EngineState.STARTING
            self._queue = asyncio.Queue(maxsize=self._queue_size)
            self._accepting = True
            self._worker = asyncio.create_task(
                self._run_worker(), name=f"cost-sync:{self._scope.key}"
            )
            logger.info("Cost sync starting", scope=self._scope.key)

            try:
                await self._submit("force_sync")
                self._subscription = await self._open_feed()
                self._pump = asyncio.create_task(
                    self._pump_feed(), name=f"cost-sync-feed:{self._scope.key}"
                )
                await self._submit("load_menu")
            except Exception as e:
                if self._accepting:
                    logger.error(
                        "Cost sync failed to start",
                        scope=self._scope.key,
                        error=str(e),
                    )
                else:
                    logger.info("Cost sync start cancelled by stop", scope=self._scope.key)
                await self._teardown()
                raise

            self._state = EngineState.ACTIVE
            logger.info(
                "Cost sync active",
                scope=self._scope.key,
                menu_items=len(self._menu),
                inventory_items=len(self._inventory),
            )

    async def stop(self) -> None:
        """
        Stop the engine. Safe to call when it was never started.

        New and queued commands are rejected with EngineStoppedError before
        anything else, and a start still seeding its caches is cancelled
        (its caller gets EngineStoppedError). Once active, a batch already
        being committed finishes.
        """
        self._accepting = False
        self._reject_pending()
        if self._state == EngineState.STARTING and self._worker is not None:
            self._worker.cancel()

        async with self._lifecycle_lock:
            if self._state == EngineState.STOPPED and self._worker is None:
                return
            await self._teardown()
            logger.info("Cost sync stopped", scope=self._scope.key)

    async def _teardown(self) -> None:
        self._accepting = False

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

        pump, self._pump = self._pump, None
        if pump is not None:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump

        worker, self._worker = self._worker, None
        if worker is not None and self._queue is not None:
            self._reject_pending()
            self._queue.put_nowait(_SHUTDOWN)
            with contextlib.suppress(asyncio.CancelledError):
                await worker
            # Producers that were blocked on a full queue may have slipped in
            await asyncio.sleep(0)
            self._reject_pending()

        self._queue = None
        self._state = EngineState.STOPPED

    def _reject_pending(self) -> None:
        if self._queue is None:
            return
        while not self._queue.empty():
            command = self._queue.get_nowait()
            if command.future is not None and not command.future.done():
                command.future.set_exception(EngineStoppedError(self._scope))

    # =========================================================================
    # Public commands
    # =========================================================================

    async def force_sync_all(self) -> list[CostUpdate]:
        """
        Recompute every menu item with ingredients from fresh store reads.

        Serialized through the worker when the engine is running, executed
        directly otherwise.
        """
        if self._accepting:
            return await self._submit("force_sync")
        return await self._force_sync()

    async def refresh_menu(self) -> None:
        """Reload the menu item cache (after menu edits). No-op when stopped."""
        if self._accepting:
            await self._submit("load_menu")

    async def _submit(self, kind: CommandKind, payload: Any = None) -> Any:
        if not self._accepting or self._queue is None:
            raise EngineStoppedError(self._scope)
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command(kind, payload, future))
        return await future

    # =========================================================================
    # Worker
    # =========================================================================

    async def _run_worker(self) -> None:
        assert self._queue is not None
        queue = self._queue
        while True:
            command = await queue.get()
            if command is _SHUTDOWN:
                return
            try:
                result = await self._execute(command)
            except asyncio.CancelledError:
                if command.future is not None and not command.future.done():
                    command.future.set_exception(EngineStoppedError(self._scope))
                raise
            except Exception as e:
                if command.future is not None and not command.future.done():
                    command.future.set_exception(e)
                else:
                    logger.error(
                        "Cost sync command failed",
                        scope=self._scope.key,
                        command=command.kind,
                        error=str(e),
                        exc_info=True,
                    )
            else:
                if command.future is not None and not command.future.done():
                    command.future.set_result(result)

    async def _execute(self, command: _Command) -> Any:
        if command.kind == "snapshot":
            return await self._handle_snapshot(command.payload)
        if command.kind == "force_sync":
            return await self._force_sync()
        if command.kind == "load_menu":
            return await self._load_menu()
        raise ValueError(f"Unknown command: {command.kind}")

    # =========================================================================
    # Change feed
    # =========================================================================

    async def _open_feed(self) -> Subscription:
        return await retry_async(
            self._store.subscribe,
            Collections.INVENTORY_ITEMS,
            self._scope,
            retry_on=(TransientStoreError,),
            description="subscribe inventory feed",
        )

    async def _pump_feed(self) -> None:
        """Forward deliveries to the worker, resubscribing on transient errors."""
        retry = self._feed_retry or create_feed_retry_config()
        failures = 0

        while self._accepting and self._subscription is not None:
            try:
                async for snapshot in self._subscription:
                    failures = 0
                    if not self._accepting or self._queue is None:
                        return
                    await self._queue.put(_Command("snapshot", snapshot))
                return
            except TransientStoreError as e:
                failures += 1
                if failures >= retry.max_attempts:
                    logger.error(
                        "Inventory feed lost, giving up",
                        scope=self._scope.key,
                        attempts=failures,
                        error=str(e),
                    )
                    return

                delay = calculate_delay_with_jitter(failures - 1, retry)
                logger.warning(
                    "Inventory feed failed, resubscribing",
                    scope=self._scope.key,
                    attempt=failures,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)
                if not self._accepting:
                    return
                try:
                    replacement = await self._store.subscribe(Collections.INVENTORY_ITEMS, self._scope)
                except TransientStoreError as resubscribe_error:
                    logger.warning(
                        "Resubscribe failed",
                        scope=self._scope.key,
                        error=str(resubscribe_error),
                    )
                    continue
                old, self._subscription = self._subscription, replacement
                if old is not None:
                    await old.close()

    # =========================================================================
    # Command handlers (worker only)
    # =========================================================================

    def _parse_inventory(self, documents: list[Document]) -> dict[str, InventoryItem]:
        index: dict[str, InventoryItem] = {}
        for doc in documents:
            try:
                item = InventoryItem.model_validate(doc)
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping malformed inventory item",
                    scope=self._scope.key,
                    item_id=doc.get("id"),
                    error=str(e),
                )
                continue
            index[item.id] = item
        return index

    def _parse_menu(self, documents: list[Document]) -> dict[str, MenuItem]:
        items: dict[str, MenuItem] = {}
        for doc in documents:
            try:
                item = MenuItem.model_validate(doc)
            except PydanticValidationError as e:
                logger.warning(
                    "Skipping malformed menu item",
                    scope=self._scope.key,
                    item_id=doc.get("id"),
                    error=str(e),
                )
                continue
            items[item.id] = item
        return items

    @staticmethod
    def _changed_prices(
        previous: Mapping[str, InventoryItem],
        current: Mapping[str, InventoryItem],
    ) -> set[str]:
        changed = set()
        for item_id, item in current.items():
            old = previous.get(item_id)
            old_price = old.cost_per_unit if old is not None else 0.0
            if costs_differ(item.cost_per_unit, old_price):
                changed.add(item_id)
        return changed

    def _stage(
        self,
        items: list[MenuItem],
        index: Mapping[str, InventoryItem],
        sync_type: str,
    ) -> _StagedBatch:
        now = datetime.now(timezone.utc)
        staged = _StagedBatch(operations=[], updates=[], items={})

        for item in items:
            computation = compute_cost(item.ingredients, index)
            previous_cost = round_money(item.cost)
            if not computation.changed_ids and not costs_differ(computation.total_cost, previous_cost):
                continue

            audit = CostAudit(
                previous_cost=item.cost,
                new_cost=computation.total_cost,
                synced_at=now,
                affected_ingredients=computation.changed_ids,
                sync_type=sync_type,
            )
            staged.operations.append(BatchOperation.update(
                Collections.MENU_ITEMS,
                item.id,
                {
                    "ingredients": [ingredient.to_document() for ingredient in computation.ingredients],
                    "cost": computation.total_cost,
                    "updatedAt": now.isoformat(),
                    "lastCostSync": audit.to_document(),
                },
            ))
            staged.updates.append(CostUpdate(
                menu_item_id=item.id,
                name=item.name,
                previous_cost=item.cost,
                new_cost=computation.total_cost,
                affected_ingredients=computation.changed_ids,
            ))
            staged.items[item.id] = item.model_copy(update={
                "ingredients": computation.ingredients,
                "cost": computation.total_cost,
                "last_cost_sync": audit,
            })

        return staged

    async def _handle_snapshot(self, documents: list[Document]) -> list[CostUpdate]:
        previous = self._inventory
        current = self._parse_inventory(documents)
        changed = self._changed_prices(previous, current)
        self._inventory = current

        if not changed:
            return []

        affected = [
            item for item in self._menu.values()
            if any(ingredient.inventory_item_id in changed for ingredient in item.ingredients)
        ]
        staged = self._stage(affected, current, CostSyncType.REALTIME)
        logger.info(
            "Inventory prices changed",
            scope=self._scope.key,
            changed_ids=sorted(changed),
            affected_items=len(affected),
            staged_updates=len(staged.operations),
        )
        if not staged.operations:
            return []

        try:
            await self._store.commit_batch(self._scope, staged.operations)
        except (AtomicBatchFailure, TransientStoreError) as e:
            # Nothing was applied; the next delivery must see the change again
            self._inventory = previous
            logger.error(
                "Cost batch rejected",
                scope=self._scope.key,
                operations=len(staged.operations),
                error=str(e),
            )
            return []

        self._menu.update(staged.items)
        logger.info(
            "Menu costs updated",
            scope=self._scope.key,
            updated=len(staged.updates),
        )
        await self._project(staged.items.values())
        await self._notify(staged.updates)
        return staged.updates

    async def _force_sync(self) -> list[CostUpdate]:
        filters = {"tenantId": self._scope.tenant_id, "locationId": self._scope.location_id}
        inventory_docs = await retry_async(
            self._store.query, Collections.INVENTORY_ITEMS, self._scope, filters,
            retry_on=(TransientStoreError,),
            description="load inventory items",
        )
        menu_docs = await retry_async(
            self._store.query, Collections.MENU_ITEMS, self._scope, filters,
            retry_on=(TransientStoreError,),
            description="load menu items",
        )

        index = self._parse_inventory(inventory_docs)
        menu = self._parse_menu(menu_docs)
        staged = self._stage(
            [item for item in menu.values() if item.ingredients],
            index,
            CostSyncType.FORCE_SYNC,
        )

        if staged.operations:
            await retry_async(
                self._store.commit_batch, self._scope, staged.operations,
                retry_on=(TransientStoreError,),
                description="commit forced cost batch",
            )

        menu.update(staged.items)
        self._inventory = index
        self._menu = menu

        logger.info(
            "Forced cost sync completed",
            scope=self._scope.key,
            menu_items=len(menu),
            inventory_items=len(index),
            updated=len(staged.updates),
        )
        await self._project(staged.items.values())
        await self._notify(staged.updates)
        return staged.updates

    async def _load_menu(self) -> int:
        documents = await retry_async(
            self._store.query,
            Collections.MENU_ITEMS,
            self._scope,
            {"tenantId": self._scope.tenant_id, "locationId": self._scope.location_id},
            retry_on=(TransientStoreError,),
            description="load menu items",
        )
        self._menu = self._parse_menu(documents)
        without_ingredients = sum(1 for item in self._menu.values() if not item.ingredients)
        logger.debug(
            "Menu cache loaded",
            scope=self._scope.key,
            menu_items=len(self._menu),
            without_ingredients=without_ingredients,
        )
        return len(self._menu)

    async def _project(self, items: Iterable[MenuItem]) -> None:
        """Carry committed costs onto the POS catalog. Failures wait for the next full sync."""
        for item in items:
            try:
                await self._reconciliation.upsert(item)
            except Exception as e:
                logger.warning(
                    "POS projection after cost update failed",
                    scope=self._scope.key,
                    item_id=item.id,
                    error=str(e),
                )

    async def _notify(self, updates: list[CostUpdate]) -> None:
        if not updates or self._emitter is None:
            return
        try:
            await self._emitter.emit_costs_updated(self._scope, updates)
        except Exception as e:
            logger.error(
                "Costs updated event failed",
                scope=self._scope.key,
                updates=len(updates),
                error=str(e),
            )
