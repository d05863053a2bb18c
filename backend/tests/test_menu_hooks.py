"""
Tests for the menu mutation hooks (best-effort incremental reconciliation).
"""

import asyncio

import pytest

from shared.config.constants import Collections
from menu_sync.schemas import MenuItem
from menu_sync.services import CostSyncRegistry, MenuSyncHooks, ReconciliationEngine
from conftest import ingredient_doc, inventory_doc, menu_doc, seed


@pytest.fixture
def fast_retries(monkeypatch):
    monkeypatch.setattr("shared.utils.retry.calculate_delay_with_jitter", lambda attempt, config=None: 0)


class TestMenuSyncHooks:

    @pytest.mark.asyncio
    async def test_created_item_is_projected(self, store, scope):
        hooks = MenuSyncHooks(ReconciliationEngine(store))

        ok = await hooks.on_menu_item_created(menu_doc("m1", name="Tacos"))

        assert ok is True
        assert (await store.get(Collections.POS_ITEMS, scope, "m1"))["name"] == "Tacos"

    @pytest.mark.asyncio
    async def test_updated_item_overwrites_projection(self, store, scope):
        hooks = MenuSyncHooks(ReconciliationEngine(store))
        await hooks.on_menu_item_created(MenuItem.model_validate(menu_doc("m1", price=5.0)))

        await hooks.on_menu_item_updated(MenuItem.model_validate(menu_doc("m1", price=6.0)))

        assert (await store.get(Collections.POS_ITEMS, scope, "m1"))["price"] == 6.0

    @pytest.mark.asyncio
    async def test_deleted_item_removes_projection(self, store, scope):
        hooks = MenuSyncHooks(ReconciliationEngine(store))
        await hooks.on_menu_item_created(menu_doc("m1"))

        assert await hooks.on_menu_item_deleted("t1", "l1", "m1") is True
        assert await hooks.on_menu_item_deleted("t1", "l1", "m1") is True
        assert await store.get(Collections.POS_ITEMS, scope, "m1") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self, flaky_store, scope, fast_retries):
        flaky_store.fail_puts_for = {"m1"}
        hooks = MenuSyncHooks(ReconciliationEngine(flaky_store))

        ok = await hooks.on_menu_item_updated(menu_doc("m1"))

        assert ok is False
        assert await flaky_store.get(Collections.POS_ITEMS, scope, "m1") is None

    @pytest.mark.asyncio
    async def test_malformed_item_is_swallowed(self, store):
        hooks = MenuSyncHooks(ReconciliationEngine(store))

        assert await hooks.on_menu_item_created({"name": "no id or scope"}) is False

    @pytest.mark.asyncio
    async def test_running_engine_sees_new_menu_item(self, store, scope):
        await seed(store, scope, Collections.INVENTORY_ITEMS, [inventory_doc("inv1", 2.0)])
        registry = CostSyncRegistry(store)
        hooks = MenuSyncHooks(ReconciliationEngine(store), registry)
        await registry.start("t1", "l1")
        try:
            item = menu_doc("m1", cost=4.0, ingredients=[ingredient_doc("inv1", 2, cost=4.0, cost_per_unit=2.0)])
            await store.put(Collections.MENU_ITEMS, scope, "m1", item)
            await hooks.on_menu_item_created(item)

            assert registry.status("t1", "l1").menu_item_count == 1
        finally:
            await registry.shutdown()


class ExplodingReconciliation(ReconciliationEngine):
    """Reconciliation whose writes fail with non-store errors."""

    async def upsert(self, menu_item):
        raise RuntimeError("serializer blew up")

    async def remove(self, tenant_id, location_id, menu_item_id):
        raise asyncio.TimeoutError()


class TestUnexpectedFailures:

    @pytest.mark.asyncio
    async def test_unexpected_upsert_error_is_swallowed(self, store, scope):
        hooks = MenuSyncHooks(ExplodingReconciliation(store))

        assert await hooks.on_menu_item_created(menu_doc("m1")) is False
        assert await hooks.on_menu_item_updated(MenuItem.model_validate(menu_doc("m1"))) is False
        assert await store.get(Collections.POS_ITEMS, scope, "m1") is None

    @pytest.mark.asyncio
    async def test_unexpected_remove_error_is_swallowed(self, store):
        hooks = MenuSyncHooks(ExplodingReconciliation(store))

        assert await hooks.on_menu_item_deleted("t1", "l1", "m1") is False
