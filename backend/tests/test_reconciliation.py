"""
Tests for incremental reconciliation, full sync and orphan cleanup.
"""

import pytest

from shared.config.constants import Collections
from menu_sync.schemas import MenuItem
from menu_sync.services import ReconciliationEngine
from conftest import ingredient_doc, menu_doc, seed


@pytest.fixture
def fast_retries(monkeypatch):
    monkeypatch.setattr("shared.utils.retry.calculate_delay_with_jitter", lambda attempt, config=None: 0)


class TestIncremental:

    @pytest.mark.asyncio
    async def test_upsert_writes_projection(self, store, scope):
        engine = ReconciliationEngine(store)
        item = MenuItem.model_validate(menu_doc("m1", price=9.0, status="inactive"))

        await engine.upsert(item)

        pos = await store.get(Collections.POS_ITEMS, scope, "m1")
        assert pos["menuItemId"] == "m1"
        assert pos["price"] == 9.0
        assert pos["isAvailable"] is False

    @pytest.mark.asyncio
    async def test_upsert_overwrites_previous_projection(self, store, scope):
        engine = ReconciliationEngine(store)
        await engine.upsert(MenuItem.model_validate(menu_doc("m1", name="Old")))
        await engine.upsert(MenuItem.model_validate(menu_doc("m1", name="New")))

        pos = await store.get(Collections.POS_ITEMS, scope, "m1")
        assert pos["name"] == "New"

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, store, scope):
        engine = ReconciliationEngine(store)
        await engine.upsert(MenuItem.model_validate(menu_doc("m1")))

        assert await engine.remove("t1", "l1", "m1") is True
        assert await engine.remove("t1", "l1", "m1") is False


class TestFullSync:

    @pytest.mark.asyncio
    async def test_creates_missing_projections(self, store, scope):
        await seed(store, scope, Collections.MENU_ITEMS, [menu_doc(f"m{i}") for i in range(5)])

        result = await ReconciliationEngine(store).full_sync("t1", "l1")

        assert result.menu_items == 5
        assert result.written == 5
        assert len(await store.query(Collections.POS_ITEMS, scope)) == 5

    @pytest.mark.asyncio
    async def test_second_run_writes_nothing(self, store, scope):
        await seed(store, scope, Collections.MENU_ITEMS, [
            menu_doc("m1", ingredients=[ingredient_doc("inv1", 2, cost=6.0, cost_per_unit=3.0)]),
            menu_doc("m2", emoji="🍣"),
        ])
        engine = ReconciliationEngine(store)
        await engine.full_sync("t1", "l1")
        writes = store.write_count

        result = await engine.full_sync("t1", "l1")

        assert store.write_count == writes
        assert result.written == 0
        assert result.unchanged == 2

    @pytest.mark.asyncio
    async def test_drifted_projection_is_rewritten(self, store, scope):
        await seed(store, scope, Collections.MENU_ITEMS, [menu_doc("m1", price=10.0)])
        engine = ReconciliationEngine(store)
        await engine.full_sync("t1", "l1")

        await store.put(Collections.MENU_ITEMS, scope, "m1", menu_doc("m1", price=11.0))
        result = await engine.full_sync("t1", "l1")

        assert result.written == 1
        assert (await store.get(Collections.POS_ITEMS, scope, "m1"))["price"] == 11.0

    @pytest.mark.asyncio
    async def test_item_failure_is_counted_and_loop_continues(self, flaky_store, scope, fast_retries):
        await seed(flaky_store, scope, Collections.MENU_ITEMS, [menu_doc("m1"), menu_doc("m2"), menu_doc("m3")])
        flaky_store.fail_puts_for = {"m2"}

        result = await ReconciliationEngine(flaky_store).full_sync("t1", "l1")

        assert result.written == 2
        assert result.failed == 1
        assert await flaky_store.get(Collections.POS_ITEMS, scope, "m3") is not None

    @pytest.mark.asyncio
    async def test_malformed_menu_item_is_counted(self, store, scope):
        await seed(store, scope, Collections.MENU_ITEMS, [menu_doc("m1"), menu_doc("bad", status="deleted")])

        result = await ReconciliationEngine(store).full_sync("t1", "l1")

        assert result.written == 1
        assert result.failed == 1


class TestCleanupOrphans:

    @pytest.mark.asyncio
    async def test_removes_only_orphans(self, store, scope, seeded_menu):
        await seeded_menu()

        removed = await ReconciliationEngine(store).cleanup_orphans("t1", "l1")

        assert removed == 1
        assert await store.get(Collections.POS_ITEMS, scope, "ghost") is None
        assert await store.get(Collections.POS_ITEMS, scope, "m1") is not None

    @pytest.mark.asyncio
    async def test_cleanup_then_full_sync_converges(self, store, seeded_menu):
        await seeded_menu()
        engine = ReconciliationEngine(store)

        await engine.cleanup_orphans("t1", "l1")
        await engine.full_sync("t1", "l1")
        report = await engine.validator.validate("t1", "l1")

        assert report.valid is True
        assert report.stats.menu_items == report.stats.pos_items == 3
