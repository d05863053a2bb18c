"""
Tests for the SQLAlchemy document store on SQLite in-memory.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from shared.config.constants import Collections
from menu_sync.models import CollectionVersion
from menu_sync.store import (
    AtomicBatchFailure,
    BatchOperation,
    Scope,
    SqlDocumentStore,
    TransientStoreError,
)
from conftest import inventory_doc, menu_doc


class TestSqlPointOperations:

    @pytest.mark.asyncio
    async def test_put_get_roundtrip_stamps_scope(self, sql_store, scope):
        await sql_store.put(Collections.MENU_ITEMS, scope, "m1", {"name": "Soup", "price": 7.5})

        doc = await sql_store.get(Collections.MENU_ITEMS, scope, "m1")

        assert doc == {
            "name": "Soup",
            "price": 7.5,
            "id": "m1",
            "tenantId": "t1",
            "locationId": "l1",
        }

    @pytest.mark.asyncio
    async def test_overwrite_and_query(self, sql_store, scope):
        await sql_store.put(Collections.MENU_ITEMS, scope, "m1", menu_doc("m1", price=1.0))
        await sql_store.put(Collections.MENU_ITEMS, scope, "m1", menu_doc("m1", price=2.0))
        await sql_store.put(Collections.MENU_ITEMS, Scope("t1", "l2"), "m9", menu_doc("m9"))

        docs = await sql_store.query(Collections.MENU_ITEMS, scope)

        assert [(d["id"], d["price"]) for d in docs] == [("m1", 2.0)]

    @pytest.mark.asyncio
    async def test_delete_missing_is_not_an_error(self, sql_store, scope):
        await sql_store.put(Collections.POS_ITEMS, scope, "p1", {"name": "x"})

        assert await sql_store.delete(Collections.POS_ITEMS, scope, "p1") is True
        assert await sql_store.delete(Collections.POS_ITEMS, scope, "p1") is False
        assert await sql_store.get(Collections.POS_ITEMS, scope, "p1") is None

    @pytest.mark.asyncio
    async def test_ping(self, sql_store):
        await sql_store.ping()


class TestSqlAtomicBatch:

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, sql_store, scope):
        await sql_store.put(Collections.MENU_ITEMS, scope, "m1", menu_doc("m1", cost=1.0))

        await sql_store.commit_batch(scope, [
            BatchOperation.update(Collections.MENU_ITEMS, "m1", {"cost": 4.5}),
        ])

        doc = await sql_store.get(Collections.MENU_ITEMS, scope, "m1")
        assert doc["cost"] == 4.5
        assert doc["name"] == "Dish m1"

    @pytest.mark.asyncio
    async def test_failed_batch_applies_nothing(self, sql_store, scope):
        for item_id in ("m1", "m2"):
            await sql_store.put(Collections.MENU_ITEMS, scope, item_id, menu_doc(item_id, cost=1.0))

        with pytest.raises(AtomicBatchFailure):
            await sql_store.commit_batch(scope, [
                BatchOperation.update(Collections.MENU_ITEMS, "m1", {"cost": 9.0}),
                BatchOperation.delete(Collections.MENU_ITEMS, "m2"),
                BatchOperation.update(Collections.MENU_ITEMS, "missing", {"cost": 9.0}),
            ])

        assert (await sql_store.get(Collections.MENU_ITEMS, scope, "m1"))["cost"] == 1.0
        assert await sql_store.get(Collections.MENU_ITEMS, scope, "m2") is not None

    @pytest.mark.asyncio
    async def test_set_then_update_in_same_batch(self, sql_store, scope):
        await sql_store.commit_batch(scope, [
            BatchOperation.set(Collections.POS_ITEMS, "p1", {"name": "a", "price": 1.0}),
            BatchOperation.update(Collections.POS_ITEMS, "p1", {"price": 2.0}),
        ])

        doc = await sql_store.get(Collections.POS_ITEMS, scope, "p1")
        assert doc["price"] == 2.0


class TestSqlChangeFeed:

    @pytest.mark.asyncio
    async def test_polling_feed_delivers_initial_and_changed_state(self, sql_store, scope):
        await sql_store.put(Collections.INVENTORY_ITEMS, scope, "inv1", inventory_doc("inv1", 2.0))
        subscription = await sql_store.subscribe(Collections.INVENTORY_ITEMS, scope)

        initial = await asyncio.wait_for(subscription.__anext__(), 1)
        await sql_store.put(Collections.INVENTORY_ITEMS, scope, "inv1", inventory_doc("inv1", 3.5))
        changed = await asyncio.wait_for(subscription.__anext__(), 2)

        assert initial[0]["costPerUnit"] == 2.0
        assert changed[0]["costPerUnit"] == 3.5

        await sql_store.close()

    @pytest.mark.asyncio
    async def test_feed_surfaces_transient_errors(self, sql_store, scope, monkeypatch):
        subscription = await sql_store.subscribe(Collections.INVENTORY_ITEMS, scope)
        await subscription.__anext__()

        def broken(*args):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(sql_store, "_read_state_sync", broken)

        with pytest.raises(TransientStoreError):
            await asyncio.wait_for(subscription.__anext__(), 2)
        await subscription.close()

    @pytest.mark.asyncio
    async def test_operational_errors_become_transient(self, sql_store, scope, monkeypatch):
        def broken(*args):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(sql_store, "_get_sync", broken)

        with pytest.raises(TransientStoreError):
            await sql_store.get(Collections.MENU_ITEMS, scope, "m1")


class TestSqlVersionCounter:

    @pytest.mark.asyncio
    async def test_bump_counts_writes_committed_by_other_sessions(self, sql_store, scope):
        key = (Collections.INVENTORY_ITEMS, scope.tenant_id, scope.location_id)
        await sql_store.put(Collections.INVENTORY_ITEMS, scope, "inv1", inventory_doc("inv1", 2.0))

        slow_writer = sql_store._session_factory()
        try:
            assert slow_writer.get(CollectionVersion, key).version == 1
            await sql_store.put(Collections.INVENTORY_ITEMS, scope, "inv1", inventory_doc("inv1", 3.0))

            SqlDocumentStore._bump_versions(slow_writer, {key})
            slow_writer.commit()
        finally:
            slow_writer.close()

        version, _ = sql_store._read_state_sync(Collections.INVENTORY_ITEMS, scope, None)
        assert version == 3

    @pytest.mark.asyncio
    async def test_every_write_moves_the_version(self, sql_store, scope):
        await sql_store.put(Collections.MENU_ITEMS, scope, "m1", menu_doc("m1"))
        await sql_store.commit_batch(scope, [
            BatchOperation.update(Collections.MENU_ITEMS, "m1", {"cost": 2.0}),
            BatchOperation.set(Collections.POS_ITEMS, "m1", {"name": "Dish m1"}),
        ])
        await sql_store.delete(Collections.MENU_ITEMS, scope, "m1")

        menu_version, _ = sql_store._read_state_sync(Collections.MENU_ITEMS, scope, None)
        pos_version, _ = sql_store._read_state_sync(Collections.POS_ITEMS, scope, None)
        assert (menu_version, pos_version) == (3, 1)
