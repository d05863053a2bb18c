"""
Pytest configuration and fixtures for backend tests.
"""

import asyncio
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from shared.config.constants import Collections
from menu_sync.core.container import ServiceContainer, get_container
from menu_sync.main import app
from menu_sync.models import Base
from menu_sync.services import LocalCostEventEmitter
from menu_sync.store import (
    AtomicBatchFailure,
    InMemoryDocumentStore,
    Scope,
    SqlDocumentStore,
    TransientStoreError,
)


TENANT_ID = "t1"
LOCATION_ID = "l1"


class FlakyStore(InMemoryDocumentStore):
    """
    In-memory store with scripted failures.

    - fail_batches: number of upcoming commit_batch calls that fail
    - batch_error: exception class raised for those calls
    - fail_queries: number of upcoming query calls raising TransientStoreError
    - fail_puts_for: doc ids whose put always raises TransientStoreError
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_batches = 0
        self.batch_error: type[Exception] = AtomicBatchFailure
        self.fail_queries = 0
        self.fail_puts_for: set[str] = set()
        self.batch_attempts = 0

    async def commit_batch(self, scope, operations):
        self.batch_attempts += 1
        if self.fail_batches > 0:
            self.fail_batches -= 1
            if self.batch_error is AtomicBatchFailure:
                raise AtomicBatchFailure("batch rejected", operations=len(operations))
            raise self.batch_error("store unavailable")
        await super().commit_batch(scope, operations)

    async def query(self, collection, scope, filters=None):
        if self.fail_queries > 0:
            self.fail_queries -= 1
            raise TransientStoreError("connection reset")
        return await super().query(collection, scope, filters)

    async def put(self, collection, scope, doc_id, data):
        if doc_id in self.fail_puts_for:
            raise TransientStoreError("write timeout")
        await super().put(collection, scope, doc_id, data)


# =============================================================================
# Document factories
# =============================================================================


def ingredient_doc(inventory_id: str, quantity: float, cost: float = 0.0, cost_per_unit: float = 0.0) -> dict:
    return {
        "inventoryItemId": inventory_id,
        "inventoryItemName": f"Inventory {inventory_id}",
        "quantity": quantity,
        "unit": "kg",
        "cost": cost,
        "costPerUnit": cost_per_unit,
    }


def menu_doc(item_id: str, **overrides: Any) -> dict:
    doc = {
        "id": item_id,
        "tenantId": TENANT_ID,
        "locationId": LOCATION_ID,
        "name": f"Dish {item_id}",
        "category": "mains",
        "price": 20.0,
        "cost": 0.0,
        "ingredients": [],
        "status": "active",
    }
    doc.update(overrides)
    return doc


def inventory_doc(item_id: str, cost_per_unit: float, **overrides: Any) -> dict:
    doc = {
        "id": item_id,
        "tenantId": TENANT_ID,
        "locationId": LOCATION_ID,
        "name": f"Inventory {item_id}",
        "unit": "kg",
        "costPerUnit": cost_per_unit,
    }
    doc.update(overrides)
    return doc


async def seed(store, scope: Scope, collection: str, docs: list[dict]) -> None:
    for doc in docs:
        await store.put(collection, scope, doc["id"], doc)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    """Poll ``predicate`` (sync or async) until it returns truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def scope():
    return Scope(TENANT_ID, LOCATION_ID)


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def emitter():
    return LocalCostEventEmitter()


@pytest.fixture(scope="function")
def sql_store():
    """
    SQL document store on SQLite in-memory.
    StaticPool keeps the single connection shared by worker threads.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlDocumentStore(engine, poll_interval=0.01)
    store.create_schema()
    try:
        yield store
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def container(store, emitter):
    return ServiceContainer.build(store, emitter)


@pytest.fixture(scope="function")
def client(container):
    """
    Create a test client wired to the in-memory container.
    """
    app.state.container = container
    app.dependency_overrides[get_container] = lambda: container

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    del app.state.container


@pytest.fixture
def seeded_menu(store, scope):
    """Three menu items already projected to POS, plus one orphan POS item."""
    async def _seed():
        menus = [menu_doc(f"m{i}") for i in range(1, 4)]
        await seed(store, scope, Collections.MENU_ITEMS, menus)
        await seed(store, scope, Collections.POS_ITEMS, [
            {**doc, "menuItemId": doc["id"]} for doc in menus[:2]
        ])
        await seed(store, scope, Collections.POS_ITEMS, [
            {**menu_doc("ghost"), "menuItemId": "ghost"}
        ])
    return _seed
