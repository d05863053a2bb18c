"""
Tests for the maintenance API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config.constants import Collections
from shared.infrastructure.events import POS_CATALOG_RESET, POS_CATALOG_RESYNCED
from menu_sync.core.container import ServiceContainer, get_container
from menu_sync.main import app
from conftest import ingredient_doc, inventory_doc, menu_doc, seed


BASE = "/api/sync/t1/l1"


def _run(client, fn, *args):
    """Run a coroutine function on the app's event loop."""
    return client.portal.call(fn, *args)


class TestValidateEndpoint:

    def test_reports_orphans_and_unlinked(self, client, seeded_menu):
        _run(client, seeded_menu)

        response = client.get(f"{BASE}/validate")

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["orphanIds"] == ["ghost"]
        assert data["unlinkedIds"] == ["m3"]
        assert data["stats"]["menuItems"] == 3
        assert data["stats"]["linkedItems"] == 2
        assert "Orphaned POS item ghost: no matching menu item" in data["issues"]

    def test_empty_scope_is_valid(self, client):
        response = client.get(f"{BASE}/validate")

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_separator_in_scope_is_rejected(self, client):
        response = client.get("/api/sync/t:1/l1/validate")

        assert response.status_code == 400


class TestCatalogMaintenance:

    def test_cleanup_orphans(self, client, store, scope, seeded_menu):
        _run(client, seeded_menu)

        response = client.post(f"{BASE}/cleanup-orphans")

        assert response.status_code == 200
        assert response.json() == {"removed": 1}
        assert _run(client, store.get, Collections.POS_ITEMS, scope, "ghost") is None

    def test_full_sync_is_idempotent(self, client, emitter, seeded_menu):
        _run(client, seeded_menu)

        first = client.post(f"{BASE}/full-sync").json()
        second = client.post(f"{BASE}/full-sync").json()

        assert first["written"] == 3
        assert second == {"menuItems": 3, "written": 0, "unchanged": 3, "failed": 0}
        assert [e.type for e in emitter.events] == [POS_CATALOG_RESYNCED]

    def test_emergency_reset_requires_confirmation(self, client, store, scope, seeded_menu):
        _run(client, seeded_menu)

        missing = client.post(f"{BASE}/emergency-reset", json={})
        wrong_scope = client.post(f"{BASE}/emergency-reset", json={"confirm": True, "confirmScope": "t1/l2"})

        assert missing.status_code == 400
        assert wrong_scope.status_code == 400
        assert _run(client, store.get, Collections.POS_ITEMS, scope, "ghost") is not None

    def test_emergency_reset_rebuilds_catalog(self, client, store, scope, emitter, seeded_menu):
        _run(client, seeded_menu)

        response = client.post(f"{BASE}/emergency-reset", json={"confirm": True, "confirmScope": "t1/l1"})

        assert response.status_code == 200
        data = response.json()
        assert data["deleted"] == 3
        assert data["sync"]["written"] == 3
        pos_ids = {doc["id"] for doc in _run(client, store.query, Collections.POS_ITEMS, scope)}
        assert pos_ids == {"m1", "m2", "m3"}
        assert emitter.events[-1].type == POS_CATALOG_RESET


class TestCostSyncEndpoints:

    def _seed_catalog(self, client, store, scope):
        async def _seed():
            await seed(store, scope, Collections.INVENTORY_ITEMS, [inventory_doc("inv1", 2.5)])
            await seed(store, scope, Collections.MENU_ITEMS, [
                menu_doc("m1", ingredients=[ingredient_doc("inv1", 2, cost=4.0, cost_per_unit=2.0)], cost=4.0),
            ])
        _run(client, _seed)

    def test_start_status_stop(self, client, store, scope):
        self._seed_catalog(client, store, scope)

        started = client.post(f"{BASE}/cost-sync/start")
        status = client.get(f"{BASE}/cost-sync/status")
        stopped = client.post(f"{BASE}/cost-sync/stop")

        assert started.status_code == 200
        assert started.json()["active"] is True
        assert status.json() == {
            "active": True,
            "state": "active",
            "menuItemCount": 1,
            "inventoryItemCount": 1,
        }
        assert stopped.json()["active"] is False

    def test_status_of_never_started_scope(self, client):
        response = client.get(f"{BASE}/cost-sync/status")

        assert response.status_code == 200
        assert response.json()["state"] == "stopped"

    def test_force_sync_updates_costs(self, client, store, scope, emitter):
        self._seed_catalog(client, store, scope)

        response = client.post(f"{BASE}/cost-sync/force")

        assert response.status_code == 200
        data = response.json()
        assert data["updated"] == 1
        assert data["updates"][0]["menuItemId"] == "m1"
        assert data["updates"][0]["newCost"] == 5.0
        item = _run(client, store.get, Collections.MENU_ITEMS, scope, "m1")
        assert item["cost"] == 5.0
        assert item["lastCostSync"]["previousCost"] == 4.0


class TestCostImpactEndpoint:

    def test_reports_impact_without_writing(self, client, store, scope):
        async def _seed():
            await seed(store, scope, Collections.INVENTORY_ITEMS, [inventory_doc("inv1", 3.0)])
            await seed(store, scope, Collections.MENU_ITEMS, [
                menu_doc("m1", price=10.0, cost=4.0, ingredients=[ingredient_doc("inv1", 2, cost=4.0, cost_per_unit=2.0)]),
            ])
        _run(client, _seed)

        response = client.post(f"{BASE}/cost-impact", json={"changedInventoryIds": ["inv1"]})

        assert response.status_code == 200
        impact = response.json()[0]
        assert impact["newCost"] == 6.0
        assert impact["recommendedPrice"] == 11.5
        assert impact["updatePriority"] == "manual"
        assert _run(client, store.get, Collections.MENU_ITEMS, scope, "m1")["cost"] == 4.0

    def test_empty_id_list_is_rejected(self, client):
        response = client.post(f"{BASE}/cost-impact", json={"changedInventoryIds": []})

        assert response.status_code == 422


class TestStoreOutage:

    @pytest.fixture
    def outage_client(self, flaky_store, emitter, monkeypatch):
        monkeypatch.setattr("shared.utils.retry.calculate_delay_with_jitter", lambda attempt, config=None: 0)
        flaky_store.fail_queries = 100
        container = ServiceContainer.build(flaky_store, emitter)
        app.state.container = container
        app.dependency_overrides[get_container] = lambda: container

        with TestClient(app) as test_client:
            yield test_client

        app.dependency_overrides.clear()
        del app.state.container

    def test_store_failure_maps_to_503(self, outage_client):
        response = outage_client.get(f"{BASE}/validate")

        assert response.status_code == 503
        assert "connection reset" not in response.text
