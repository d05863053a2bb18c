"""
Tests for cost impact analysis and price recommendations.
"""

import pytest

from shared.config.constants import Collections, ImpactPriority
from menu_sync.schemas import InventoryItem, MenuItem
from menu_sync.services import (
    CostImpactAnalyzer,
    PricingPolicy,
    analyze_cost_impact,
    margin_percent,
    recommend_price,
    round_price,
    update_priority,
)
from conftest import ingredient_doc, inventory_doc, menu_doc, seed


class TestRoundPrice:

    def test_small_prices_use_quarter_steps(self):
        assert round_price(4.10) == 4.0
        assert round_price(4.13) == 4.25

    def test_mid_prices_use_whole_units(self):
        assert round_price(57.4) == 57.0
        assert round_price(57.5) == 58.0

    def test_large_prices_use_five_unit_steps(self):
        assert round_price(123.0) == 125.0
        assert round_price(121.0) == 120.0


class TestRecommendPrice:

    def test_cost_decrease_keeps_price(self):
        assert recommend_price(12.0, 3.0, -1.0) == 12.0

    def test_recommendation_is_capped(self):
        # Target margin asks for 17.00, capped at +15% of 10.00
        assert recommend_price(10.0, 6.0, 2.0) == 11.5

    def test_uncapped_recommendation_reaches_target_margin(self):
        policy = PricingPolicy(max_price_increase=1000.0)

        assert recommend_price(10.0, 6.0, 2.0, policy) == 17.0

    def test_unpriced_item_is_not_capped(self):
        assert recommend_price(0.0, 3.5, 3.5) == 10.0


class TestUpdatePriority:

    def test_small_change_is_automatic(self):
        assert update_priority(10.0, 10.1, 3.0) == ImpactPriority.AUTO

    def test_moderate_change_needs_review(self):
        assert update_priority(10.0, 10.5, 3.0) == ImpactPriority.REVIEW

    def test_large_change_is_manual(self):
        assert update_priority(10.0, 11.5, 3.0) == ImpactPriority.MANUAL

    def test_margin_below_floor_is_manual(self):
        assert update_priority(10.0, 10.1, 9.0) == ImpactPriority.MANUAL

    def test_margin_percent(self):
        assert margin_percent(10.0, 4.0) == pytest.approx(60.0)
        assert margin_percent(0.0, 4.0) == 0.0


def _burger() -> MenuItem:
    return MenuItem.model_validate(menu_doc(
        "m1",
        name="Burger",
        price=10.0,
        cost=4.0,
        ingredients=[
            ingredient_doc("inv1", 2, cost=4.0, cost_per_unit=2.0),
            ingredient_doc("inv2", 1, cost=0.0, cost_per_unit=0.0),
        ],
    ))


class TestAnalyzeCostImpact:

    def test_reports_affected_item(self):
        index = {
            "inv1": InventoryItem.model_validate(inventory_doc("inv1", 3.0)),
            "inv2": InventoryItem.model_validate(inventory_doc("inv2", 0.0)),
        }

        impacts = analyze_cost_impact([_burger()], index, ["inv1"])

        assert len(impacts) == 1
        impact = impacts[0]
        assert impact.menu_item_id == "m1"
        assert impact.old_cost == 4.0
        assert impact.new_cost == 6.0
        assert impact.cost_change == 2.0
        assert impact.cost_change_percent == 50.0
        assert impact.old_margin == 60.0
        assert impact.new_margin == 40.0
        assert impact.margin_impact == -20.0
        assert impact.recommended_price == 11.5
        assert impact.price_change_needed == 1.5
        assert impact.update_priority == ImpactPriority.MANUAL
        assert [a.inventory_item_id for a in impact.affected_ingredients] == ["inv1"]
        assert impact.affected_ingredients[0].old_cost == 4.0
        assert impact.affected_ingredients[0].new_cost == 6.0

    def test_unrelated_items_are_skipped(self):
        index = {"inv1": InventoryItem.model_validate(inventory_doc("inv1", 3.0))}

        assert analyze_cost_impact([_burger()], index, ["inv9"]) == []


class TestCostImpactAnalyzer:

    @pytest.mark.asyncio
    async def test_analyze_reads_scope_and_never_writes(self, store, scope):
        await seed(store, scope, Collections.INVENTORY_ITEMS, [
            inventory_doc("inv1", 3.0),
            inventory_doc("inv2", 0.0),
        ])
        await seed(store, scope, Collections.MENU_ITEMS, [_burger().to_document()])
        writes = store.write_count

        impacts = await CostImpactAnalyzer(store).analyze("t1", "l1", ["inv1"])

        assert [i.new_cost for i in impacts] == [6.0]
        assert store.write_count == writes
        assert (await store.get(Collections.MENU_ITEMS, scope, "m1"))["cost"] == 4.0
