"""
Cost impact analysis for ingredient price changes.

Read-only: reports how new inventory prices move each affected menu item's
cost and margin, and what price would restore the target margin. Prices
are never written here.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

from shared.config.constants import Collections, ImpactPriority
from shared.config.logging import get_logger
from shared.utils.retry import retry_async
from menu_sync.schemas import AffectedIngredient, CostImpact, InventoryItem, MenuItem
from menu_sync.store import DocumentStore, Scope, TransientStoreError
from .derivation import compute_cost, round_money

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    """
    Margin protection settings (percentages).

    Rounding steps apply to the recommended price: ``step_under_10`` below
    10, ``step_under_100`` below 100, ``step_over_100`` otherwise.
    """

    auto_update_threshold: float = 2.0
    review_threshold: float = 10.0
    target_margin: float = 65.0
    minimum_margin: float = 20.0
    max_price_increase: float = 15.0
    step_under_10: float = 0.25
    step_under_100: float = 1.00
    step_over_100: float = 5.00


DEFAULT_PRICING_POLICY = PricingPolicy()


def round_price(price: float, policy: PricingPolicy = DEFAULT_PRICING_POLICY) -> float:
    """Round to the nearest menu price step for the price's range."""
    if price < 10:
        step = policy.step_under_10
    elif price < 100:
        step = policy.step_under_100
    else:
        step = policy.step_over_100
    steps = (Decimal(str(price)) / Decimal(str(step))).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(steps * Decimal(str(step)))


def margin_percent(price: float, cost: float) -> float:
    return (price - cost) / price * 100 if price > 0 else 0.0


def recommend_price(
    current_price: float,
    new_cost: float,
    cost_change: float,
    policy: PricingPolicy = DEFAULT_PRICING_POLICY,
) -> float:
    """
    Price that restores the target margin when cost rose, capped at the
    maximum allowed increase. A cost decrease never lowers the price.
    """
    if cost_change <= 0 or policy.target_margin >= 100:
        return current_price
    target = new_cost / (1 - policy.target_margin / 100)
    recommended = round_price(target, policy)
    if current_price > 0:
        recommended = min(recommended, current_price * (1 + policy.max_price_increase / 100))
    return round_money(recommended)


def update_priority(
    current_price: float,
    recommended_price: float,
    new_cost: float,
    policy: PricingPolicy = DEFAULT_PRICING_POLICY,
) -> str:
    change_percent = (
        abs(recommended_price - current_price) / current_price * 100 if current_price > 0 else 0.0
    )
    if change_percent <= policy.auto_update_threshold:
        priority = ImpactPriority.AUTO
    elif change_percent <= policy.review_threshold:
        priority = ImpactPriority.REVIEW
    else:
        priority = ImpactPriority.MANUAL

    # The capped recommendation still leaves the margin under the floor
    if margin_percent(recommended_price, new_cost) < policy.minimum_margin:
        priority = ImpactPriority.MANUAL
    return priority


def analyze_cost_impact(
    menu_items: Iterable[MenuItem],
    inventory_index: Mapping[str, InventoryItem],
    changed_ids: Iterable[str],
    policy: PricingPolicy = DEFAULT_PRICING_POLICY,
) -> list[CostImpact]:
    """
    Impact of the current inventory prices on menu items using any of
    ``changed_ids``. Old cost is the item's cached cost.
    """
    changed = set(changed_ids)
    impacts: list[CostImpact] = []

    for item in menu_items:
        affected = [i for i in item.ingredients if i.inventory_item_id in changed]
        if not affected:
            continue

        computation = compute_cost(item.ingredients, inventory_index)
        recomputed = {
            i.inventory_item_id: i for i in computation.ingredients if i.inventory_item_id
        }

        old_cost = round_money(item.cost)
        new_cost = computation.total_cost
        cost_change = round_money(new_cost - old_cost)
        old_margin = margin_percent(item.price, old_cost)
        new_margin = margin_percent(item.price, new_cost)
        recommended = recommend_price(item.price, new_cost, cost_change, policy)

        impacts.append(CostImpact(
            menu_item_id=item.id,
            menu_item_name=item.name,
            current_price=item.price,
            old_cost=old_cost,
            new_cost=new_cost,
            cost_change=cost_change,
            cost_change_percent=round(cost_change / old_cost * 100, 2) if old_cost > 0 else 0.0,
            old_margin=round(old_margin, 2),
            new_margin=round(new_margin, 2),
            margin_impact=round(new_margin - old_margin, 2),
            recommended_price=recommended,
            price_change_needed=round_money(recommended - item.price),
            update_priority=update_priority(item.price, recommended, new_cost, policy),
            affected_ingredients=[
                AffectedIngredient(
                    inventory_item_id=ingredient.inventory_item_id,
                    name=recomputed[ingredient.inventory_item_id].inventory_item_name,
                    quantity=ingredient.quantity,
                    old_cost=round_money(ingredient.cost),
                    new_cost=recomputed[ingredient.inventory_item_id].cost,
                )
                for ingredient in affected
            ],
        ))

    return impacts


class CostImpactAnalyzer:
    """Loads a scope's catalog and runs ``analyze_cost_impact`` over it."""

    def __init__(self, store: DocumentStore, policy: PricingPolicy = DEFAULT_PRICING_POLICY):
        self._store = store
        self._policy = policy

    async def analyze(self, tenant_id: str, location_id: str, changed_ids: list[str]) -> list[CostImpact]:
        scope = Scope(tenant_id, location_id)
        filters = {"tenantId": tenant_id, "locationId": location_id}
        menu_docs = await retry_async(
            self._store.query, Collections.MENU_ITEMS, scope, filters,
            retry_on=(TransientStoreError,),
            description="load menu items",
        )
        inventory_docs = await retry_async(
            self._store.query, Collections.INVENTORY_ITEMS, scope, filters,
            retry_on=(TransientStoreError,),
            description="load inventory items",
        )

        menu_items = [MenuItem.model_validate(doc) for doc in menu_docs]
        index = {item.id: item for item in (InventoryItem.model_validate(doc) for doc in inventory_docs)}
        impacts = analyze_cost_impact(menu_items, index, changed_ids, self._policy)

        logger.info(
            "Cost impact analyzed",
            tenant_id=tenant_id,
            location_id=location_id,
            changed_ids=len(changed_ids),
            affected_items=len(impacts),
            manual=sum(1 for impact in impacts if impact.update_priority == ImpactPriority.MANUAL),
        )
        return impacts
