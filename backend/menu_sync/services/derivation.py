"""
Pure derivation functions.

- derive_projection: MenuItem -> POSItem (the materialized POS view)
- compute_cost: ingredients + inventory index -> recomputed costs

No I/O and no clock reads unless a timestamp is not supplied, so both are
safe to call from the worker loop and from tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from shared.config.constants import MenuItemStatus, ProjectionDefaults
from shared.config.settings import settings
from menu_sync.schemas import Ingredient, InventoryItem, MenuItem, POSItem


def round_money(value: float, decimals: int | None = None) -> float:
    """Round half-up to the configured number of currency decimals."""
    places = settings.money_decimals if decimals is None else decimals
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def costs_differ(a: float, b: float, epsilon: float | None = None) -> bool:
    """True when two amounts differ by more than the cost epsilon."""
    eps = settings.cost_epsilon if epsilon is None else epsilon
    return abs(a - b) > eps


def derive_projection(menu_item: MenuItem, now: datetime | None = None) -> POSItem:
    """
    Project a menu item onto its POS representation.

    The POS item shares the menu item's id and scope. Display defaults are
    applied here, never stored back on the menu item.
    """
    return POSItem(
        id=menu_item.id,
        menu_item_id=menu_item.id,
        tenant_id=menu_item.tenant_id,
        location_id=menu_item.location_id,
        name=menu_item.name,
        category=menu_item.category,
        price=menu_item.price,
        cost=menu_item.cost,
        description=menu_item.description or "",
        image=menu_item.image or "",
        emoji=menu_item.emoji or ProjectionDefaults.EMOJI,
        is_available=menu_item.status == MenuItemStatus.ACTIVE,
        preparation_time=menu_item.preparation_time or ProjectionDefaults.PREPARATION_TIME,
        ingredients=[ingredient.model_copy(deep=True) for ingredient in menu_item.ingredients],
        updated_at=now or datetime.now(timezone.utc),
    )


@dataclass(slots=True)
class CostComputation:
    """Result of recomputing a menu item's ingredient costs."""

    total_cost: float
    ingredients: list[Ingredient] = field(default_factory=list)
    # Inventory ids whose ingredient line cost moved beyond epsilon
    changed_ids: list[str] = field(default_factory=list)


def compute_cost(
    ingredients: list[Ingredient],
    inventory_index: Mapping[str, InventoryItem],
) -> CostComputation:
    """
    Recompute ingredient and total costs against current inventory prices.

    A resolved ingredient gets cost = costPerUnit x quantity and refreshed
    costPerUnit, unit and name caches. An ingredient whose inventory item
    is missing (or that has no id at all) keeps its last known cost.
    Line costs and the total are rounded to currency precision.
    """
    recomputed: list[Ingredient] = []
    changed: list[str] = []
    total = Decimal(0)

    for ingredient in ingredients:
        inventory_item = (
            inventory_index.get(ingredient.inventory_item_id)
            if ingredient.inventory_item_id
            else None
        )

        if inventory_item is None:
            recomputed.append(ingredient.model_copy(deep=True))
            total += Decimal(str(ingredient.cost))
            continue

        line_cost = round_money(inventory_item.cost_per_unit * ingredient.quantity)
        if costs_differ(line_cost, round_money(ingredient.cost)):
            changed.append(inventory_item.id)

        recomputed.append(ingredient.model_copy(
            update={
                "cost": line_cost,
                "cost_per_unit": inventory_item.cost_per_unit,
                "unit": inventory_item.unit or ingredient.unit,
                "inventory_item_name": inventory_item.name or ingredient.inventory_item_name,
            },
            deep=True,
        ))
        total += Decimal(str(line_cost))

    return CostComputation(
        total_cost=round_money(float(total)),
        ingredients=recomputed,
        changed_ids=changed,
    )
