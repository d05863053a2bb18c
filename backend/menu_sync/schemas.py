"""
Pydantic models for the documents this service reads and writes.

Documents are stored with camelCase keys; models expose snake_case fields
with camelCase aliases. Keys the models do not know about are preserved so
rewriting a document never drops fields owned by other collaborators.

Defaulting rules for legacy ingredient shapes:
- ``inventoryItemId`` missing -> legacy ``id`` key is used
- ``inventoryItemName`` missing -> legacy ``name`` key is used
- ``quantity``, ``cost``, ``costPerUnit`` missing or null -> 0
- ``unit`` missing -> "unit"
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from shared.config.constants import ProjectionDefaults


MenuStatus = Literal["active", "inactive", "out_of_stock"]
Priority = Literal["auto", "review", "manual"]


class DocumentModel(BaseModel):
    """Base for stored documents: camelCase aliases, unknown keys kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored (camelCase) representation."""
        return self.model_dump(by_alias=True, mode="json")


class ApiModel(BaseModel):
    """Base for ephemeral API/report models: camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Catalog documents
# =============================================================================


class Ingredient(DocumentModel):
    """Ingredient embedded in a menu item; weak reference to an inventory item."""

    inventory_item_id: str | None = None
    inventory_item_name: str = ""
    quantity: float = 0.0
    unit: str = ProjectionDefaults.INGREDIENT_UNIT
    cost: float = 0.0
    cost_per_unit: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _apply_legacy_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("inventoryItemId") and not data.get("inventory_item_id") and data.get("id"):
            data["inventoryItemId"] = str(data["id"])
        if not data.get("inventoryItemName") and not data.get("inventory_item_name") and data.get("name"):
            data["inventoryItemName"] = data["name"]
        for key in ("quantity", "cost", "costPerUnit"):
            if key in data and data[key] is None:
                data[key] = 0.0
        if not data.get("unit"):
            data.pop("unit", None)
        return data


class CostAudit(DocumentModel):
    """Audit stamp written with every engine-owned cost update."""

    previous_cost: float
    new_cost: float
    synced_at: datetime
    affected_ingredients: list[str] = Field(default_factory=list)
    sync_type: str


class MenuItem(DocumentModel):
    """Source of truth for a sellable item. ``cost`` is owned by this service."""

    id: str
    tenant_id: str
    location_id: str
    name: str = ""
    category: str = ""
    price: float = 0.0
    cost: float = 0.0
    ingredients: list[Ingredient] = Field(default_factory=list)
    status: MenuStatus = "active"
    description: str = ""
    image: str = ""
    emoji: str | None = None
    preparation_time: int | None = None
    last_cost_sync: CostAudit | None = None

    @model_validator(mode="before")
    @classmethod
    def _null_money_is_zero(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("price", "cost"):
                if key in data and data[key] is None:
                    data[key] = 0.0
            if data.get("ingredients") is None:
                data.pop("ingredients", None)
        return data


class POSItem(DocumentModel):
    """Materialized projection of a menu item, keyed by the same id."""

    id: str
    menu_item_id: str
    tenant_id: str
    location_id: str
    name: str
    category: str
    price: float
    cost: float
    description: str = ""
    image: str = ""
    emoji: str = ProjectionDefaults.EMOJI
    is_available: bool = True
    preparation_time: int = ProjectionDefaults.PREPARATION_TIME
    ingredients: list[Ingredient] = Field(default_factory=list)
    updated_at: datetime | None = None

    def projected_fields(self) -> dict[str, Any]:
        """Document without bookkeeping timestamps, for drift comparison."""
        return self.model_dump(by_alias=True, mode="json", exclude={"updated_at"})


class InventoryItem(DocumentModel):
    """Read model of the inventory collaborator's entity."""

    id: str
    tenant_id: str = ""
    location_id: str = ""
    name: str = ""
    unit: str = ProjectionDefaults.INGREDIENT_UNIT
    cost_per_unit: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _null_price_is_zero(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("costPerUnit") is None and data.get("cost_per_unit") is None:
                data["costPerUnit"] = 0.0
            if not data.get("unit"):
                data.pop("unit", None)
        return data


# =============================================================================
# Reports and results (not persisted)
# =============================================================================


class SyncStats(ApiModel):
    menu_items: int
    pos_items: int
    linked_items: int
    orphaned_items: int


class SyncReport(ApiModel):
    """Outcome of a consistency validation. ``valid=False`` is a normal state."""

    valid: bool
    issues: list[str] = Field(default_factory=list)
    stats: SyncStats
    orphan_ids: list[str] = Field(default_factory=list)
    unlinked_ids: list[str] = Field(default_factory=list)


class FullSyncResult(ApiModel):
    menu_items: int = 0
    written: int = 0
    unchanged: int = 0
    failed: int = 0


class EmergencyResetResult(ApiModel):
    deleted: int
    sync: FullSyncResult


class SyncStatus(ApiModel):
    active: bool
    state: str
    menu_item_count: int
    inventory_item_count: int


class CostUpdate(ApiModel):
    """One staged menu item cost change."""

    menu_item_id: str
    name: str = ""
    previous_cost: float
    new_cost: float
    affected_ingredients: list[str] = Field(default_factory=list)


class AffectedIngredient(ApiModel):
    inventory_item_id: str
    name: str
    quantity: float
    old_cost: float
    new_cost: float


class CostImpact(ApiModel):
    """Margin impact of ingredient price changes on one menu item."""

    menu_item_id: str
    menu_item_name: str
    current_price: float
    old_cost: float
    new_cost: float
    cost_change: float
    cost_change_percent: float
    old_margin: float
    new_margin: float
    margin_impact: float
    recommended_price: float
    price_change_needed: float
    update_priority: Priority
    affected_ingredients: list[AffectedIngredient] = Field(default_factory=list)
