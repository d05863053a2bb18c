"""
Domain services for menu/POS synchronization and cost propagation.

- derivation: pure projection and cost functions
- validator: menu vs POS consistency report
- reconciliation: upsert/remove, full sync, orphan cleanup
- emergency_reset: wipe and rebuild a scope's POS catalog
- cost_propagation: per-scope real-time cost engine
- engine_registry: engines by scope
- cost_events: "costs updated" emitters
- menu_hooks: entry points for menu mutations
- cost_impact: margin impact and price recommendations
"""

from .derivation import (
    CostComputation,
    compute_cost,
    costs_differ,
    derive_projection,
    round_money,
)
from .validator import ConsistencyValidator
from .reconciliation import ReconciliationEngine
from .emergency_reset import EmergencyReset
from .cost_events import (
    CostEventEmitter,
    LocalCostEventEmitter,
    RedisCostEventEmitter,
    build_costs_updated_event,
    build_emitter,
)
from .cost_propagation import CostPropagationEngine, EngineStoppedError
from .engine_registry import CostSyncRegistry
from .menu_hooks import MenuSyncHooks
from .cost_impact import (
    DEFAULT_PRICING_POLICY,
    CostImpactAnalyzer,
    PricingPolicy,
    analyze_cost_impact,
    margin_percent,
    recommend_price,
    round_price,
    update_priority,
)

__all__ = [
    "CostComputation",
    "compute_cost",
    "costs_differ",
    "derive_projection",
    "round_money",
    "ConsistencyValidator",
    "ReconciliationEngine",
    "EmergencyReset",
    "CostEventEmitter",
    "LocalCostEventEmitter",
    "RedisCostEventEmitter",
    "build_costs_updated_event",
    "build_emitter",
    "CostPropagationEngine",
    "EngineStoppedError",
    "CostSyncRegistry",
    "MenuSyncHooks",
    "DEFAULT_PRICING_POLICY",
    "CostImpactAnalyzer",
    "PricingPolicy",
    "analyze_cost_impact",
    "margin_percent",
    "recommend_price",
    "round_price",
    "update_priority",
]
