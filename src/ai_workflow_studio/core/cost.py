"""
Cost Estimation - Predicted and incurred generation cost.

Predictions are a pure function of a node's configuration, looked up in
a static price table keyed by (provider, model, tier). The tier is the
resolution for images ("1K", "2K", "4K") and the duration for videos
("5s", "10s"); ANY_TIER matches every tier of a model.

Totals are summed with math.fsum so they do not depend on the order in
which nodes or costs are visited.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

from ai_workflow_studio.core.data_types import NodeKind
from ai_workflow_studio.core.graph import Node, NodeId, WorkflowGraph

ANY_TIER = "*"

PriceKey = tuple[str, str, str]


# ============================================================================
# Built-in Prices (USD per generation call)
# ============================================================================

BUILTIN_PRICES: dict[PriceKey, float] = {
    # Gemini image models
    ("gemini", "nano-banana", ANY_TIER): 0.039,
    ("gemini", "nano-banana-pro", "1K"): 0.134,
    ("gemini", "nano-banana-pro", "2K"): 0.134,
    ("gemini", "nano-banana-pro", "4K"): 0.24,

    # Replicate video models, per clip duration
    ("replicate", "kwaivgi/kling-v2.1", "5s"): 0.25,
    ("replicate", "kwaivgi/kling-v2.1", "10s"): 0.50,
}

GENERATION_KINDS = frozenset({
    NodeKind.GENERATE_IMAGE,
    NodeKind.GENERATE_VIDEO,
    NodeKind.LLM_GENERATE,
})


def pricing_key(node: Node) -> PriceKey | None:
    """
    Resolve the (provider, model, tier) a node would be billed under.

    Returns None for nodes that never call a provider or have no model
    selected yet.
    """
    data = node.data

    if node.kind == NodeKind.GENERATE_IMAGE:
        selected = data.get("selectedModel") or {}
        provider = selected.get("provider") or "gemini"
        model = selected.get("modelId") or data.get("model")
        if not model:
            return None
        return (provider, model, str(data.get("resolution") or ANY_TIER))

    if node.kind == NodeKind.GENERATE_VIDEO:
        selected = data.get("selectedModel") or {}
        if not selected.get("provider") or not selected.get("modelId"):
            return None
        duration = (data.get("parameters") or {}).get("duration", 5)
        return (selected["provider"], selected["modelId"], f"{duration}s")

    if node.kind == NodeKind.LLM_GENERATE:
        if not data.get("provider") or not data.get("model"):
            return None
        return (data["provider"], data["model"], ANY_TIER)

    return None


@dataclass
class CostRecord:
    """Persisted incurred-cost record for one workflow."""
    workflow_id: str
    incurred_cost: float = 0.0
    last_updated: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflowId": self.workflow_id,
            "incurredCost": self.incurred_cost,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CostRecord:
        return cls(
            workflow_id=data["workflowId"],
            incurred_cost=float(data.get("incurredCost", 0.0)),
            last_updated=float(data.get("lastUpdated", 0.0)),
        )


class CostEstimator:
    """
    Predicts per-node cost and accumulates incurred cost for a workflow.

    `predict` and `total_predicted` are side-effect free. Only
    `record_incurred` and `reset_incurred` change state.
    """

    def __init__(
        self,
        workflow_id: str,
        prices: dict[PriceKey, float] | None = None,
    ):
        self.workflow_id = workflow_id
        self._prices: dict[PriceKey, float] = dict(BUILTIN_PRICES if prices is None else prices)
        self._incurred: list[tuple[NodeId | None, float]] = []
        self.last_updated: float = time.time()

    # -------------------------------------------------------------------------
    # Price table
    # -------------------------------------------------------------------------

    def register_price(self, provider: str, model: str, tier: str, cost: float) -> None:
        """Add or replace a price table entry."""
        if cost < 0:
            raise ValueError("Cost must be non-negative")
        self._prices[(provider, model, tier)] = cost

    def price_for(self, provider: str, model: str, tier: str = ANY_TIER) -> float:
        """Look up a price, falling back to the model's ANY_TIER entry, else 0."""
        price = self._prices.get((provider, model, tier))
        if price is None:
            price = self._prices.get((provider, model, ANY_TIER), 0.0)
        return price

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def predict(self, node: Node) -> float:
        """Predicted cost of running `node` once with its current configuration."""
        key = pricing_key(node)
        if key is None:
            return 0.0
        return self.price_for(*key)

    def breakdown(self, graph: WorkflowGraph) -> dict[NodeId, float]:
        """Predicted cost per generation-capable node."""
        return {
            node.id: self.predict(node)
            for node in graph
            if node.kind in GENERATION_KINDS
        }

    def total_predicted(self, graph: WorkflowGraph) -> float:
        """Sum of `predict` over every generation-capable node."""
        return math.fsum(self.breakdown(graph).values())

    # -------------------------------------------------------------------------
    # Incurred cost
    # -------------------------------------------------------------------------

    def record_incurred(self, node_id: NodeId | None, cost: float) -> None:
        """Add a completed call's cost to the running total."""
        if cost < 0:
            raise ValueError("Cost must be non-negative")
        self._incurred.append((node_id, cost))
        self.last_updated = time.time()

    @property
    def incurred_cost(self) -> float:
        return math.fsum(cost for _, cost in self._incurred)

    def incurred_by_node(self) -> dict[NodeId, float]:
        totals: dict[NodeId, list[float]] = {}
        for node_id, cost in self._incurred:
            if node_id is not None:
                totals.setdefault(node_id, []).append(cost)
        return {nid: math.fsum(costs) for nid, costs in totals.items()}

    def reset_incurred(self) -> None:
        self._incurred.clear()
        self.last_updated = time.time()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def to_record(self) -> CostRecord:
        return CostRecord(
            workflow_id=self.workflow_id,
            incurred_cost=self.incurred_cost,
            last_updated=self.last_updated,
        )

    @classmethod
    def from_record(
        cls,
        record: CostRecord,
        prices: dict[PriceKey, float] | None = None,
    ) -> CostEstimator:
        estimator = cls(record.workflow_id, prices)
        if record.incurred_cost:
            # Per-node attribution is not persisted
            estimator._incurred.append((None, record.incurred_cost))
        estimator.last_updated = record.last_updated
        return estimator
