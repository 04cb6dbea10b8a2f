"""
Workflow Model - The graph together with its history and cost state.

A Workflow bundles everything needed to save and restore a session's
work: the node graph, every node's output history, and the incurred
cost record. Writing the document to disk is left to the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ai_workflow_studio.core.cost import CostEstimator, CostRecord
from ai_workflow_studio.core.graph import NodeId, WorkflowGraph
from ai_workflow_studio.core.history import HistoryEntry, HistoryManager
from ai_workflow_studio.core.node_types import NodeRegistry

if TYPE_CHECKING:
    from ai_workflow_studio.core.execution import WorkflowExecutor
    from ai_workflow_studio.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


@dataclass
class Workflow:
    """
    A complete workflow: graph, per-node history and cost.

    The history manager follows the graph, so nodes added or removed
    through `graph` get or lose their history list automatically.
    """
    graph: WorkflowGraph
    history: HistoryManager
    costs: CostEstimator

    # Timestamps
    created_at: datetime = field(default_factory=datetime.now)
    modified_at: datetime = field(default_factory=datetime.now)

    _executor: WorkflowExecutor | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.history.follow(self.graph)

    @classmethod
    def create(cls, name: str = "Untitled", registry: NodeRegistry | None = None) -> Workflow:
        """Create a new empty workflow."""
        graph = WorkflowGraph(name=name, registry=registry)
        return cls(
            graph=graph,
            history=HistoryManager(),
            costs=CostEstimator(graph.id),
        )

    @property
    def id(self) -> str:
        return self.graph.id

    @property
    def name(self) -> str:
        return self.graph.name

    def executor(self, providers: ProviderRegistry | None = None) -> WorkflowExecutor:
        """
        The workflow's executor, created on first use.

        Every caller gets the same instance, so one per-node generation
        lock covers the whole workflow. Passing `providers` rebinds the
        registry adapters are resolved from.
        """
        if self._executor is None:
            from ai_workflow_studio.core.execution import WorkflowExecutor
            self._executor = WorkflowExecutor(self.graph, self.history, self.costs, providers)
        elif providers is not None:
            self._executor.providers = providers
        return self._executor

    def select_history(self, node_id: NodeId, index: int) -> HistoryEntry:
        """
        Select an older (or newer) output of a node without re-running it.

        The selected output is written back into the node's output field
        so downstream nodes read it on their next run.

        Raises:
            KeyError: If the node doesn't exist.
            IndexError: If index is outside the node's history.
        """
        node = self.graph.require_node(node_id)
        entry = self.history.select(node_id, index)
        history_field = self.graph.node_type(node).history_field
        if history_field:
            node.data[history_field] = entry.output
        self.modified_at = datetime.now()
        return entry

    def total_predicted_cost(self) -> float:
        """Predicted cost of running every generation node once."""
        return self.costs.total_predicted(self.graph)

    @property
    def incurred_cost(self) -> float:
        return self.costs.incurred_cost

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        """Convert the workflow to a JSON-compatible document."""
        return {
            "version": FORMAT_VERSION,
            "createdAt": self.created_at.isoformat(),
            "modifiedAt": self.modified_at.isoformat(),
            "graph": self.graph.to_dict(),
            "history": self.history.to_dict(),
            "cost": self.costs.to_record().to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        registry: NodeRegistry | None = None,
    ) -> Workflow:
        """
        Restore a workflow document.

        Raises:
            ValueError: If the document's format version is newer than supported.
            StructuralError: If the graph violates a structural invariant.
        """
        version = data.get("version", FORMAT_VERSION)
        if version > FORMAT_VERSION:
            raise ValueError(f"Unsupported workflow format version: {version}")

        graph = WorkflowGraph.from_dict(data.get("graph", {}), registry)
        history = HistoryManager.from_dict(data.get("history", {}))

        cost_data = data.get("cost")
        if cost_data:
            costs = CostEstimator.from_record(CostRecord.from_dict(cost_data))
        else:
            costs = CostEstimator(graph.id)

        workflow = cls(graph=graph, history=history, costs=costs)
        if data.get("createdAt"):
            workflow.created_at = datetime.fromisoformat(data["createdAt"])
        if data.get("modifiedAt"):
            workflow.modified_at = datetime.fromisoformat(data["modifiedAt"])

        logger.debug("Loaded workflow %s with %d nodes", graph.id, len(graph))
        return workflow
