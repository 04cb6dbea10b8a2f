"""
Core module - Graph model, execution engine, history and cost tracking.

This module provides the fundamental building blocks:
- Graph: Node/edge/group data structures and structural invariants
- Data Types: Handle content types, node kinds and statuses, image pixels
- Node Types: Node definitions and registry
- History: Per-node output history
- Cost: Price table, prediction and incurred totals
- Execution: The async workflow executor
- Workflow: Graph, history and cost bundled for save/load
"""

from ai_workflow_studio.core.graph import (
    Edge,
    EdgeId,
    GraphEvent,
    GraphEventKind,
    GroupId,
    Node,
    NodeGroup,
    NodeId,
    Point2D,
    Size2D,
    WorkflowGraph,
    new_edge_id,
    new_node_id,
)

from ai_workflow_studio.core.data_types import (
    DataType,
    ImageData,
    NodeKind,
    NodeStatus,
    load_image,
)

from ai_workflow_studio.core.errors import (
    StructuralError,
    ValidationError,
    WorkflowError,
)

from ai_workflow_studio.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeExecutor,
    NodeRegistry,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
    ParameterType,
)

from ai_workflow_studio.core.history import (
    HistoryEntry,
    HistoryManager,
)

from ai_workflow_studio.core.cost import (
    CostEstimator,
    CostRecord,
)

from ai_workflow_studio.core.execution import (
    ExecutionProgress,
    NodeContext,
    RunResult,
    WorkflowExecutor,
)

from ai_workflow_studio.core.workflow import Workflow


__all__ = [
    # graph.py
    "Edge",
    "EdgeId",
    "GraphEvent",
    "GraphEventKind",
    "GroupId",
    "Node",
    "NodeGroup",
    "NodeId",
    "Point2D",
    "Size2D",
    "WorkflowGraph",
    "new_edge_id",
    "new_node_id",
    # data_types.py
    "DataType",
    "ImageData",
    "NodeKind",
    "NodeStatus",
    "load_image",
    # errors.py
    "StructuralError",
    "ValidationError",
    "WorkflowError",
    # node_types.py
    "InputDefinition",
    "NodeCategory",
    "NodeExecutor",
    "NodeRegistry",
    "NodeType",
    "OutputDefinition",
    "ParameterDefinition",
    "ParameterType",
    # history.py
    "HistoryEntry",
    "HistoryManager",
    # cost.py
    "CostEstimator",
    "CostRecord",
    # execution.py
    "ExecutionProgress",
    "NodeContext",
    "RunResult",
    "WorkflowExecutor",
    # workflow.py
    "Workflow",
]
