"""
Utility Nodes - Graph helpers that process data locally.
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.utility.split_grid import SPLIT_GRID_NODE


def register_utility_nodes(registry: NodeRegistry) -> None:
    """Register all utility node types."""
    registry.register(SPLIT_GRID_NODE)


__all__ = [
    "SPLIT_GRID_NODE",
    "register_utility_nodes",
]
