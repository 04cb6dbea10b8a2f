"""
Filter Nodes - Local image transforms that need no provider.
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.filter.annotation import ANNOTATION_NODE


def register_filter_nodes(registry: NodeRegistry) -> None:
    """Register all filter node types."""
    registry.register(ANNOTATION_NODE)


__all__ = [
    "ANNOTATION_NODE",
    "register_filter_nodes",
]
