"""
Output Nodes - Terminal nodes that collect workflow results.
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.output.preview import OUTPUT_NODE


def register_output_nodes(registry: NodeRegistry) -> None:
    """Register all output node types."""
    registry.register(OUTPUT_NODE)


__all__ = [
    "OUTPUT_NODE",
    "register_output_nodes",
]
