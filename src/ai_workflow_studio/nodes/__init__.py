"""
Nodes package - All built-in node kinds.

This package contains node implementations organized by category:
- input: Prompt, Image input
- filter: Annotation
- generation: Image, Video, LLM text
- utility: Split grid
- output: Output preview
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.filter import register_filter_nodes
from ai_workflow_studio.nodes.generation import register_generation_nodes
from ai_workflow_studio.nodes.input import register_input_nodes
from ai_workflow_studio.nodes.output import register_output_nodes
from ai_workflow_studio.nodes.utility import register_utility_nodes


def register_all_nodes(registry: NodeRegistry) -> None:
    """Register all built-in nodes."""
    register_input_nodes(registry)
    register_filter_nodes(registry)
    register_generation_nodes(registry)
    register_utility_nodes(registry)
    register_output_nodes(registry)


def default_node_registry() -> NodeRegistry:
    """Build a fresh registry holding every built-in node kind."""
    registry = NodeRegistry()
    register_all_nodes(registry)
    return registry


__all__ = [
    "register_all_nodes",
    "default_node_registry",
]
