"""
Generation Nodes - Nodes that call a generation provider.

These nodes go through the NodeContext to reach the provider registry,
so a missing or unconfigured provider is a node-local error.
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.generation.image import GENERATE_IMAGE_NODE
from ai_workflow_studio.nodes.generation.llm import LLM_GENERATE_NODE
from ai_workflow_studio.nodes.generation.video import GENERATE_VIDEO_NODE


def register_generation_nodes(registry: NodeRegistry) -> None:
    """Register all generation node types."""
    registry.register(GENERATE_IMAGE_NODE)
    registry.register(GENERATE_VIDEO_NODE)
    registry.register(LLM_GENERATE_NODE)


__all__ = [
    "GENERATE_IMAGE_NODE",
    "GENERATE_VIDEO_NODE",
    "LLM_GENERATE_NODE",
    "register_generation_nodes",
]
