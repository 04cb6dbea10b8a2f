"""
Input Nodes - Nodes that provide input data to the workflow.

These include the text prompt and the uploaded image.
"""

from ai_workflow_studio.core.node_types import NodeRegistry
from ai_workflow_studio.nodes.input.image import IMAGE_INPUT_NODE
from ai_workflow_studio.nodes.input.prompt import PROMPT_NODE


def register_input_nodes(registry: NodeRegistry) -> None:
    """Register all input node types."""
    registry.register(PROMPT_NODE)
    registry.register(IMAGE_INPUT_NODE)


__all__ = [
    "PROMPT_NODE",
    "IMAGE_INPUT_NODE",
    "register_input_nodes",
]
