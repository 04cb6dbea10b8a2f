"""
Output node - collects a final image or video for display.

The actual display is handled by the host application when it reads
the node's data.
"""

from __future__ import annotations

from typing import Any

from ai_workflow_studio.core.data_types import DataType, NodeKind
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
)


async def output_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute output node - stores whatever arrived on its inputs."""
    image = inputs.get("image")
    video = inputs.get("video")
    if not image and not video:
        raise ValidationError("Missing input: connect an image or a video")
    return {"image": image, "video": video}


OUTPUT_NODE = NodeType(
    kind=NodeKind.OUTPUT,
    name="Output",
    description="Display the final image or video",
    category=NodeCategory.OUTPUT,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
        ),
        InputDefinition(
            name="video",
            label="Video",
            data_type=DataType.VIDEO,
        ),
    ],
    outputs=[],  # Terminal node
    state_defaults={
        "image": None,
        "video": None,
    },
    executor=output_executor,
    default_width=320.0,
    default_height=320.0,
)
