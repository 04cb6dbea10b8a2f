"""Image input node - an uploaded image held as a data URL or remote URL."""

from __future__ import annotations

from typing import Any

from ai_workflow_studio.core.data_types import DataType, ImageData, NodeKind, is_data_url
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    NodeCategory,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
    ParameterType,
)


async def image_input_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute image input node - checks an image is loaded and records its size."""
    image = data.get("image")
    if not image:
        raise ValidationError("No image loaded")

    if not is_data_url(image):
        return {}

    try:
        decoded = ImageData.from_data_url(image)
    except ValueError as e:
        raise ValidationError(f"Invalid image: {e}") from e
    return {"dimensions": {"width": decoded.width, "height": decoded.height}}


IMAGE_INPUT_NODE = NodeType(
    kind=NodeKind.IMAGE_INPUT,
    name="Image Input",
    description="Upload an image to use in the workflow",
    category=NodeCategory.INPUT,
    inputs=[],
    outputs=[
        OutputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            source_field="image",
            description="Uploaded image",
        ),
    ],
    parameters=[
        ParameterDefinition(
            name="image",
            label="Image",
            param_type=ParameterType.IMAGE,
            default=None,
            description="Image as a data URL",
        ),
        ParameterDefinition.text(
            name="filename",
            label="Filename",
            default="",
        ),
    ],
    state_defaults={
        "dimensions": None,
    },
    executor=image_input_executor,
    default_width=300.0,
    default_height=280.0,
)
