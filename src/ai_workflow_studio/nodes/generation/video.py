"""
Generate Video node - text-to-video and image-to-video via a provider.

There is no default model: the user picks one from a provider's catalog.
"""

from __future__ import annotations

from typing import Any

from ai_workflow_studio.core.data_types import DataType, NodeKind
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    InputDefinition,
    NodeCategory,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
    ParameterType,
)
from ai_workflow_studio.nodes.generation.common import image_inputs, prompt_input
from ai_workflow_studio.providers.base import GenerationInput, OutputKind


async def generate_video_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute video generation."""
    prompt = prompt_input(inputs)
    images = image_inputs(inputs)
    if not prompt and not images:
        raise ValidationError("Missing input: connect a prompt or an image")

    selection = data.get("selectedModel") or {}
    if not selection.get("provider") or not selection.get("modelId"):
        raise ValidationError("No video model selected")

    output = await context.generate(selection["provider"], GenerationInput(
        model=selection["modelId"],
        output=OutputKind.VIDEO,
        prompt=prompt or None,
        images=images,
        parameters=dict(data.get("parameters") or {}),
    ))

    return {
        "inputImages": images,
        "inputPrompt": prompt,
        "outputVideo": output,
    }


GENERATE_VIDEO_NODE = NodeType(
    kind=NodeKind.GENERATE_VIDEO,
    name="Generate Video",
    description="Generate a video clip with an AI model",
    category=NodeCategory.GENERATION,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            description="Start frame",
        ),
        InputDefinition(
            name="text",
            label="Prompt",
            data_type=DataType.TEXT,
            fallback_field="prompt",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="video",
            label="Video",
            data_type=DataType.VIDEO,
            source_field="outputVideo",
            description="Generated video",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="prompt",
            label="Prompt",
            default="",
            multiline=True,
        ),
        ParameterDefinition(
            name="selectedModel",
            label="Model",
            param_type=ParameterType.MODEL,
            default=None,
        ),
        ParameterDefinition.obj(
            name="parameters",
            label="Model Parameters",
            default={},
            description="Provider inputs such as duration",
        ),
    ],
    state_defaults={
        "inputImages": [],
        "inputPrompt": None,
        "outputVideo": None,
    },
    history_field="outputVideo",
    executor=generate_video_executor,
)
