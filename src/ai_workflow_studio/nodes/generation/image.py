"""
Generate Image node - text-to-image and image-to-image via a provider.
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
from ai_workflow_studio.nodes.generation.common import image_inputs, prompt_input, selected_model
from ai_workflow_studio.providers.base import GenerationInput, OutputKind

DEFAULT_IMAGE_MODEL = "nano-banana-pro"


async def generate_image_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute image generation."""
    prompt = prompt_input(inputs)
    images = image_inputs(inputs)
    if not prompt and not images:
        raise ValidationError("Missing input: connect a prompt or an image")

    provider_id, model_id = selected_model(data, default_provider="gemini")

    parameters: dict[str, Any] = {
        "aspectRatio": data.get("aspectRatio"),
        "resolution": data.get("resolution"),
        "useGoogleSearch": bool(data.get("useGoogleSearch")),
    }
    parameters.update(data.get("parameters") or {})

    output = await context.generate(provider_id, GenerationInput(
        model=model_id,
        output=OutputKind.IMAGE,
        prompt=prompt or None,
        images=images,
        parameters=parameters,
    ))

    return {
        "inputImages": images,
        "inputPrompt": prompt,
        "outputImage": output,
    }


GENERATE_IMAGE_NODE = NodeType(
    kind=NodeKind.GENERATE_IMAGE,
    name="Generate Image",
    description="Generate or edit an image with an AI model",
    category=NodeCategory.GENERATION,
    inputs=[
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            description="Reference image for editing",
        ),
        InputDefinition(
            name="text",
            label="Prompt",
            data_type=DataType.TEXT,
            fallback_field="prompt",
            description="Text prompt describing the image",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            source_field="outputImage",
            description="Generated image",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="prompt",
            label="Prompt",
            default="",
            multiline=True,
            description="Used when no prompt is connected",
        ),
        ParameterDefinition.enum(
            name="aspectRatio",
            label="Aspect Ratio",
            options=[
                ("1:1", "1:1"),
                ("16:9", "16:9"),
                ("9:16", "9:16"),
                ("4:3", "4:3"),
                ("3:4", "3:4"),
                ("3:2", "3:2"),
                ("2:3", "2:3"),
                ("21:9", "21:9"),
            ],
            default="1:1",
        ),
        ParameterDefinition.enum(
            name="resolution",
            label="Resolution",
            options=[("1K", "1K"), ("2K", "2K"), ("4K", "4K")],
            default="1K",
        ),
        ParameterDefinition.text(
            name="model",
            label="Model",
            default=DEFAULT_IMAGE_MODEL,
        ),
        ParameterDefinition(
            name="selectedModel",
            label="Model",
            param_type=ParameterType.MODEL,
            default={
                "provider": "gemini",
                "modelId": DEFAULT_IMAGE_MODEL,
                "displayName": "Nano Banana Pro",
            },
        ),
        ParameterDefinition.boolean(
            name="useGoogleSearch",
            label="Ground with Google Search",
            default=False,
        ),
        ParameterDefinition.obj(
            name="parameters",
            label="Model Parameters",
            default={},
            description="Extra provider-specific inputs",
        ),
    ],
    state_defaults={
        "inputImages": [],
        "inputPrompt": None,
        "outputImage": None,
    },
    history_field="outputImage",
    executor=generate_image_executor,
)
