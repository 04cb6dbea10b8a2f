"""
LLM Generate node - text generation, optionally conditioned on an image.
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
)
from ai_workflow_studio.nodes.generation.common import image_inputs, prompt_input
from ai_workflow_studio.providers.base import GenerationInput, OutputKind


async def llm_generate_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute LLM text generation."""
    prompt = prompt_input(inputs)
    if not prompt:
        raise ValidationError("Missing input: no prompt")

    provider_id = data.get("provider") or "gemini"
    model_id = data.get("model")
    if not model_id:
        raise ValidationError("No model selected")

    images = image_inputs(inputs)
    output = await context.generate(provider_id, GenerationInput(
        model=model_id,
        output=OutputKind.TEXT,
        prompt=prompt,
        images=images,
        parameters={
            "temperature": data.get("temperature", 0.7),
            "maxTokens": data.get("maxTokens", 8192),
        },
    ))

    return {
        "inputImages": images,
        "inputPrompt": prompt,
        "outputText": output,
    }


LLM_GENERATE_NODE = NodeType(
    kind=NodeKind.LLM_GENERATE,
    name="LLM Generate",
    description="Generate text with a language model",
    category=NodeCategory.GENERATION,
    inputs=[
        InputDefinition(
            name="text",
            label="Prompt",
            data_type=DataType.TEXT,
            required=True,
            fallback_field="prompt",
        ),
        InputDefinition(
            name="image",
            label="Image",
            data_type=DataType.IMAGE,
            description="Optional image for multimodal prompts",
        ),
    ],
    outputs=[
        OutputDefinition(
            name="text",
            label="Text",
            data_type=DataType.TEXT,
            source_field="outputText",
            description="Generated text",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="prompt",
            label="Prompt",
            default="",
            multiline=True,
        ),
        ParameterDefinition.enum(
            name="provider",
            label="Provider",
            options=[("gemini", "Google Gemini"), ("replicate", "Replicate")],
            default="gemini",
        ),
        ParameterDefinition.text(
            name="model",
            label="Model",
            default="gemini-3-flash-preview",
        ),
        ParameterDefinition.float_param(
            name="temperature",
            label="Temperature",
            default=0.7,
            min_value=0.0,
            max_value=2.0,
        ),
        ParameterDefinition.integer(
            name="maxTokens",
            label="Max Tokens",
            default=8192,
            min_value=1,
            max_value=65536,
        ),
    ],
    state_defaults={
        "inputPrompt": None,
        "inputImages": [],
        "outputText": None,
    },
    history_field="outputText",
    executor=llm_generate_executor,
    default_width=320.0,
    default_height=360.0,
)
