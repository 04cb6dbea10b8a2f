"""Prompt node - user-authored text fed to downstream nodes."""

from __future__ import annotations

from typing import Any

from ai_workflow_studio.core.data_types import DataType, NodeKind
from ai_workflow_studio.core.errors import ValidationError
from ai_workflow_studio.core.node_types import (
    NodeCategory,
    NodeType,
    OutputDefinition,
    ParameterDefinition,
)


async def prompt_executor(
    inputs: dict[str, Any],
    data: dict[str, Any],
    context: Any,
) -> dict[str, Any]:
    """Execute prompt node - the text is already in the data payload."""
    if not str(data.get("prompt") or "").strip():
        raise ValidationError("Prompt is empty")
    return {}


PROMPT_NODE = NodeType(
    kind=NodeKind.PROMPT,
    name="Prompt",
    description="Text prompt input for generation",
    category=NodeCategory.INPUT,
    inputs=[],
    outputs=[
        OutputDefinition(
            name="text",
            label="Text",
            data_type=DataType.TEXT,
            source_field="prompt",
            description="The prompt text",
        ),
    ],
    parameters=[
        ParameterDefinition.text(
            name="prompt",
            label="Prompt Text",
            default="",
            multiline=True,
            description="Enter your prompt here",
        ),
    ],
    executor=prompt_executor,
    default_width=320.0,
    default_height=220.0,
)
