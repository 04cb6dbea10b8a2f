"""Helpers shared by the generation node executors."""

from __future__ import annotations

from typing import Any

from ai_workflow_studio.core.errors import ValidationError


def prompt_input(inputs: dict[str, Any]) -> str:
    """The gathered prompt text, stripped, or an empty string."""
    return str(inputs.get("text") or "").strip()


def image_inputs(inputs: dict[str, Any]) -> list[str]:
    """The gathered image input as a list of data URLs / remote URLs."""
    value = inputs.get("image")
    if not value:
        return []
    if isinstance(value, list):
        return [v for v in value if v]
    return [value]


def selected_model(
    data: dict[str, Any],
    default_provider: str | None = None,
) -> tuple[str, str]:
    """
    Resolve (provider id, model id) from a node's model selection.

    `selectedModel` wins; the legacy `model` field fills in the model id.

    Raises:
        ValidationError: If no provider or model is selected.
    """
    selection = data.get("selectedModel") or {}
    provider = selection.get("provider") or default_provider
    model = selection.get("modelId") or data.get("model")
    if not provider or not model:
        raise ValidationError("No model selected")
    return provider, model
