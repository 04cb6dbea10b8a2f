"""
Replicate Provider - Model marketplace adapter.

Model discovery goes through Replicate's REST API; capabilities are
inferred from each model's name and description. Generation submits a
prediction and polls until it settles.

API Reference: https://replicate.com/docs/reference/http
Note: predictions are asynchronous and must be polled for results
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ai_workflow_studio.providers.base import (
    Capability,
    GenerationError,
    GenerationInput,
    GenerationOutput,
    HttpProviderAdapter,
    ModelCard,
    ModelFilter,
    OutputKind,
    ProviderError,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL = 1.0

_IMAGE_TO_IMAGE_HINTS = ("img2img", "image-to-image", "inpaint", "controlnet")
_VIDEO_HINTS = ("video", "animate", "motion")
_IMAGE_TO_VIDEO_HINTS = ("img2vid", "image-to-video")


def infer_capabilities(name: str, description: str | None) -> set[Capability]:
    """Guess a model's capabilities from its name and description."""
    capabilities = {Capability.TEXT_TO_IMAGE}
    text = f"{name} {description or ''}".lower()

    if any(hint in text for hint in _IMAGE_TO_IMAGE_HINTS):
        capabilities.add(Capability.IMAGE_TO_IMAGE)

    if any(hint in text for hint in _VIDEO_HINTS):
        if any(hint in text for hint in _IMAGE_TO_VIDEO_HINTS):
            capabilities.add(Capability.IMAGE_TO_VIDEO)
        else:
            capabilities.add(Capability.TEXT_TO_VIDEO)

    return capabilities


def to_model_card(model: dict[str, Any]) -> ModelCard:
    """Map a Replicate model record to a ModelCard."""
    return ModelCard(
        id=f"{model['owner']}/{model['name']}",
        provider="replicate",
        name=model["name"],
        description=model.get("description") or "",
        capabilities=infer_capabilities(model["name"], model.get("description")),
        cover_image=model.get("cover_image_url"),
    )


class ReplicateProvider(HttpProviderAdapter):
    """
    Replicate generation provider.

    Handles any public model addressed as "owner/name".
    """

    id = "replicate"
    name = "Replicate"
    base_url = "https://api.replicate.com/v1"

    async def list_models(self, filter: ModelFilter | None = None) -> list[ModelCard]:
        """List models, using the search endpoint when a query is given."""
        if filter is not None and filter.search:
            data = await self._get(f"{self.base_url}/search", params={"query": filter.search})
            records = [r["model"] for r in data.get("results", []) if "model" in r]
        else:
            data = await self._get(f"{self.base_url}/models")
            records = data.get("results", [])

        models = [to_model_card(r) for r in records]
        if filter is not None and filter.capabilities:
            models = [m for m in models if m.capabilities & filter.capabilities]
        return models

    async def get_model(self, model_id: str) -> ModelCard | None:
        if model_id.count("/") != 1:
            return None
        data = await self._get(f"{self.base_url}/models/{model_id}")
        return to_model_card(data) if data else None

    async def generate(self, input: GenerationInput) -> GenerationOutput:
        """Run a prediction and wait for it to settle."""
        if input.model.count("/") != 1:
            return GenerationOutput.failed(f"Invalid Replicate model id: {input.model}")

        prediction_input: dict[str, Any] = dict(input.parameters)
        if input.prompt:
            prediction_input["prompt"] = input.prompt
        if len(input.images) == 1:
            prediction_input.setdefault("image", input.images[0])
        elif input.images:
            prediction_input.setdefault("images", list(input.images))

        prediction = await self._post(
            f"{self.base_url}/models/{input.model}/predictions",
            {"input": prediction_input},
        )
        prediction = await self._poll_prediction(prediction)
        return self._parse_output(prediction, input.output)

    async def _poll_prediction(self, prediction: dict[str, Any]) -> dict[str, Any]:
        """
        Poll until the prediction succeeds, fails or is canceled.

        Cancelling the polling task also cancels the prediction on
        Replicate before the CancelledError propagates.
        """
        urls = prediction.get("urls") or {}
        poll_url = urls.get("get")
        cancel_url = urls.get("cancel")
        if prediction.get("id"):
            base = f"{self.base_url}/predictions/{prediction['id']}"
            poll_url = poll_url or base
            cancel_url = cancel_url or f"{base}/cancel"
        if not poll_url:
            raise GenerationError("No prediction id in Replicate response")

        try:
            while prediction.get("status") not in ("succeeded", "failed", "canceled"):
                await asyncio.sleep(POLL_INTERVAL)
                prediction = await self._get(poll_url)
        except asyncio.CancelledError:
            if cancel_url:
                await self._cancel_prediction(cancel_url)
            raise

        if prediction["status"] == "failed":
            raise GenerationError(f"Replicate prediction failed: {prediction.get('error') or 'Unknown'}")
        if prediction["status"] == "canceled":
            raise GenerationError("Replicate prediction was canceled")
        return prediction

    async def _cancel_prediction(self, cancel_url: str) -> None:
        logger.info("Cancelling Replicate prediction: %s", cancel_url)
        try:
            await self._post(cancel_url, {})
        except ProviderError as e:
            logger.warning("Failed to cancel Replicate prediction: %s", e)

    def _parse_output(self, prediction: dict[str, Any], kind: OutputKind) -> GenerationOutput:
        output = prediction.get("output")

        if kind == OutputKind.TEXT:
            if isinstance(output, list):
                output = "".join(str(token) for token in output)
            if not output:
                return GenerationOutput.failed("Replicate returned no text")
            return GenerationOutput.ok(data=str(output))

        if isinstance(output, list):
            output = output[0] if output else None
        if not isinstance(output, str) or not output:
            return GenerationOutput.failed("Replicate returned no output")
        if output.startswith("data:"):
            return GenerationOutput.ok(data=output)
        return GenerationOutput.ok(url=output)
