"""
Google Gemini Provider - Nano Banana image models and Gemini text models.

Supports:
- Nano Banana (Gemini 2.5 Flash Image): fast generation and editing
- Nano Banana Pro (Gemini 3 Pro Image): high-quality generation up to 4K
- Gemini Flash text models for llm-generate nodes

API Reference: https://ai.google.dev/gemini-api/docs/image-generation
"""

from __future__ import annotations

import base64
from typing import Any

from ai_workflow_studio.core.data_types import is_data_url, load_image
from ai_workflow_studio.providers.base import (
    Capability,
    GenerationInput,
    GenerationOutput,
    HttpProviderAdapter,
    ModelCard,
    ModelFilter,
    OutputKind,
)


# Workflow-facing model ids -> Gemini API model names
MODEL_ALIASES: dict[str, str] = {
    "nano-banana": "gemini-2.5-flash-image",
    "nano-banana-pro": "gemini-3-pro-image-preview",
}

GEMINI_MODELS: list[ModelCard] = [
    ModelCard(
        id="nano-banana",
        provider="gemini",
        name="Nano Banana",
        description="Gemini 2.5 Flash Image: fast generation and editing",
        capabilities={Capability.TEXT_TO_IMAGE, Capability.IMAGE_TO_IMAGE},
    ),
    ModelCard(
        id="nano-banana-pro",
        provider="gemini",
        name="Nano Banana Pro",
        description="Gemini 3 Pro Image: high quality generation up to 4K",
        capabilities={Capability.TEXT_TO_IMAGE, Capability.IMAGE_TO_IMAGE},
    ),
    ModelCard(
        id="gemini-3-flash-preview",
        provider="gemini",
        name="Gemini 3 Flash",
        description="Fast multimodal text model",
        capabilities=set(),
    ),
    ModelCard(
        id="gemini-2.5-flash",
        provider="gemini",
        name="Gemini 2.5 Flash",
        description="Multimodal text model",
        capabilities=set(),
    ),
]


class GeminiProvider(HttpProviderAdapter):
    """
    Google Gemini generation provider.

    Images are returned inline and surfaced as data URLs.
    """

    id = "gemini"
    name = "Google Gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def get_headers(self) -> dict[str, str]:
        """Gemini uses the x-goog-api-key header for auth."""
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def list_models(self, filter: ModelFilter | None = None) -> list[ModelCard]:
        """Gemini models are a fixed list."""
        models = list(GEMINI_MODELS)
        if filter is not None:
            models = [m for m in models if filter.matches(m)]
        return models

    async def generate(self, input: GenerationInput) -> GenerationOutput:
        """Generate an image or text via :generateContent."""
        if input.output == OutputKind.VIDEO:
            return GenerationOutput.failed("Gemini does not support video generation")

        model = MODEL_ALIASES.get(input.model, input.model)
        url = f"{self.base_url}/models/{model}:generateContent"

        parts: list[dict[str, Any]] = []
        for image in input.images:
            parts.append({"inlineData": await self._inline_image(image)})
        if input.prompt:
            parts.append({"text": input.prompt})

        body: dict[str, Any] = {"contents": [{"parts": parts}]}
        params = input.parameters

        if input.output == OutputKind.IMAGE:
            image_config: dict[str, Any] = {}
            if params.get("aspectRatio"):
                image_config["aspectRatio"] = params["aspectRatio"]
            # Nano Banana (non-pro) has a single fixed output size
            if params.get("resolution") and input.model != "nano-banana":
                image_config["imageSize"] = params["resolution"]
            generation_config: dict[str, Any] = {"responseModalities": ["IMAGE"]}
            if image_config:
                generation_config["imageConfig"] = image_config
            body["generationConfig"] = generation_config
            if params.get("useGoogleSearch"):
                body["tools"] = [{"googleSearch": {}}]
        else:
            body["generationConfig"] = {
                "temperature": params.get("temperature", 0.7),
                "maxOutputTokens": params.get("maxTokens", 8192),
            }

        response = await self._post(url, body)

        if input.output == OutputKind.IMAGE:
            return self._parse_image_response(response)
        return self._parse_text_response(response)

    async def _inline_image(self, image: str) -> dict[str, str]:
        if is_data_url(image):
            header, _, payload = image.partition(",")
            mime = header[len("data:"):].split(";")[0] or "image/png"
            return {"mimeType": mime, "data": payload}
        loaded = await load_image(image)
        return {
            "mimeType": "image/png",
            "data": base64.b64encode(loaded.to_bytes("PNG")).decode("ascii"),
        }

    def _parse_image_response(self, data: dict[str, Any]) -> GenerationOutput:
        """Pick the first inline image out of the candidates."""
        for part in self._parts(data):
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                mime = inline.get("mimeType", "image/png")
                return GenerationOutput.ok(data=f"data:{mime};base64,{inline['data']}")
        return GenerationOutput.failed("No image in Gemini response")

    def _parse_text_response(self, data: dict[str, Any]) -> GenerationOutput:
        texts = [part["text"] for part in self._parts(data) if part.get("text")]
        if not texts:
            return GenerationOutput.failed("No text in Gemini response")
        return GenerationOutput.ok(data="".join(texts))

    @staticmethod
    def _parts(data: dict[str, Any]) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []
        for candidate in data.get("candidates", []):
            parts.extend(candidate.get("content", {}).get("parts", []))
        return parts
