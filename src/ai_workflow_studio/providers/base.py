"""
Provider Base - Abstract adapter contract and shared provider types.

This module provides the foundation for all generation providers:
- Capability: What a model can do
- ModelCard / ModelFilter: Model discovery
- GenerationInput / GenerationOutput: Normalized generate() request/response
- ProviderAdapter: Abstract base class every provider implements
- The provider error taxonomy and HTTP status mapping

The executor treats every adapter uniformly; provider identity only
selects which adapter instance to call.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

# Seconds to wait after a 429 that carries no usable Retry-After header
DEFAULT_RETRY_AFTER = 60.0


class Capability(Enum):
    """Generation capabilities a model may advertise."""
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_TO_IMAGE = "image-to-image"
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"


class OutputKind(Enum):
    """Kind of content a generate() call should produce."""
    IMAGE = "image"
    VIDEO = "video"
    TEXT = "text"


@dataclass
class ModelCard:
    """
    A model offered by a provider.

    Attributes:
        id: Provider-scoped model identifier (e.g., "owner/name")
        provider: Provider ID this model belongs to
        name: Human-readable display name
        capabilities: Generation modes the model supports
        cover_image: Preview image URL, if the provider has one
    """
    id: str
    provider: str
    name: str
    description: str = ""
    capabilities: set[Capability] = field(default_factory=lambda: {Capability.TEXT_TO_IMAGE})
    cover_image: str | None = None

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "name": self.name,
            "description": self.description,
            "capabilities": sorted(c.value for c in self.capabilities),
            "coverImage": self.cover_image,
        }


@dataclass
class ModelFilter:
    """Model discovery filter. Empty fields match everything."""
    search: str | None = None
    capabilities: set[Capability] = field(default_factory=set)

    def matches(self, model: ModelCard) -> bool:
        if self.capabilities and not (model.capabilities & self.capabilities):
            return False
        if self.search:
            query = self.search.lower()
            haystack = f"{model.id} {model.name} {model.description}".lower()
            if query not in haystack:
                return False
        return True


@dataclass
class GenerationInput:
    """Normalized request for a single generate() call."""
    model: str
    output: OutputKind = OutputKind.IMAGE
    prompt: str | None = None
    images: list[str] = field(default_factory=list)  # data URLs or http(s) URLs
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationOutput:
    """
    Result of a generate() call.

    On success exactly one of `url` or `data` is set; `data` holds a data
    URL for media or plain text for text generation. On failure `error`
    describes the problem and `status_code` carries the provider's HTTP
    status when there was one.
    """
    success: bool
    url: str | None = None
    data: str | None = None
    error: str | None = None
    status_code: int | None = None

    @property
    def value(self) -> str | None:
        return self.data if self.data is not None else self.url

    @classmethod
    def ok(cls, *, url: str | None = None, data: str | None = None) -> GenerationOutput:
        return cls(success=True, url=url, data=data)

    @classmethod
    def failed(cls, error: str, status_code: int | None = None) -> GenerationOutput:
        return cls(success=False, error=error, status_code=status_code)


@dataclass
class ProviderConfig:
    """Configuration for a provider."""
    api_key: str = ""
    enabled: bool = True
    base_url: str | None = None  # Override default URL
    timeout: float = 300.0       # Seconds, per HTTP request
    extra: dict[str, Any] = field(default_factory=dict)


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(ProviderError):
    """API key invalid or missing."""
    pass


class TransientProviderError(ProviderError):
    """Server error or network failure; a manual re-run may succeed."""
    pass


class RateLimitError(TransientProviderError):
    """Rate limit exceeded."""
    retry_after: float | None = None


class GenerationError(ProviderError):
    """The provider rejected or failed the generation."""
    pass


def error_for_status(status: int, message: str) -> ProviderError:
    """Map an HTTP status code into the provider error taxonomy."""
    if status in (401, 403):
        return AuthenticationError(message, status)
    if status == 429:
        return RateLimitError(message, status)
    if status >= 500:
        return TransientProviderError(message, status)
    return GenerationError(message, status)


def raise_for_output(output: GenerationOutput) -> None:
    """Raise the matching ProviderError for a failed GenerationOutput."""
    if output.success:
        if output.value is None:
            raise GenerationError("Provider returned no output")
        return
    message = output.error or "Generation failed"
    if output.status_code is not None:
        raise error_for_status(output.status_code, message)
    raise GenerationError(message)


class ProviderAdapter(ABC):
    """
    Abstract base class for generation providers.

    Each adapter handles communication with a specific backend.
    """

    # Provider identification
    id: str = ""
    name: str = ""
    base_url: str = ""

    def __init__(self, config: ProviderConfig):
        self.config = config
        if config.base_url:
            self.base_url = config.base_url

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def is_configured(self) -> bool:
        """Check if provider has necessary configuration."""
        return bool(self.config.api_key)

    @abstractmethod
    async def list_models(self, filter: ModelFilter | None = None) -> list[ModelCard]:
        """
        Fetch the models this provider offers.

        One-shot: every call performs a fresh fetch.
        """
        ...

    @abstractmethod
    async def generate(self, input: GenerationInput) -> GenerationOutput:
        """
        Run a single generation.

        Failures are reported either as GenerationOutput(success=False)
        or by raising a ProviderError subclass.
        """
        ...

    async def search_models(self, query: str) -> list[ModelCard]:
        return await self.list_models(ModelFilter(search=query))

    async def get_model(self, model_id: str) -> ModelCard | None:
        for model in await self.list_models():
            if model.id == model_id:
                return model
        return None

    def get_headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }


class HttpProviderAdapter(ProviderAdapter):
    """
    Adapter base with aiohttp request helpers.

    Non-2xx responses and network failures are converted into the
    provider error taxonomy.
    """

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=headers if headers is not None else self.get_headers(),
                ) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = {}
                    self._check_error(
                        resp.status,
                        data if isinstance(data, dict) else {},
                        resp.headers.get("Retry-After"),
                    )
                    return data if isinstance(data, dict) else {"results": data}
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("%s request failed: %s %s: %s", self.name, method, url, e)
            raise TransientProviderError(f"{self.name} request failed: {e}") from e

    async def _get(self, url: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        return await self._request("GET", url, params=params)

    async def _post(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", url, json=body)

    def _check_error(
        self,
        status: int,
        data: dict[str, Any],
        retry_after: str | None = None,
    ) -> None:
        """Check for API errors. `retry_after` is the raw Retry-After header."""
        if status < 400:
            return
        message = self._error_message(data) or f"HTTP {status}"
        logger.warning("%s returned %d: %s", self.name, status, message)
        error = error_for_status(status, f"{self.name} error: {message}")
        if isinstance(error, RateLimitError):
            try:
                error.retry_after = float(retry_after) if retry_after else DEFAULT_RETRY_AFTER
            except ValueError:
                # HTTP-date form
                error.retry_after = DEFAULT_RETRY_AFTER
        raise error

    @staticmethod
    def _error_message(data: dict[str, Any]) -> str | None:
        error = data.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return error
        return data.get("detail")
