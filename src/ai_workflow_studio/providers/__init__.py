"""
Generation Providers.

This package provides the adapter contract every generation backend
implements, a registry keyed by provider id, and built-in adapters:
- Gemini: Nano Banana image models, Gemini text models
- Replicate: Marketplace models (discovery + predictions)

Usage:
    from ai_workflow_studio.providers import get_registry

    registry = get_registry()
    registry.load_config()

    provider = registry.get_provider("replicate")
    models = await provider.list_models(ModelFilter(search="flux"))
"""

from ai_workflow_studio.providers.base import (
    AuthenticationError,
    Capability,
    GenerationError,
    GenerationInput,
    GenerationOutput,
    HttpProviderAdapter,
    ModelCard,
    ModelFilter,
    OutputKind,
    ProviderAdapter,
    ProviderConfig,
    ProviderError,
    RateLimitError,
    TransientProviderError,
    error_for_status,
    raise_for_output,
)

from ai_workflow_studio.providers.registry import (
    ProviderRegistry,
    get_registry,
)

from ai_workflow_studio.providers.gemini import GeminiProvider
from ai_workflow_studio.providers.replicate import ReplicateProvider


__all__ = [
    # Base classes
    "ProviderAdapter",
    "HttpProviderAdapter",
    "ModelCard",
    "ModelFilter",
    "ProviderConfig",
    "Capability",
    "OutputKind",
    "GenerationInput",
    "GenerationOutput",
    # Exceptions
    "ProviderError",
    "AuthenticationError",
    "TransientProviderError",
    "RateLimitError",
    "GenerationError",
    "error_for_status",
    "raise_for_output",
    # Registry
    "ProviderRegistry",
    "get_registry",
    # Providers
    "GeminiProvider",
    "ReplicateProvider",
]
