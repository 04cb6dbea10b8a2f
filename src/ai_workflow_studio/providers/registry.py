"""
Provider Registry - Adapters keyed by provider identifier.

This module manages:
- Registration of provider adapter classes (or ready-made instances)
- Lazy instantiation with each provider's configuration
- Provider configuration loading/saving
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from ai_workflow_studio.providers.base import (
    ModelCard,
    ModelFilter,
    ProviderAdapter,
    ProviderConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "ai_workflow_studio" / "providers.json"

# Environment variables consulted when a provider has no key configured
API_KEY_ENV_VARS: dict[str, str] = {
    "gemini": "GEMINI_API_KEY",
    "replicate": "REPLICATE_API_TOKEN",
}


class ProviderRegistry:
    """
    Central registry for provider adapters.

    Handles:
    - Adapter registration
    - Adapter lookup by provider id
    - Configuration management
    """

    def __init__(self) -> None:
        self._providers: dict[str, type[ProviderAdapter]] = {}
        self._provider_instances: dict[str, ProviderAdapter] = {}
        self._configs: dict[str, ProviderConfig] = {}
        self._config_path: Path | None = None

    # -------------------------------------------------------------------------
    # Provider Registration
    # -------------------------------------------------------------------------

    def register_provider(self, provider_class: type[ProviderAdapter]) -> None:
        """Register an adapter implementation, instantiated on first use."""
        self._providers[provider_class.id] = provider_class
        self._provider_instances.pop(provider_class.id, None)

    def register_instance(self, adapter: ProviderAdapter) -> None:
        """Register a ready-made adapter instance."""
        self._providers[adapter.id] = type(adapter)
        self._provider_instances[adapter.id] = adapter

    def get_provider(self, provider_id: str) -> ProviderAdapter | None:
        """Get an instantiated adapter, or None if the id is unknown."""
        if provider_id in self._provider_instances:
            return self._provider_instances[provider_id]

        if provider_id not in self._providers:
            return None

        provider = self._providers[provider_id](self.get_config(provider_id))
        self._provider_instances[provider_id] = provider
        return provider

    def list_providers(self) -> list[str]:
        """Get list of registered provider IDs."""
        return list(self._providers.keys())

    def list_configured_providers(self) -> list[str]:
        """Get list of enabled providers with credentials."""
        result = []
        for pid in self._providers:
            provider = self.get_provider(pid)
            if provider is not None and provider.config.enabled and provider.is_configured:
                result.append(pid)
        return result

    async def list_models(
        self,
        provider_id: str,
        filter: ModelFilter | None = None,
    ) -> list[ModelCard]:
        """
        Fetch models from one provider.

        Raises:
            KeyError: If the provider isn't registered.
        """
        provider = self.get_provider(provider_id)
        if provider is None:
            raise KeyError(f"Unknown provider: {provider_id}")
        return await provider.list_models(filter)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_config(self, provider_id: str, config: ProviderConfig) -> None:
        """Set configuration for a provider."""
        self._configs[provider_id] = config
        # Invalidate cached instance
        self._provider_instances.pop(provider_id, None)

    def get_config(self, provider_id: str) -> ProviderConfig:
        """Get configuration for a provider, filling the API key from the environment."""
        config = self._configs.get(provider_id)
        if config is None:
            config = ProviderConfig()
        if not config.api_key:
            env_var = API_KEY_ENV_VARS.get(provider_id)
            if env_var and os.environ.get(env_var):
                config = ProviderConfig(
                    api_key=os.environ[env_var],
                    enabled=config.enabled,
                    base_url=config.base_url,
                    timeout=config.timeout,
                    extra=config.extra,
                )
        return config

    def load_config(self, path: Path | None = None) -> None:
        """
        Load provider configurations from file.

        A missing file is not an error. A malformed file is logged and
        ignored so the registry keeps working with defaults.
        """
        if path is None:
            path = DEFAULT_CONFIG_PATH

        self._config_path = path

        if not path.exists():
            return

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load provider config from %s: %s", path, e)
            return

        for provider_id, cfg_data in data.get("providers", {}).items():
            self.set_config(provider_id, ProviderConfig(
                api_key=cfg_data.get("api_key", ""),
                enabled=cfg_data.get("enabled", True),
                base_url=cfg_data.get("base_url"),
                timeout=cfg_data.get("timeout", 300.0),
                extra=cfg_data.get("extra", {}),
            ))
        logger.info("Loaded configuration for %d providers from %s", len(self._configs), path)

    def save_config(self, path: Path | None = None) -> None:
        """Save provider configurations to file."""
        if path is None:
            path = self._config_path or DEFAULT_CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "providers": {
                pid: {
                    "api_key": cfg.api_key,
                    "enabled": cfg.enabled,
                    "base_url": cfg.base_url,
                    "timeout": cfg.timeout,
                    "extra": cfg.extra,
                }
                for pid, cfg in self._configs.items()
            },
        }

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)


# ============================================================================
# Module-level convenience functions
# ============================================================================

_registry: ProviderRegistry | None = None


def get_registry() -> ProviderRegistry:
    """
    Get the default provider registry with the built-in adapters.

    Hosts that want isolation should construct their own ProviderRegistry
    and hand it to the executor.
    """
    global _registry
    if _registry is None:
        from ai_workflow_studio.providers.gemini import GeminiProvider
        from ai_workflow_studio.providers.replicate import ReplicateProvider

        _registry = ProviderRegistry()
        _registry.register_provider(GeminiProvider)
        _registry.register_provider(ReplicateProvider)
    return _registry
