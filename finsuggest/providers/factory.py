"""
Provider registry and construction from configuration.

The pipeline never imports a concrete provider: build_pipeline() asks
ProviderFactory.from_config() for whatever the "provider" setting names.
A provider that cannot be built (unknown name, missing API key) yields
None there, and the cascade runs with the rule-based tier only.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Type

from .base import AIProvider

logger = logging.getLogger(__name__)


def _cache_key(name: str, config: Optional[Dict]) -> str:
    if not config:
        return name
    return f"{name}:{json.dumps(config, sort_keys=True, default=str)}"


class ProviderFactory:
    """
    Registry of AIProvider classes with one cached instance per
    (name, provider config).
    """

    _providers: Dict[str, Type[AIProvider]] = {}
    _instances: Dict[str, AIProvider] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type[AIProvider]) -> None:
        cls._providers[name] = provider_class
        logger.debug(f"Registered provider: {name}")

    @classmethod
    def create(
        cls, name: str, config: Optional[Dict] = None, use_cache: bool = True
    ) -> AIProvider:
        """
        Create or retrieve a provider instance.

        Args:
            name: Registered provider name (ollama, gemini)
            config: The provider's section of config["providers"]
            use_cache: Reuse the instance built for the same name and config

        Raises:
            ValueError: unknown name, or the provider rejected its config
        """
        key = _cache_key(name, config)
        if use_cache and key in cls._instances:
            return cls._instances[key]

        provider_class = cls._providers.get(name)
        if provider_class is None:
            raise ValueError(f"Unknown provider: '{name}'. Available: {cls.list_providers()}")

        instance = provider_class(config or {})
        if use_cache:
            cls._instances[key] = instance

        logger.info(f"Created provider instance: {name} (local={instance.is_local})")
        return instance

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> Optional[AIProvider]:
        """
        Build the provider selected by a full pipeline config.

        Returns:
            The provider, or None when it cannot be built
        """
        name = config.get("provider", "ollama")
        provider_cfg = (config.get("providers") or {}).get(name) or {}
        try:
            return cls.create(name, provider_cfg)
        except ValueError as e:
            logger.warning(f"AI provider '{name}' unavailable, running without AI tier: {e}")
            return None

    @classmethod
    def list_providers(cls) -> List[str]:
        return sorted(cls._providers)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers

    @classmethod
    def clear_cache(cls) -> None:
        cls._instances.clear()

    @classmethod
    def unregister(cls, name: str) -> bool:
        """Remove a provider class and its cached instances (tests)."""
        if cls._providers.pop(name, None) is None:
            return False
        for key in [k for k in cls._instances if k.split(":", 1)[0] == name]:
            del cls._instances[key]
        return True


def _register_builtin_providers() -> None:
    from .gemini_provider import GeminiProvider
    from .ollama_provider import OllamaProvider

    ProviderFactory.register("ollama", OllamaProvider)
    ProviderFactory.register("gemini", GeminiProvider)


_register_builtin_providers()
