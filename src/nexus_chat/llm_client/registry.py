"""Provider registry.

Maps provider names to factories that build a ModelStreamClient from an API
key. The registry is an explicit object handed to the orchestrator at
construction time; nothing registers itself on import.
"""

from typing import Callable

from nexus_chat.config.settings import AppConfig, get_settings
from nexus_chat.llm_client.base import ModelStreamClient
from nexus_chat.llm_client.gemini_stream import GeminiStreamClient
from nexus_chat.llm_client.openai_stream import OpenAIStreamClient
from nexus_chat.llm_client.types import ConfigurationError
from nexus_chat.telemetry import PROVIDER_REGISTERED, get_logger

log = get_logger(__name__)

ProviderFactory = Callable[[str, AppConfig], ModelStreamClient]


class ProviderRegistry:
    """Central registry of model providers."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Register a provider factory.

        Args:
            name: Provider name (case-insensitive).
            factory: Callable taking (api_key, settings) and returning a client.

        Raises:
            ValueError: If the provider name is already registered.
        """
        key = name.lower()
        if key in self._factories:
            raise ValueError(f"Provider '{name}' is already registered")
        self._factories[key] = factory
        log.debug(PROVIDER_REGISTERED, provider=key)

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._factories

    def names(self) -> list[str]:
        return sorted(self._factories)

    def create(
        self, name: str, api_key: str | None, config: AppConfig | None = None
    ) -> ModelStreamClient:
        """Build a client for the named provider.

        Args:
            name: Provider name.
            api_key: Credential for the provider.
            config: Settings passed to the factory. Defaults to the global settings.

        Returns:
            A ready-to-use ModelStreamClient.

        Raises:
            ConfigurationError: If the provider is unknown or no key is set.
        """
        factory = self._factories.get(name.lower())
        if factory is None:
            raise ConfigurationError(
                f'LLM provider "{name}" is not available. Registered: {self.names()}'
            )
        if not api_key or not api_key.strip():
            raise ConfigurationError(
                "Please configure your API key in settings to use the AI assistant."
            )
        return factory(api_key.strip(), config or get_settings())


def _openai_factory(api_key: str, config: AppConfig) -> ModelStreamClient:
    return OpenAIStreamClient(
        api_key=api_key,
        base_url=config.openai_base_url,
        model=config.openai_model,
        timeout_seconds=float(config.llm_timeout_seconds),
    )


def _gemini_factory(api_key: str, config: AppConfig) -> ModelStreamClient:
    return GeminiStreamClient(
        api_key=api_key,
        base_url=config.gemini_base_url,
        model=config.gemini_model,
        timeout_seconds=float(config.llm_timeout_seconds),
    )


def default_provider_registry() -> ProviderRegistry:
    """Return a new registry with the built-in providers registered."""
    registry = ProviderRegistry()
    registry.register("openai", _openai_factory)
    registry.register("gemini", _gemini_factory)
    return registry
