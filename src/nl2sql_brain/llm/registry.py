"""Maps provider types to provider constructors."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

from loguru import logger

from nl2sql_brain.config import ConfigError, ProviderConfig, ProviderType
from nl2sql_brain.llm.anthropic_adapter import AnthropicStyleProvider
from nl2sql_brain.llm.base import AIProvider, ProviderError
from nl2sql_brain.llm.local_adapter import LocalInferenceProvider
from nl2sql_brain.llm.local_worker import local_runtime_available
from nl2sql_brain.llm.openai_adapter import OpenAICompatibleProvider, OpenAIStyleProvider

ProviderFactory = Callable[[], AIProvider]

DEFAULT_FACTORIES: Mapping[ProviderType, ProviderFactory] = {
    ProviderType.LOCAL: LocalInferenceProvider,
    ProviderType.OPENAI: OpenAIStyleProvider,
    ProviderType.ANTHROPIC: AnthropicStyleProvider,
    ProviderType.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
}


@dataclass(frozen=True)
class ConnectionTestResult:
    success: bool
    error: str | None = None


class ProviderRegistry:
    """Creates providers by type; custom factories may replace the defaults."""

    def __init__(self, factories: Mapping[ProviderType, ProviderFactory] | None = None):
        self._factories: dict[ProviderType, ProviderFactory] = dict(DEFAULT_FACTORIES)
        if factories:
            self._factories.update(factories)

    def register(self, provider_type: ProviderType, factory: ProviderFactory) -> None:
        self._factories[ProviderType(provider_type)] = factory

    def create(self, provider_type: ProviderType) -> AIProvider:
        try:
            factory = self._factories[ProviderType(provider_type)]
        except (KeyError, ValueError) as exc:
            raise ConfigError(f"Unknown provider type: {provider_type!r}") from exc
        return factory()

    def test_connection(
        self, provider_type: ProviderType, config: ProviderConfig
    ) -> ConnectionTestResult:
        """Initialize a throwaway provider against ``config`` and report the outcome.

        The local backend is only checked for an installed runtime; loading
        multi-gigabyte weights is not a connection test.
        """
        provider_type = ProviderType(provider_type)
        if provider_type is ProviderType.LOCAL:
            if local_runtime_available():
                return ConnectionTestResult(success=True)
            return ConnectionTestResult(
                success=False, error="llama-cpp-python and huggingface_hub are not installed."
            )

        provider = self.create(provider_type)
        try:
            provider.initialize(config)
        except (ConfigError, ProviderError) as exc:
            logger.info("Connection test for {} failed: {}", provider_type.value, exc)
            return ConnectionTestResult(success=False, error=str(exc) or "Connection failed")
        finally:
            provider.cleanup()
        return ConnectionTestResult(success=True)
