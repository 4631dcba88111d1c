"""AI providers and the registry that creates them."""

from nl2sql_brain.llm.anthropic_adapter import AnthropicStyleProvider
from nl2sql_brain.llm.base import (
    AIProvider,
    ChatMessage,
    ConnectivityError,
    GenerationOptions,
    NotReadyError,
    ProviderError,
    ProviderStatus,
    StreamCallbacks,
    StreamParseError,
    TransportError,
)
from nl2sql_brain.llm.local_adapter import (
    LocalInferenceProvider,
    ModelLifecycleState,
    ModelStatus,
)
from nl2sql_brain.llm.openai_adapter import OpenAICompatibleProvider, OpenAIStyleProvider
from nl2sql_brain.llm.registry import ConnectionTestResult, ProviderRegistry

__all__ = [
    "AIProvider",
    "AnthropicStyleProvider",
    "ChatMessage",
    "ConnectionTestResult",
    "ConnectivityError",
    "GenerationOptions",
    "LocalInferenceProvider",
    "ModelLifecycleState",
    "ModelStatus",
    "NotReadyError",
    "OpenAICompatibleProvider",
    "OpenAIStyleProvider",
    "ProviderError",
    "ProviderRegistry",
    "ProviderStatus",
    "StreamCallbacks",
    "StreamParseError",
    "TransportError",
]
