"""Single-flight generation state machine tying prompts, providers and parsing together."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from nl2sql_brain.config import (
    AnthropicProviderConfig,
    CompatibleProviderConfig,
    ConfigError,
    LocalProviderConfig,
    OpenAIProviderConfig,
    ProviderConfig,
    ProviderType,
    Settings,
)
from nl2sql_brain.llm.base import (
    AIProvider,
    GenerationOptions,
    NotReadyError,
    ProviderError,
    ProviderStatus,
    StreamCallbacks,
)
from nl2sql_brain.llm.local_adapter import LocalInferenceProvider, ModelLifecycleState
from nl2sql_brain.llm.registry import ProviderRegistry
from nl2sql_brain.models.conversation import (
    ConversationMessage,
    QueryResult,
    QueryResultData,
)
from nl2sql_brain.prompts.sql_generation import PromptBuilder
from nl2sql_brain.schema.catalog import DatabaseInfo
from nl2sql_brain.sql.parser import ParsedSQLResult, extract_sql_from_response

SQL_GENERATION_OPTIONS = GenerationOptions(max_tokens=512, temperature=0.2)

_CONFIG_ADAPTER: TypeAdapter[ProviderConfig] = TypeAdapter(ProviderConfig)
_DEFAULT_CONFIGS: dict[ProviderType, Callable[[], ProviderConfig]] = {
    ProviderType.LOCAL: LocalProviderConfig,
    ProviderType.OPENAI: OpenAIProviderConfig,
    ProviderType.ANTHROPIC: AnthropicProviderConfig,
    ProviderType.OPENAI_COMPATIBLE: CompatibleProviderConfig,
}


class GenerationState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"


class GenerationOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    ABORTED = "aborted"


class GenerationInProgressError(RuntimeError):
    """Raised when an operation conflicts with the generation in flight."""


class StreamBuffer:
    """Append-only text accumulated from streamed tokens."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._lock = threading.Lock()

    def append(self, delta: str) -> None:
        with self._lock:
            self._parts.append(delta)

    def clear(self) -> None:
        with self._lock:
            self._parts.clear()

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._parts)


@dataclass(frozen=True)
class BrainSnapshot:
    """Everything a UI needs to render the current generation state."""

    provider_type: ProviderType
    provider_status: ProviderStatus
    lifecycle: ModelLifecycleState | None
    state: GenerationState
    is_generating: bool
    streaming_text: str
    error: str | None


SnapshotListener = Callable[[BrainSnapshot], None]
QueryExecutor = Callable[[str], QueryResultData]


class GenerationOrchestrator:
    """Owns the conversation and drives one generation at a time.

    ``generate_sql`` runs on the caller's thread and blocks until the provider
    reports a terminal event. ``abort_generation`` may be called from any
    other thread (or from a listener) while it runs.
    """

    def __init__(
        self,
        *,
        provider_type: ProviderType = ProviderType.LOCAL,
        configs: Mapping[ProviderType, ProviderConfig | Mapping[str, Any]] | None = None,
        registry: ProviderRegistry | None = None,
        prompt_builder: PromptBuilder | None = None,
        databases: Sequence[DatabaseInfo] = (),
    ) -> None:
        self._registry = registry or ProviderRegistry()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._configs: dict[ProviderType, ProviderConfig] = {}
        for ptype, config in (configs or {}).items():
            self._configs[ProviderType(ptype)] = self._coerce_config(ptype, config)
        self._databases = list(databases)
        self._messages: list[ConversationMessage] = []
        self._listeners: list[SnapshotListener] = []
        self._flight = threading.Lock()
        self._state = GenerationState.IDLE
        self._buffer = StreamBuffer()
        self._abort_requested = threading.Event()
        self._error: str | None = None
        self._lifecycle: ModelLifecycleState | None = None
        self._unsubscribe_lifecycle: Callable[[], None] | None = None
        self.last_outcome: GenerationOutcome | None = None
        self.last_parse: ParsedSQLResult | None = None

        self._provider_type = ProviderType(provider_type)
        self._provider: AIProvider = self._registry.create(self._provider_type)
        self._watch_lifecycle()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider_type: ProviderType | None = None,
        **kwargs: Any,
    ) -> GenerationOrchestrator:
        configs = {ptype: settings.provider_config(ptype) for ptype in ProviderType}
        return cls(
            provider_type=provider_type or settings.provider, configs=configs, **kwargs
        )

    # -- read-only views -------------------------------------------------

    @property
    def provider(self) -> AIProvider:
        return self._provider

    @property
    def provider_type(self) -> ProviderType:
        return self._provider_type

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._state is GenerationState.STREAMING

    @property
    def streaming_text(self) -> str:
        return self._buffer.text

    @property
    def messages(self) -> tuple[ConversationMessage, ...]:
        return tuple(self._messages)

    @property
    def databases(self) -> tuple[DatabaseInfo, ...]:
        return tuple(self._databases)

    def snapshot(self) -> BrainSnapshot:
        return BrainSnapshot(
            provider_type=self._provider_type,
            provider_status=self._provider.get_status(),
            lifecycle=self._lifecycle,
            state=self._state,
            is_generating=self.is_generating,
            streaming_text=self._buffer.text,
            error=self._error,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self.snapshot())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- generation ------------------------------------------------------

    def generate_sql(self, text: str) -> str | None:
        """Ask the active provider for SQL answering ``text``.

        Returns the extracted SQL, or None when the reply held no usable
        statement. Provider failures are recorded and re-raised.
        """
        question = text.strip()
        if not question:
            raise ValueError("Question cannot be empty.")
        if not self._flight.acquire(blocking=False):
            raise GenerationInProgressError("A generation is already in progress.")

        try:
            provider = self._provider
            self._ensure_ready(provider)

            previous = tuple(self._messages)
            self._messages.append(ConversationMessage("user", question))
            self._abort_requested.clear()
            self._buffer.clear()
            self._error = None
            self._state = GenerationState.STREAMING
            self._notify()
            logger.info("Generating SQL with {} provider", self._provider_type.value)

            failures: list[Exception] = []
            completed: list[str] = []
            try:
                bundle = self._prompt_builder.build(question, self._databases, previous)
                provider.generate_streaming(
                    bundle.messages,
                    StreamCallbacks(
                        on_token=self._on_token,
                        on_complete=completed.append,
                        on_error=failures.append,
                    ),
                    SQL_GENERATION_OPTIONS,
                    cancel=self._abort_requested,
                )
            except Exception as exc:
                failures.append(exc)

            if failures:
                return self._fail(failures[0])
            if self._abort_requested.is_set() or not completed:
                return self._finish(self._buffer.text)
            return self._finish(completed[0])
        finally:
            self._state = GenerationState.IDLE
            self._buffer.clear()
            self._flight.release()
            self._notify()

    def abort_generation(self) -> None:
        """Stop the generation in flight; a no-op when idle."""
        if self._state is not GenerationState.STREAMING:
            return
        if not self._abort_requested.is_set():
            logger.info("Abort requested for {} generation", self._provider_type.value)
        self._abort_requested.set()
        self._provider.abort()

    def _on_token(self, delta: str) -> None:
        if self._abort_requested.is_set():
            self._provider.abort()
            return
        self._buffer.append(delta)
        self._notify()

    def _finish(self, final_text: str) -> str | None:
        aborted = self._abort_requested.is_set()
        parsed = extract_sql_from_response(final_text)
        self.last_parse = parsed
        self.last_outcome = GenerationOutcome.ABORTED if aborted else GenerationOutcome.SUCCESS
        if final_text.strip() or not aborted:
            self._messages.append(
                ConversationMessage("assistant", final_text, sql=parsed.sql)
            )
        logger.info(
            "Generation {} (sql={}, confidence={})",
            self.last_outcome.value,
            "yes" if parsed.sql else "no",
            parsed.confidence,
        )
        return parsed.sql

    def _fail(self, exc: Exception) -> None:
        self._error = str(exc) or exc.__class__.__name__
        self.last_outcome = GenerationOutcome.ERROR
        self.last_parse = None
        logger.warning("Generation failed: {}", self._error)
        raise exc

    # -- provider management ---------------------------------------------

    def set_ai_provider(self, provider_type: ProviderType) -> None:
        """Switch the active backend, tearing the previous one down."""
        ptype = ProviderType(provider_type)
        if not self._flight.acquire(blocking=False):
            raise GenerationInProgressError("Cannot switch provider while generating.")
        try:
            if ptype is self._provider_type:
                return
            self._teardown_provider()
            self._provider_type = ptype
            self._error = None
            self._provider = self._registry.create(ptype)
            self._watch_lifecycle()
            logger.info("Active provider set to {}", ptype.value)
        finally:
            self._flight.release()
        self._notify()

    def update_provider_config(
        self,
        provider_type: ProviderType,
        config: ProviderConfig | Mapping[str, Any],
    ) -> None:
        """Store ``config``; a changed config resets the active provider to not-ready."""
        ptype = ProviderType(provider_type)
        config = self._coerce_config(ptype, config)
        if not self._flight.acquire(blocking=False):
            raise GenerationInProgressError("Cannot change provider config while generating.")
        try:
            previous = self._configs.get(ptype)
            self._configs[ptype] = config
            if ptype is self._provider_type and previous != config:
                self._provider.cleanup()
                self._error = None
        finally:
            self._flight.release()
        self._notify()

    def initialize_provider(self) -> None:
        """Load the local model or probe the remote endpoint for the active provider."""
        if not self._flight.acquire(blocking=False):
            raise GenerationInProgressError("Cannot initialize provider while generating.")
        try:
            self._initialize(self._provider)
        finally:
            self._flight.release()
            self._notify()

    def _ensure_ready(self, provider: AIProvider) -> None:
        if provider.is_ready():
            return
        if self._provider_type is ProviderType.LOCAL:
            raise NotReadyError(
                "Local model is not loaded; initialize the provider first."
            )
        self._initialize(provider)

    def _initialize(self, provider: AIProvider) -> None:
        config = self._configs.get(self._provider_type)
        if config is None:
            config = _DEFAULT_CONFIGS[self._provider_type]()
        try:
            provider.initialize(config)
        except (ConfigError, ProviderError) as exc:
            self._error = str(exc)
            self._notify()
            raise
        self._error = None

    def _watch_lifecycle(self) -> None:
        self._lifecycle = None
        if isinstance(self._provider, LocalInferenceProvider):
            self._unsubscribe_lifecycle = self._provider.subscribe(self._on_lifecycle)

    def _on_lifecycle(self, state: ModelLifecycleState) -> None:
        self._lifecycle = state
        self._notify()

    def _teardown_provider(self) -> None:
        if self._unsubscribe_lifecycle is not None:
            self._unsubscribe_lifecycle()
            self._unsubscribe_lifecycle = None
        self._provider.cleanup()
        self._lifecycle = None

    @staticmethod
    def _coerce_config(
        ptype: ProviderType, config: ProviderConfig | Mapping[str, Any]
    ) -> ProviderConfig:
        ptype = ProviderType(ptype)
        if isinstance(config, Mapping):
            payload = {"provider": ptype.value, **config}
            try:
                config = _CONFIG_ADAPTER.validate_python(payload)
            except ValidationError as exc:
                raise ConfigError(f"Invalid {ptype.value} config: {exc}") from exc
        if config.provider != ptype.value:
            raise ConfigError(
                f"Config for {config.provider!r} cannot be stored under {ptype.value!r}."
            )
        return config

    # -- conversation ----------------------------------------------------

    def set_schema(self, databases: Sequence[DatabaseInfo]) -> None:
        self._databases = list(databases)

    def attach_query_result(self, message_id: str, result: QueryResult) -> None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                self._messages[index] = message.with_query_result(result)
                self._notify()
                return
        raise KeyError(f"Unknown message id: {message_id}")

    def execute_query_in_chat(
        self, message_id: str, sql: str, executor: QueryExecutor
    ) -> QueryResultData | None:
        """Run ``sql`` through ``executor`` and record the outcome on the message."""
        self.attach_query_result(message_id, QueryResult(status="running"))
        try:
            data = executor(sql)
        except Exception as exc:  # executor failures are recorded on the message
            error_message = str(exc) or "Query execution failed"
            logger.warning("Query for message {} failed: {}", message_id, error_message)
            self.attach_query_result(
                message_id, QueryResult(status="error", error=error_message)
            )
            return None
        self.attach_query_result(
            message_id,
            QueryResult(status="success", data=data, executed_at=datetime.now(tz=UTC)),
        )
        return data

    def clear_messages(self) -> None:
        self._messages.clear()
        self._notify()

    # -- lifetime --------------------------------------------------------

    def close(self) -> None:
        self.abort_generation()
        self._teardown_provider()
        self._listeners.clear()

    def __enter__(self) -> GenerationOrchestrator:
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
