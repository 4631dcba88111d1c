"""Provider-independent interface for streaming chat models."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from nl2sql_brain.config import ConfigError, ProviderConfig, ProviderType

ChatRole = Literal["system", "user", "assistant"]


class ProviderError(RuntimeError):
    """Base class for failures raised by AI providers."""


class ConnectivityError(ProviderError):
    """Raised when a provider cannot reach or authenticate with its backend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotReadyError(ProviderError):
    """Raised when generation is requested before the provider is ready."""


class TransportError(ProviderError):
    """Raised when a request fails mid-flight."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamParseError(ValueError):
    """Raised for a malformed stream fragment; recovered by skipping it."""


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class GenerationOptions:
    max_tokens: int = 2048
    temperature: float = 0.7
    stop_sequences: list[str] | None = None


@dataclass(frozen=True)
class ProviderStatus:
    ready: bool
    initializing: bool
    error: str | None = None
    current_model: str | None = None


def _noop(*_args: object) -> None:
    return None


@dataclass
class StreamCallbacks:
    """Listener hooks for one streaming generation."""

    on_token: Callable[[str], None] = _noop
    on_complete: Callable[[str], None] = _noop
    on_error: Callable[[Exception], None] = _noop


@dataclass
class StreamSink:
    """Enforces the callback contract for a single request.

    Tokens are accumulated and forwarded until the first terminal event or
    until ``cancel`` is set; afterwards every delivery is dropped, and only
    one of ``complete``/``fail`` ever reaches the listener. ``on_token`` runs
    under the sink lock, so once ``stop`` returns no further token arrives.
    """

    callbacks: StreamCallbacks
    cancel: threading.Event = field(default_factory=threading.Event)
    text: str = ""
    finished: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def token(self, delta: str) -> bool:
        with self._lock:
            if self.finished or self.cancel.is_set():
                return False
            if delta:
                self.text += delta
                self.callbacks.on_token(delta)
            return True

    def stop(self) -> bool:
        """Set ``cancel``; True when this call was the one that set it."""
        with self._lock:
            if self.cancel.is_set():
                return False
            self.cancel.set()
            return True

    def complete(self) -> str:
        with self._lock:
            if self.finished:
                return self.text
            self.finished = True
        self.callbacks.on_complete(self.text)
        return self.text

    def fail(self, exc: Exception) -> None:
        with self._lock:
            if self.finished:
                return
            self.finished = True
        self.callbacks.on_error(exc)


class AIProvider(ABC):
    """Shared capability interface of every model backend."""

    provider_type: ProviderType

    def __init__(self) -> None:
        self._ready = False
        self._initializing = False
        self._error: str | None = None
        self._model_id: str | None = None
        self._stream: StreamSink | None = None

    @abstractmethod
    def initialize(self, config: ProviderConfig) -> None:
        """Validate ``config`` and probe the backend before becoming ready."""

    @abstractmethod
    def generate_streaming(
        self,
        messages: Sequence[ChatMessage],
        callbacks: StreamCallbacks,
        options: GenerationOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> str | None:
        """Stream a completion; returns the final text, or None after on_error.

        ``cancel`` lets the caller own the abort signal, so an abort raised
        before the request is dispatched is still honoured.
        """

    @abstractmethod
    def generate_text(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions | None = None,
    ) -> str:
        """Return a full completion without streaming."""

    def abort(self) -> None:
        """Cancel the in-flight generation, if any. Safe to call repeatedly."""
        sink = self._stream
        if sink is not None and sink.stop():
            logger.info("Aborting {} generation", self.provider_type.value)

    def _open_stream(
        self, callbacks: StreamCallbacks, cancel: threading.Event | None
    ) -> StreamSink:
        if cancel is None:
            cancel = threading.Event()
        sink = StreamSink(callbacks, cancel=cancel)
        self._stream = sink
        return sink

    def _close_stream(self, sink: StreamSink) -> None:
        if self._stream is sink:
            self._stream = None

    def cleanup(self) -> None:
        self.abort()
        self._ready = False

    def get_status(self) -> ProviderStatus:
        return ProviderStatus(
            ready=self._ready,
            initializing=self._initializing,
            error=self._error,
            current_model=self._model_id,
        )

    def is_ready(self) -> bool:
        return self._ready

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise NotReadyError(
                f"{self.provider_type.value} provider is not initialized."
            )

    def _check_config(self, config: ProviderConfig) -> None:
        if config.provider != self.provider_type.value:
            raise ConfigError(
                f"Expected a {self.provider_type.value!r} config, "
                f"got {config.provider!r}."
            )
        config.validate_requirements()
