"""Provider that runs a GGUF model in-process on a background worker."""

from __future__ import annotations

import itertools
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from nl2sql_brain.config import ConfigError, ProviderConfig, ProviderType
from nl2sql_brain.llm.base import (
    AIProvider,
    ChatMessage,
    ConnectivityError,
    GenerationOptions,
    NotReadyError,
    ProviderError,
    StreamCallbacks,
    TransportError,
)
from nl2sql_brain.llm.local_worker import (
    Completed,
    EngineFactory,
    Failed,
    Generate,
    InferenceWorker,
    LlamaCppEngine,
    LoadModel,
    Progress,
    Token,
    WorkerMessage,
    local_runtime_available,
)
from nl2sql_brain.models.catalog import get_model_descriptor

DEFAULT_POLL_INTERVAL_SECONDS = 0.1


class ModelStatus(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    DOWNLOADING = "downloading"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ModelLifecycleState:
    status: ModelStatus = ModelStatus.IDLE
    progress_percent: float = 0.0
    status_text: str = ""
    error_message: str | None = None
    current_model: str | None = None
    capability_supported: bool | None = None


LifecycleListener = Callable[[ModelLifecycleState], None]


class LocalInferenceProvider(AIProvider):
    """Loads one local model at a time and streams completions from it.

    Download, load and generation all happen on an ``InferenceWorker``
    thread. Switching models tears the worker down and starts a fresh one,
    so two models are never resident together.
    """

    provider_type = ProviderType.LOCAL

    def __init__(
        self,
        *,
        engine_factory: EngineFactory | None = None,
        capability_check: Callable[[], bool] | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ) -> None:
        super().__init__()
        self._engine_factory = engine_factory or LlamaCppEngine
        self._poll_interval = poll_interval
        self._worker: InferenceWorker | None = None
        self._request_ids = itertools.count(1)
        self._listeners: list[LifecycleListener] = []
        self._state_lock = threading.Lock()
        self._state = ModelLifecycleState()

        if capability_check is None:
            capability_check = (
                local_runtime_available if engine_factory is None else lambda: True
            )
        self._set_state(status=ModelStatus.CHECKING, status_text="Checking local runtime")
        if capability_check():
            self._set_state(
                status=ModelStatus.IDLE, status_text="", capability_supported=True
            )
        else:
            self._set_state(
                status=ModelStatus.ERROR,
                status_text="Local inference unavailable",
                error_message=(
                    "Local inference needs llama-cpp-python and huggingface_hub; "
                    "install the 'local' extra."
                ),
                capability_supported=False,
            )

    @property
    def lifecycle(self) -> ModelLifecycleState:
        return self._state

    def subscribe(self, listener: LifecycleListener) -> Callable[[], None]:
        """Receive every lifecycle change, starting with the current state."""
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def initialize(self, config: ProviderConfig) -> None:
        self._check_config(config)
        descriptor = get_model_descriptor(config.model_id)
        if descriptor is None:
            raise ConfigError(f"Unknown local model {config.model_id!r}.")
        if not self._state.capability_supported:
            raise ConfigError(self._state.error_message or "Local inference unavailable.")

        if self._state.status is ModelStatus.READY and self._model_id == descriptor.id:
            logger.debug("Model {} already loaded", descriptor.id)
            return
        if self._worker is not None:
            logger.info("Unloading {} before loading {}", self._model_id, descriptor.id)
            self._teardown_worker()

        worker = InferenceWorker(self._engine_factory)
        worker.start()
        self._worker = worker
        request_id = next(self._request_ids)
        self._set_state(
            status=ModelStatus.LOADING,
            progress_percent=0.0,
            status_text=f"Preparing {descriptor.display_name}",
            error_message=None,
            current_model=descriptor.id,
        )
        logger.info("Loading local model {}", descriptor.id)
        worker.submit(LoadModel(request_id, descriptor))

        try:
            for message in self._replies(worker, request_id, ConnectivityError):
                if isinstance(message, Progress):
                    downloading = "download" in message.text.lower()
                    self._set_state(
                        status=ModelStatus.DOWNLOADING if downloading else ModelStatus.LOADING,
                        progress_percent=message.percent,
                        status_text=message.text,
                    )
                elif isinstance(message, Completed):
                    break
                elif isinstance(message, Failed):
                    raise ConnectivityError(f"Failed to load model: {message.error}")
        except ProviderError as exc:
            self._teardown_worker()
            self._set_state(
                status=ModelStatus.ERROR,
                status_text="Model failed to load",
                error_message=str(exc),
                current_model=None,
            )
            raise

        self._set_state(
            status=ModelStatus.READY, progress_percent=100.0, status_text="Ready"
        )
        logger.info("Local model {} ready", descriptor.id)

    def generate_streaming(
        self,
        messages: Sequence[ChatMessage],
        callbacks: StreamCallbacks,
        options: GenerationOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> str | None:
        self._ensure_ready()
        worker = self._worker
        sink = self._open_stream(callbacks, cancel)
        if sink.cancelled:
            self._close_stream(sink)
            logger.info("Local generation aborted before dispatch")
            return sink.complete()
        request_id = next(self._request_ids)
        worker.submit(
            Generate(request_id, tuple(messages), options or GenerationOptions())
        )
        logger.info("Streaming completion from local model {}", self._model_id)

        try:
            for message in self._replies(worker, request_id, TransportError):
                if sink.cancelled:
                    worker.cancel(request_id)
                    logger.info("Local generation aborted by caller")
                    break
                if isinstance(message, Token):
                    sink.token(message.delta)
                elif isinstance(message, Completed):
                    break
                elif isinstance(message, Failed):
                    raise TransportError(message.error)
        except TransportError as exc:
            logger.warning("Local generation failed: {}", exc)
            sink.fail(exc)
            return None
        finally:
            self._close_stream(sink)
        return sink.complete()

    def generate_text(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions | None = None,
    ) -> str:
        errors: list[Exception] = []
        text = self.generate_streaming(
            messages, StreamCallbacks(on_error=errors.append), options
        )
        if errors:
            raise errors[0]
        return text or ""

    def cleanup(self) -> None:
        super().cleanup()
        self._teardown_worker()
        if self._state.capability_supported:
            self._set_state(
                status=ModelStatus.IDLE,
                progress_percent=0.0,
                status_text="",
                error_message=None,
                current_model=None,
            )

    def _ensure_ready(self) -> None:
        if self._state.status is not ModelStatus.READY or self._worker is None:
            raise NotReadyError(
                f"Local model is not ready (status: {self._state.status.value})."
            )

    def _replies(
        self,
        worker: InferenceWorker,
        request_id: int,
        error_cls: type[ConnectivityError] | type[TransportError],
    ) -> Iterator[WorkerMessage | None]:
        """Yield fresh replies for ``request_id``; ``None`` on each idle poll tick."""
        last_seq = -1
        while True:
            try:
                message = worker.outbox.get(timeout=self._poll_interval)
            except queue.Empty:
                if not worker.is_alive():
                    raise error_cls("Inference worker stopped unexpectedly.")
                yield None
                continue
            if message.request_id != request_id or message.seq <= last_seq:
                logger.debug("Discarding stale worker message {}", message)
                continue
            last_seq = message.seq
            yield message

    def _teardown_worker(self) -> None:
        worker, self._worker = self._worker, None
        self._ready = False
        self._model_id = None
        if worker is not None:
            worker.shutdown()

    def _set_state(self, **changes: object) -> None:
        with self._state_lock:
            previous = self._state
            self._state = replace(previous, **changes)
            state = self._state
        self._ready = state.status is ModelStatus.READY
        self._initializing = state.status in (
            ModelStatus.CHECKING,
            ModelStatus.DOWNLOADING,
            ModelStatus.LOADING,
        )
        self._error = state.error_message
        self._model_id = state.current_model
        if state.status is not previous.status:
            logger.info("Local model status: {} {}", state.status.value, state.status_text)
        for listener in list(self._listeners):
            listener(state)
