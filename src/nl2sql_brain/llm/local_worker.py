"""Background worker that owns a local inference engine.

The worker runs on its own daemon thread and talks to its owner only through
two queues: requests go in on ``inbox`` and every reply, progress reports and
streamed tokens included, comes back on ``outbox``. Each reply carries the
originating ``request_id`` and a per-request ``seq`` so the owner can discard
anything stale or out of order.
"""

from __future__ import annotations

import importlib.util
import itertools
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, Union

from loguru import logger

from nl2sql_brain.llm.base import ChatMessage, GenerationOptions
from nl2sql_brain.models.catalog import ModelDescriptor

LOCAL_RUNTIME_MODULES = ("llama_cpp", "huggingface_hub")
SHUTDOWN_JOIN_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class LoadModel:
    request_id: int
    descriptor: ModelDescriptor


@dataclass(frozen=True)
class Generate:
    request_id: int
    messages: tuple[ChatMessage, ...]
    options: GenerationOptions


@dataclass(frozen=True)
class Unload:
    request_id: int


@dataclass(frozen=True)
class Shutdown:
    request_id: int = 0


WorkerRequest = Union[LoadModel, Generate, Unload, Shutdown]


@dataclass(frozen=True)
class Progress:
    request_id: int
    seq: int
    percent: float
    text: str


@dataclass(frozen=True)
class Token:
    request_id: int
    seq: int
    delta: str


@dataclass(frozen=True)
class Completed:
    request_id: int
    seq: int
    text: str = ""


@dataclass(frozen=True)
class Failed:
    request_id: int
    seq: int
    error: str


WorkerMessage = Union[Progress, Token, Completed, Failed]
ProgressCallback = Callable[[float, str], None]


class InferenceEngine(Protocol):
    """What the worker needs from a model runtime."""

    def load(self, descriptor: ModelDescriptor, on_progress: ProgressCallback) -> None:
        ...

    def generate(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions,
        should_stop: Callable[[], bool],
    ) -> Iterator[str]:
        ...

    def unload(self) -> None:
        ...


EngineFactory = Callable[[], InferenceEngine]


def local_runtime_available() -> bool:
    """Return True when llama.cpp bindings and the Hugging Face hub client are installed."""
    return all(
        importlib.util.find_spec(name) is not None for name in LOCAL_RUNTIME_MODULES
    )


class LlamaCppEngine:
    """GGUF models fetched from the Hugging Face hub and run with llama.cpp."""

    def __init__(self, cache_dir: str | None = None, n_threads: int | None = None) -> None:
        self.cache_dir = cache_dir
        self.n_threads = n_threads
        self._llm: Any = None

    def load(self, descriptor: ModelDescriptor, on_progress: ProgressCallback) -> None:
        from huggingface_hub import hf_hub_download
        from llama_cpp import Llama

        on_progress(
            0.0,
            f"Downloading {descriptor.display_name} ({descriptor.size_estimate})",
        )
        model_path = hf_hub_download(
            repo_id=descriptor.repo_id,
            filename=descriptor.filename,
            cache_dir=self.cache_dir,
        )
        on_progress(80.0, f"Loading {descriptor.display_name} into memory")
        self._llm = Llama(
            model_path=model_path,
            n_ctx=descriptor.context_length,
            n_threads=self.n_threads,
            verbose=False,
        )
        on_progress(100.0, "Model ready")

    def generate(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions,
        should_stop: Callable[[], bool],
    ) -> Iterator[str]:
        if self._llm is None:
            raise RuntimeError("No model is loaded.")
        stream = self._llm.create_chat_completion(
            messages=[message.to_dict() for message in messages],
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            stop=list(options.stop_sequences) if options.stop_sequences else None,
            stream=True,
        )
        for chunk in stream:
            if should_stop():
                break
            delta = chunk["choices"][0].get("delta", {}).get("content")
            if delta:
                yield delta

    def unload(self) -> None:
        llm, self._llm = self._llm, None
        if llm is not None and hasattr(llm, "close"):
            llm.close()


class _Replies:
    """Numbers the replies for one request."""

    def __init__(self, outbox: queue.Queue, request_id: int) -> None:
        self._outbox = outbox
        self._request_id = request_id
        self._seq = itertools.count()

    def progress(self, percent: float, text: str) -> None:
        self._outbox.put(Progress(self._request_id, next(self._seq), percent, text))

    def token(self, delta: str) -> None:
        self._outbox.put(Token(self._request_id, next(self._seq), delta))

    def completed(self, text: str = "") -> None:
        self._outbox.put(Completed(self._request_id, next(self._seq), text))

    def failed(self, error: str) -> None:
        self._outbox.put(Failed(self._request_id, next(self._seq), error))


class InferenceWorker:
    """A daemon thread serving one engine at a time."""

    def __init__(self, engine_factory: EngineFactory) -> None:
        self.inbox: queue.Queue[WorkerRequest] = queue.Queue()
        self.outbox: queue.Queue[WorkerMessage] = queue.Queue()
        self._engine_factory = engine_factory
        self._engine: InferenceEngine | None = None
        self._stop_generation = threading.Event()
        self._active_lock = threading.Lock()
        self._active_request: int | None = None
        self._cancelled: set[int] = set()
        self._thread = threading.Thread(
            target=self._run, name="nl2sql-inference", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def submit(self, request: WorkerRequest) -> None:
        self.inbox.put(request)

    def cancel(self, request_id: int) -> None:
        """Ask the engine to stop producing tokens for ``request_id``.

        A request still waiting in the inbox is remembered and skipped when
        the worker reaches it.
        """
        with self._active_lock:
            if self._active_request == request_id:
                self._stop_generation.set()
            else:
                self._cancelled.add(request_id)

    def shutdown(self, timeout: float = SHUTDOWN_JOIN_TIMEOUT_SECONDS) -> None:
        self._stop_generation.set()
        self.inbox.put(Shutdown())
        if self._thread.is_alive():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Inference worker did not stop within {:g}s", timeout)

    def _run(self) -> None:
        while True:
            request = self.inbox.get()
            if isinstance(request, Shutdown):
                self._release_engine()
                return
            replies = _Replies(self.outbox, request.request_id)
            try:
                if isinstance(request, LoadModel):
                    self._load(request, replies)
                elif isinstance(request, Generate):
                    self._generate(request, replies)
                elif isinstance(request, Unload):
                    self._release_engine()
                    replies.completed()
            except Exception as exc:  # reported across the worker boundary
                logger.warning("Inference request {} failed: {}", request.request_id, exc)
                replies.failed(str(exc) or exc.__class__.__name__)
            finally:
                with self._active_lock:
                    self._active_request = None

    def _load(self, request: LoadModel, replies: _Replies) -> None:
        self._release_engine()
        engine = self._engine_factory()
        engine.load(request.descriptor, replies.progress)
        self._engine = engine
        replies.completed()

    def _generate(self, request: Generate, replies: _Replies) -> None:
        if self._engine is None:
            raise RuntimeError("No model is loaded.")
        with self._active_lock:
            skipped = request.request_id in self._cancelled
            # ids only grow, so older cancels can no longer match
            self._cancelled = {
                rid for rid in self._cancelled if rid > request.request_id
            }
            if not skipped:
                self._stop_generation.clear()
                self._active_request = request.request_id
        if skipped:
            logger.debug("Skipping cancelled request {}", request.request_id)
            replies.completed()
            return
        text = ""
        for delta in self._engine.generate(
            request.messages, request.options, self._stop_generation.is_set
        ):
            if self._stop_generation.is_set():
                break
            text += delta
            replies.token(delta)
        replies.completed(text)

    def _release_engine(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.unload()
