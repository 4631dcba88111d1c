"""Shared fixtures: fake HTTP responses, a fake inference engine, sample catalogs."""

from __future__ import annotations

import io
import json
import threading
from collections.abc import Callable, Sequence
from urllib import error, request

import pytest

from nl2sql_brain.config import ProviderType
from nl2sql_brain.llm.base import (
    AIProvider,
    ChatMessage,
    GenerationOptions,
    StreamCallbacks,
)
from nl2sql_brain.schema.catalog import ColumnInfo, DatabaseInfo, TableInfo


class FakeResponse:
    """Stands in for ``http.client.HTTPResponse`` returned by ``urlopen``.

    With ``gate`` set, every read after the first blocks until the gate opens,
    like a socket waiting on the next chunk.
    """

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        body: bytes | None = None,
        gate: threading.Event | None = None,
    ):
        self._chunks = list(chunks)
        self._body = body if body is not None else b"".join(chunks)
        self._gate = gate
        self._reads = 0
        self.closed = False

    def read1(self, _size: int = -1) -> bytes:
        if self._gate is not None and self._reads > 0:
            self._gate.wait(timeout=5)
        self._reads += 1
        if not self._chunks:
            return b""
        return self._chunks.pop(0)

    def read(self) -> bytes:
        return self._body

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()


def json_response(payload: object) -> FakeResponse:
    return FakeResponse(body=json.dumps(payload).encode("utf-8"))


def sse_body(*payloads: object) -> bytes:
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def split_bytes(data: bytes, size: int) -> list[bytes]:
    return [data[index : index + size] for index in range(0, len(data), size)]


def http_error(url: str, code: int, body: bytes = b"") -> error.HTTPError:
    return error.HTTPError(url, code, "error", hdrs=None, fp=io.BytesIO(body))


class UrlopenStub:
    """Serves queued responses (or raises queued exceptions) in order."""

    def __init__(self) -> None:
        self.requests: list[tuple[request.Request, float | None]] = []
        self._queue: list[FakeResponse | BaseException] = []

    def queue(self, *items: FakeResponse | BaseException) -> None:
        self._queue.extend(items)

    def __call__(self, req: request.Request, timeout: float | None = None):
        self.requests.append((req, timeout))
        if not self._queue:
            raise AssertionError(f"Unexpected request to {req.full_url}")
        item = self._queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index][0].data.decode("utf-8"))


@pytest.fixture()
def urlopen(monkeypatch: pytest.MonkeyPatch) -> UrlopenStub:
    stub = UrlopenStub()
    monkeypatch.setattr(request, "urlopen", stub)
    return stub


class FakeEngine:
    """In-memory engine that reports progress and yields canned tokens."""

    def __init__(
        self,
        tokens: Sequence[str] = ("SELECT ", "name ", "FROM users"),
        load_error: str | None = None,
        generate_error: str | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.tokens = list(tokens)
        self.gate = gate
        self.load_error = load_error
        self.generate_error = generate_error
        self.loaded: str | None = None
        self.unloaded = False
        self.prompts: list[list[ChatMessage]] = []

    def load(self, descriptor, on_progress) -> None:
        on_progress(10.0, f"Downloading {descriptor.display_name}")
        if self.load_error:
            raise RuntimeError(self.load_error)
        on_progress(90.0, "Loading weights")
        self.loaded = descriptor.id

    def generate(self, messages, options, should_stop):
        self.prompts.append(list(messages))
        if self.generate_error:
            raise RuntimeError(self.generate_error)
        for index, token in enumerate(self.tokens):
            if index and self.gate is not None:
                self.gate.wait(timeout=5)
            if should_stop():
                return
            yield token

    def unload(self) -> None:
        self.unloaded = True


class EngineFactory:
    """Records every engine the worker creates."""

    def __init__(self, **engine_kwargs) -> None:
        self.engine_kwargs = engine_kwargs
        self.engines: list[FakeEngine] = []

    def __call__(self) -> FakeEngine:
        engine = FakeEngine(**self.engine_kwargs)
        self.engines.append(engine)
        return engine


class ScriptedProvider(AIProvider):
    """Provider that replays fixed tokens through the real callback gate."""

    provider_type = ProviderType.OPENAI

    def __init__(
        self,
        tokens: Sequence[str] = ("```sql\n", "SELECT name ", "FROM users;", "\n```"),
        error: Exception | None = None,
    ) -> None:
        super().__init__()
        self.tokens = list(tokens)
        self.error = error
        self.before_token: Callable[[str], None] | None = None
        self.initialized_with: list[object] = []
        self.requests: list[tuple[list[ChatMessage], GenerationOptions | None]] = []
        self.cleanups = 0

    def initialize(self, config) -> None:
        self._check_config(config)
        self.initialized_with.append(config)
        self._model_id = config.model_id
        self._ready = True

    def generate_streaming(
        self,
        messages: Sequence[ChatMessage],
        callbacks: StreamCallbacks,
        options: GenerationOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> str | None:
        self._ensure_ready()
        self.requests.append((list(messages), options))
        sink = self._open_stream(callbacks, cancel)
        for token in self.tokens:
            if self.before_token is not None:
                self.before_token(token)
            if sink.cancelled:
                break
            sink.token(token)
        self._close_stream(sink)
        if self.error is not None and not sink.cancelled:
            sink.fail(self.error)
            return None
        return sink.complete()

    def generate_text(self, messages, options=None) -> str:
        self._ensure_ready()
        return "".join(self.tokens)

    def cleanup(self) -> None:
        super().cleanup()
        self.cleanups += 1


@pytest.fixture()
def sample_databases() -> list[DatabaseInfo]:
    return [
        DatabaseInfo(
            name="memory",
            tables=[
                TableInfo(
                    name="users",
                    columns=[
                        ColumnInfo("id", "INTEGER", nullable=False),
                        ColumnInfo("name", "VARCHAR"),
                        ColumnInfo("email", "VARCHAR"),
                    ],
                    row_count=1500,
                ),
                TableInfo(
                    name="orders",
                    columns=[
                        ColumnInfo("id", "INTEGER", nullable=False),
                        ColumnInfo("user_id", "INTEGER"),
                        ColumnInfo("amount", "DECIMAL(10,2)"),
                        ColumnInfo("order_date", "DATE"),
                    ],
                ),
            ],
        ),
        DatabaseInfo(
            name="analytics",
            tables=[
                TableInfo(
                    name="events",
                    columns=[
                        ColumnInfo("event_id", "BIGINT", nullable=False),
                        ColumnInfo("payload", "JSON"),
                    ],
                    row_count=42,
                )
            ],
        ),
    ]


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in (
        "NL2SQL_PROVIDER",
        "NL2SQL_LOCAL_MODEL",
        "NL2SQL_LOG_LEVEL",
        "OPENAI_API_KEY",
        "OPENAI_MODEL",
        "OPENAI_BASE_URL",
        "ANTHROPIC_API_KEY",
        "ANTHROPIC_MODEL",
        "ANTHROPIC_BASE_URL",
        "COMPATIBLE_BASE_URL",
        "COMPATIBLE_MODEL",
        "COMPATIBLE_API_KEY",
        "SCHEMA_SNAPSHOT_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
