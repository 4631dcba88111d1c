"""Shared HTTP plumbing for hosted, SSE-streaming chat providers."""

from __future__ import annotations

import http.client
import json
import threading
from abc import abstractmethod
from collections.abc import Sequence
from typing import Any
from urllib import error, request

from loguru import logger

from nl2sql_brain.config import ConfigError, ProviderConfig
from nl2sql_brain.llm.base import (
    AIProvider,
    ChatMessage,
    ConnectivityError,
    GenerationOptions,
    ProviderError,
    StreamCallbacks,
    StreamParseError,
    StreamSink,
    TransportError,
)
from nl2sql_brain.llm.sse import SSEDecoder

READ_CHUNK_SIZE = 4096
DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0
DEFAULT_READ_TIMEOUT_SECONDS = 120.0


def parse_error_message(body: bytes, status: int | None) -> str:
    """Pull a human-readable message out of a vendor JSON error envelope."""
    try:
        payload = json.loads(body.decode("utf-8", errors="replace"))
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict):
        detail = payload.get("error")
        if isinstance(detail, dict):
            message = detail.get("message")
            if isinstance(message, str) and message.strip():
                return message.strip()
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
        message = payload.get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return f"API error: {status}"


class RemoteProvider(AIProvider):
    """Base for providers that talk to an HTTP endpoint.

    Subclasses describe the vendor dialect: auth headers, request bodies, how
    to read a non-streaming reply, and how to interpret one SSE payload.
    """

    default_base_url: str
    default_model: str
    chat_path: str

    def __init__(
        self,
        *,
        probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
        read_timeout_seconds: float = DEFAULT_READ_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__()
        self.probe_timeout_seconds = probe_timeout_seconds
        self.read_timeout_seconds = read_timeout_seconds
        self._api_key: str | None = None
        self._base_url = self.default_base_url

    @property
    def base_url(self) -> str:
        return self._base_url

    def initialize(self, config: ProviderConfig) -> None:
        self._initializing = True
        self._ready = False
        self._error = None
        try:
            self._check_config(config)
            self._api_key = getattr(config, "api_key", None) or None
            self._model_id = getattr(config, "model_id", None) or self.default_model
            self._base_url = getattr(config, "base_url", None) or self.default_base_url
            self._probe()
            self._ready = True
            logger.info(
                "{} provider ready (model={}, endpoint={})",
                self.provider_type.value,
                self._model_id,
                self._base_url,
            )
        except (ConfigError, ProviderError) as exc:
            self._error = str(exc)
            logger.warning(
                "{} provider failed to initialize: {}", self.provider_type.value, exc
            )
            raise
        finally:
            self._initializing = False

    def generate_streaming(
        self,
        messages: Sequence[ChatMessage],
        callbacks: StreamCallbacks,
        options: GenerationOptions | None = None,
        cancel: threading.Event | None = None,
    ) -> str | None:
        self._ensure_ready()
        sink = self._open_stream(callbacks, cancel)
        if sink.cancelled:
            self._close_stream(sink)
            logger.info("{} stream aborted before dispatch", self.provider_type.value)
            return sink.complete()
        req = self._request(
            self.chat_path,
            self._build_body(messages, options or GenerationOptions(), stream=True),
        )
        logger.info(
            "Streaming completion from {} (model={})",
            self.provider_type.value,
            self._model_id,
        )
        try:
            with self._open(req, self.read_timeout_seconds, TransportError) as response:
                self._consume(response, sink)
        except TransportError as exc:
            if not sink.cancelled:
                logger.warning("{} stream failed: {}", self.provider_type.value, exc)
                sink.fail(exc)
                return None
        finally:
            self._close_stream(sink)

        if sink.cancelled:
            logger.info("{} stream aborted by caller", self.provider_type.value)
        return sink.complete()

    def generate_text(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions | None = None,
    ) -> str:
        self._ensure_ready()
        req = self._request(
            self.chat_path,
            self._build_body(messages, options or GenerationOptions(), stream=False),
        )
        payload = self._fetch_json(req, self.read_timeout_seconds, TransportError)
        return self._extract_text(payload)

    def cleanup(self) -> None:
        super().cleanup()
        self._api_key = None

    def _consume(self, response: http.client.HTTPResponse, sink: StreamSink) -> None:
        decoder = SSEDecoder()
        while not sink.cancelled:
            try:
                chunk = response.read1(READ_CHUNK_SIZE)
            except (OSError, http.client.HTTPException) as exc:
                raise TransportError(f"Stream interrupted: {exc}") from exc
            if not chunk:
                self._deliver(decoder.flush(), sink)
                return
            if self._deliver(decoder.feed(chunk), sink):
                return

    def _deliver(self, payloads: list[str], sink: StreamSink) -> bool:
        """Forward decoded payloads; True once the stream should stop."""
        for payload in payloads:
            if sink.cancelled:
                return True
            try:
                delta, terminal = self._handle_event(payload)
            except StreamParseError as exc:
                logger.debug("Skipping stream fragment: {}", exc)
                continue
            if delta and not sink.token(delta):
                return True
            if terminal:
                return True
        return False

    def _probe(self) -> None:
        """Connectivity check: list the vendor's model catalog."""
        req = self._request("/models", None, method="GET")
        self._fetch_json(req, self.probe_timeout_seconds, ConnectivityError)

    def _request(
        self,
        path: str,
        body: dict[str, Any] | None,
        *,
        method: str = "POST",
    ) -> request.Request:
        headers = {"Content-Type": "application/json", **self._auth_headers()}
        data = json.dumps(body).encode("utf-8") if body is not None else None
        return request.Request(
            self._base_url.rstrip("/") + path,
            method=method,
            data=data,
            headers=headers,
        )

    def _open(
        self,
        req: request.Request,
        timeout: float,
        error_cls: type[ConnectivityError] | type[TransportError],
    ) -> http.client.HTTPResponse:
        try:
            return request.urlopen(req, timeout=timeout)
        except error.HTTPError as exc:
            details = exc.read()
            raise error_cls(parse_error_message(details, exc.code), exc.code) from exc
        except error.URLError as exc:
            raise error_cls(f"Could not reach {self._base_url}: {exc.reason}") from exc
        except TimeoutError as exc:
            raise error_cls(
                f"{self._base_url} did not respond within {timeout:g} seconds."
            ) from exc

    def _fetch_json(
        self,
        req: request.Request,
        timeout: float,
        error_cls: type[ConnectivityError] | type[TransportError],
    ) -> dict[str, Any]:
        with self._open(req, timeout, error_cls) as response:
            try:
                raw = response.read()
            except (OSError, http.client.HTTPException) as exc:
                raise error_cls(f"Reading response failed: {exc}") from exc
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise error_cls("Response was not valid JSON.") from exc
        if not isinstance(payload, dict):
            raise error_cls("Response JSON root must be an object.")
        return payload

    @abstractmethod
    def _auth_headers(self) -> dict[str, str]:
        """Credential headers for every request."""

    @abstractmethod
    def _build_body(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        """Vendor request body for a chat completion."""

    @abstractmethod
    def _extract_text(self, payload: dict[str, Any]) -> str:
        """Assistant text from a non-streaming reply."""

    @abstractmethod
    def _handle_event(self, payload: str) -> tuple[str | None, bool]:
        """Interpret one SSE payload as ``(text_delta, is_terminal)``."""
