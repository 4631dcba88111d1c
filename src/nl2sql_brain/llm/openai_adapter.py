"""OpenAI chat completions providers (hosted and self-hosted compatible)."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger

from nl2sql_brain.config import (
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    ProviderType,
)
from nl2sql_brain.llm.base import (
    ChatMessage,
    ConnectivityError,
    GenerationOptions,
    StreamParseError,
    TransportError,
)
from nl2sql_brain.llm.remote import RemoteProvider
from nl2sql_brain.llm.sse import parse_event_json

DONE_SENTINEL = "[DONE]"


class OpenAIStyleProvider(RemoteProvider):
    """Generate completions through the OpenAI Chat Completions API."""

    provider_type = ProviderType.OPENAI
    default_base_url = DEFAULT_OPENAI_BASE_URL
    default_model = DEFAULT_OPENAI_MODEL
    chat_path = "/chat/completions"

    def _auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    def _build_body(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model_id,
            "messages": [message.to_dict() for message in messages],
            "stream": stream,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
        }
        if options.stop_sequences:
            body["stop"] = list(options.stop_sequences)
        return body

    def _extract_text(self, payload: dict[str, Any]) -> str:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise TransportError("OpenAI response is missing choices.")

        first = choices[0]
        if not isinstance(first, dict):
            raise TransportError("OpenAI response has invalid choice format.")

        message = first.get("message")
        if not isinstance(message, dict):
            return ""
        content = message.get("content")
        return content if isinstance(content, str) else ""

    def _handle_event(self, payload: str) -> tuple[str | None, bool]:
        if payload.strip() == DONE_SENTINEL:
            return None, True

        event = parse_event_json(payload)
        choices = event.get("choices")
        if not isinstance(choices, list) or not choices:
            return None, False
        first = choices[0]
        if not isinstance(first, dict):
            raise StreamParseError("Choice entry is not an object.")
        delta = first.get("delta")
        if not isinstance(delta, dict):
            return None, False
        content = delta.get("content")
        return (content if isinstance(content, str) else None), False


class OpenAICompatibleProvider(OpenAIStyleProvider):
    """OpenAI wire protocol served by a self-hosted inference server.

    Servers such as llama.cpp, vLLM or Ollama do not always expose
    ``/models``, so the connectivity probe falls back to a one-token
    completion.
    """

    provider_type = ProviderType.OPENAI_COMPATIBLE
    default_base_url = ""
    default_model = ""

    def _probe(self) -> None:
        try:
            super()._probe()
            return
        except ConnectivityError as exc:
            logger.debug(
                "Model listing unavailable at {} ({}); probing with a completion",
                self._base_url,
                exc,
            )

        req = self._request(
            self.chat_path,
            self._build_body(
                [ChatMessage("user", "ping")],
                GenerationOptions(max_tokens=1, temperature=0.0),
                stream=False,
            ),
        )
        self._fetch_json(req, self.probe_timeout_seconds, ConnectivityError)
