"""Anthropic Messages API provider."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from nl2sql_brain.config import (
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_MODEL,
    ProviderType,
)
from nl2sql_brain.llm.base import ChatMessage, GenerationOptions, TransportError
from nl2sql_brain.llm.remote import RemoteProvider
from nl2sql_brain.llm.sse import parse_event_json

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicStyleProvider(RemoteProvider):
    """Generate completions through the Anthropic Messages API.

    Every ``error`` event ends the stream and is reported through
    ``on_error``; unparseable fragments are skipped like any other noise.
    """

    provider_type = ProviderType.ANTHROPIC
    default_base_url = DEFAULT_ANTHROPIC_BASE_URL
    default_model = DEFAULT_ANTHROPIC_MODEL
    chat_path = "/messages"

    def _auth_headers(self) -> dict[str, str]:
        headers = {"anthropic-version": ANTHROPIC_VERSION}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    def _build_body(
        self,
        messages: Sequence[ChatMessage],
        options: GenerationOptions,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        body: dict[str, Any] = {
            "model": self._model_id,
            "max_tokens": options.max_tokens,
            "temperature": options.temperature,
            "messages": [
                {
                    "role": "assistant" if m.role == "assistant" else "user",
                    "content": m.content,
                }
                for m in messages
                if m.role != "system"
            ],
            "stream": stream,
        }
        if system:
            body["system"] = system
        if options.stop_sequences:
            body["stop_sequences"] = list(options.stop_sequences)
        return body

    def _extract_text(self, payload: dict[str, Any]) -> str:
        content = payload.get("content")
        if not isinstance(content, list):
            raise TransportError("Anthropic response is missing content.")
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )

    def _handle_event(self, payload: str) -> tuple[str | None, bool]:
        event = parse_event_json(payload)
        event_type = event.get("type")

        if event_type == "content_block_delta":
            delta = event.get("delta")
            text = delta.get("text") if isinstance(delta, dict) else None
            return (text if isinstance(text, str) else None), False
        if event_type == "message_stop":
            return None, True
        if event_type == "error":
            detail = event.get("error")
            message = detail.get("message") if isinstance(detail, dict) else None
            raise TransportError(
                message if isinstance(message, str) and message else "Unknown stream error"
            )
        return None, False
