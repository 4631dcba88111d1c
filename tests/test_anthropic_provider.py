"""Tests for the Anthropic Messages provider."""

import pytest
from conftest import FakeResponse, http_error, json_response, split_bytes, sse_body

from nl2sql_brain.config import AnthropicProviderConfig, ConfigError
from nl2sql_brain.llm.anthropic_adapter import AnthropicStyleProvider
from nl2sql_brain.llm.base import (
    ChatMessage,
    ConnectivityError,
    StreamCallbacks,
    TransportError,
)

MESSAGES = [
    ChatMessage("system", "You write SQL."),
    ChatMessage("user", "Show me the top customers"),
    ChatMessage("assistant", "SELECT * FROM customers LIMIT 5"),
    ChatMessage("user", "count users"),
]


def _text(delta: str) -> dict:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": delta}}


@pytest.fixture()
def provider(urlopen):
    urlopen.queue(json_response({"data": [{"id": "claude-sonnet-4-20250514"}]}))
    provider = AnthropicStyleProvider()
    provider.initialize(AnthropicProviderConfig(api_key="sk-ant-test"))
    return provider


def _collect():
    events = []
    callbacks = StreamCallbacks(
        on_token=lambda delta: events.append(("token", delta)),
        on_complete=lambda text: events.append(("complete", text)),
        on_error=lambda exc: events.append(("error", exc)),
    )
    return events, callbacks


def test_probe_headers(urlopen, provider):
    req, timeout = urlopen.requests[0]
    assert req.full_url == "https://api.anthropic.com/v1/models"
    assert req.get_header("X-api-key") == "sk-ant-test"
    assert req.get_header("Anthropic-version") == "2023-06-01"
    assert timeout == 10.0
    assert provider.get_status().current_model == "claude-sonnet-4-20250514"


def test_missing_api_key(urlopen):
    with pytest.raises(ConfigError, match="Anthropic API key is required"):
        AnthropicStyleProvider().initialize(AnthropicProviderConfig(model_id="claude-3-5-haiku-20241022"))


def test_probe_failure(urlopen):
    urlopen.queue(
        http_error(
            "https://api.anthropic.com/v1/models",
            401,
            b'{"type": "error", "error": {"type": "authentication_error", "message": "invalid x-api-key"}}',
        )
    )
    with pytest.raises(ConnectivityError, match="invalid x-api-key"):
        AnthropicStyleProvider().initialize(AnthropicProviderConfig(api_key="bad"))


def test_system_message_is_lifted(urlopen, provider):
    urlopen.queue(FakeResponse([sse_body({"type": "message_stop"})]))
    provider.generate_streaming(MESSAGES, StreamCallbacks())

    body = urlopen.body(1)
    assert urlopen.requests[1][0].full_url == "https://api.anthropic.com/v1/messages"
    assert body["system"] == "You write SQL."
    assert [m["role"] for m in body["messages"]] == ["user", "assistant", "user"]
    assert body["stream"] is True
    assert body["max_tokens"] == 2048
    assert "stop_sequences" not in body


def test_streams_only_text_deltas(urlopen, provider):
    body = sse_body(
        {"type": "message_start", "message": {"id": "msg_1"}},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "ping"},
        _text("SELECT "),
        _text("COUNT(*) FROM users"),
        {"type": "content_block_stop", "index": 0},
        {"type": "message_delta", "delta": {"stop_reason": "end_turn"}},
        {"type": "message_stop"},
    )
    urlopen.queue(FakeResponse(split_bytes(body, 11)))
    events, callbacks = _collect()

    assert provider.generate_streaming(MESSAGES, callbacks) == "SELECT COUNT(*) FROM users"
    assert events == [
        ("token", "SELECT "),
        ("token", "COUNT(*) FROM users"),
        ("complete", "SELECT COUNT(*) FROM users"),
    ]


def test_error_event_terminates_stream(urlopen, provider):
    body = sse_body(
        _text("SELECT "),
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
        _text("ignored"),
    )
    urlopen.queue(FakeResponse([body]))
    events, callbacks = _collect()

    assert provider.generate_streaming(MESSAGES, callbacks) is None
    assert events[0] == ("token", "SELECT ")
    assert len(events) == 2
    kind, exc = events[1]
    assert kind == "error"
    assert isinstance(exc, TransportError)
    assert str(exc) == "Overloaded"


def test_generate_text_joins_text_blocks(urlopen, provider):
    urlopen.queue(
        json_response({"content": [{"type": "text", "text": "SELECT "}, {"type": "text", "text": "1"}]})
    )
    assert provider.generate_text(MESSAGES) == "SELECT 1"
    assert urlopen.body(1)["stream"] is False
