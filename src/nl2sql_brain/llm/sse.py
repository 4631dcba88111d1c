"""Incremental Server-Sent-Events decoding."""

from __future__ import annotations

import codecs
import json
from typing import Any

from nl2sql_brain.llm.base import StreamParseError

DATA_FIELD = "data:"


class SSEDecoder:
    """Turns arbitrary byte chunks into complete ``data:`` payloads.

    Network reads do not respect line or even UTF-8 character boundaries, so
    the incomplete tail of each chunk is held back and prefixed onto the next
    one. Only ``data:`` lines are reported; comments, ``event:`` and ``id:``
    fields are ignored.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        return self._payloads(lines)

    def flush(self) -> list[str]:
        """Report whatever remains once the stream has ended."""
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return self._payloads([text])

    @staticmethod
    def _payloads(lines: list[str]) -> list[str]:
        payloads = []
        for raw in lines:
            line = raw.rstrip("\r")
            if not line.startswith(DATA_FIELD):
                continue
            payload = line[len(DATA_FIELD):]
            if payload.startswith(" "):
                payload = payload[1:]
            payloads.append(payload)
        return payloads


def parse_event_json(payload: str) -> dict[str, Any]:
    """Decode one event payload, raising ``StreamParseError`` if malformed."""
    try:
        event = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise StreamParseError(f"Malformed stream event: {payload[:80]!r}") from exc
    if not isinstance(event, dict):
        raise StreamParseError("Stream event is not a JSON object.")
    return event
