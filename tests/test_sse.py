"""Tests for incremental SSE decoding."""

import pytest

from nl2sql_brain.llm.base import StreamParseError
from nl2sql_brain.llm.sse import SSEDecoder, parse_event_json


class TestSSEDecoder:
    def test_complete_lines(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: one\n\ndata: two\n\n") == ["one", "two"]

    def test_line_split_across_reads(self):
        decoder = SSEDecoder()
        assert decoder.feed(b'data: {"a"') == []
        assert decoder.feed(b": 1}\n") == ['{"a": 1}']

    def test_multibyte_character_split_across_reads(self):
        encoded = "data: café ☃\n".encode("utf-8")
        split_at = encoded.index("☃".encode("utf-8")) + 1
        decoder = SSEDecoder()

        assert decoder.feed(encoded[:split_at]) == []
        assert decoder.feed(encoded[split_at:]) == ["café ☃"]

    def test_one_byte_at_a_time(self):
        body = 'data: {"text": "naïve"}\n\ndata: [DONE]\n\n'.encode("utf-8")
        decoder = SSEDecoder()
        payloads = []
        for index in range(len(body)):
            payloads.extend(decoder.feed(body[index : index + 1]))
        assert payloads == ['{"text": "naïve"}', "[DONE]"]

    def test_ignores_non_data_fields_and_crlf(self):
        decoder = SSEDecoder()
        payloads = decoder.feed(
            b": keep-alive\r\nevent: message_start\r\nid: 7\r\ndata: x\r\n\r\n"
        )
        assert payloads == ["x"]

    def test_data_without_space(self):
        assert SSEDecoder().feed(b"data:[DONE]\n") == ["[DONE]"]

    def test_flush_reports_unterminated_line(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: tail") == []
        assert decoder.flush() == ["tail"]
        assert decoder.flush() == []


class TestParseEventJson:
    def test_object(self):
        assert parse_event_json('{"type": "ping"}') == {"type": "ping"}

    @pytest.mark.parametrize("payload", ['{"type": ', "[1, 2]", "plain"])
    def test_rejects_malformed(self, payload):
        with pytest.raises(StreamParseError):
            parse_event_json(payload)
