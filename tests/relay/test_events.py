"""Tests for relay event decoding."""

import json

import pytest

from sendrecv.relay.events import (
    SignalMessage,
    SignalOpen,
    parse_event_line,
)


def data_line(payload) -> str:
    return "data: " + json.dumps(payload)


class TestParseEventLine:
    """Tests for parse_event_line."""

    def test_open_event(self):
        """An open event decodes to SignalOpen."""
        line = data_line({"id": "x", "time": 1, "event": "open", "topic": "t"})
        assert parse_event_line(line) == SignalOpen()

    def test_message_event(self):
        """A message event carries its message field."""
        line = data_line({"event": "message", "message": '{"type":"answer"}'})
        assert parse_event_line(line) == SignalMessage('{"type":"answer"}')

    def test_no_space_after_prefix(self):
        """data: without a following space is accepted."""
        assert parse_event_line('data:{"event":"open"}') == SignalOpen()

    def test_trailing_newline(self):
        """Line terminators are stripped."""
        assert parse_event_line('data: {"event":"open"}\r\n') == SignalOpen()

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "\n",
            ": keepalive comment",
            "event: message",
            "id: 123",
            "data: not json",
            "data: [1, 2, 3]",
            'data: "open"',
            'data: {"type": "offer"}',
            'data: {"event": "keepalive"}',
            'data: {"event": "poll_request"}',
            'data: {"event": "message"}',
            'data: {"event": "message", "message": 42}',
            'data: {"event": "open"',
        ],
    )
    def test_ignored_lines(self, line):
        """Anything not understood is ignored rather than failing."""
        assert parse_event_line(line) is None

    def test_deeply_nested_data_ignored(self):
        """Data too deeply nested to decode is ignored like any bad JSON."""
        assert parse_event_line("data: " + "[" * 3000) is None
