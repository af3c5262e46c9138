"""Tests for message validation and the wire event schemas."""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from genielearn.chat.schemas import (
    MAX_CONTENT_LENGTH,
    ChatMessage,
    ErrorEvent,
    MessageEvent,
    SystemEvent,
    SystemKind,
    dump_event,
    parse_inbound,
    parse_outbound,
    validate_content,
)
from genielearn.errors import ValidationFailure


class TestValidateContent:
    def test_trims_whitespace(self):
        assert validate_content("  hi there \n") == "hi there"

    def test_rejects_empty(self):
        with pytest.raises(ValidationFailure):
            validate_content("")

    def test_rejects_whitespace_only(self):
        with pytest.raises(ValidationFailure):
            validate_content(" \t\n ")

    def test_accepts_exactly_max_length(self):
        assert len(validate_content("a" * MAX_CONTENT_LENGTH)) == 1000

    def test_rejects_over_max_length(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_content("a" * (MAX_CONTENT_LENGTH + 1))
        assert exc_info.value.status_code == 400

    def test_length_is_measured_after_trimming(self):
        assert validate_content("  " + "a" * 1000 + "  ") == "a" * 1000

    def test_rejects_non_string(self):
        with pytest.raises(ValidationFailure):
            validate_content(42)


class TestParseInbound:
    def test_message_event(self):
        event = parse_inbound({"type": "message", "content": " hello "})
        assert event.content == "hello"

    def test_missing_content(self):
        with pytest.raises(ValidationFailure, match="content is required"):
            parse_inbound({"type": "message"})

    def test_unknown_type(self):
        with pytest.raises(ValidationFailure, match="Unsupported event type"):
            parse_inbound({"type": "delete", "id": "m1"})

    def test_non_object(self):
        for payload in (None, [], "message", 3):
            with pytest.raises(ValidationFailure):
                parse_inbound(payload)


class TestOutboundEvents:
    def _message(self):
        return ChatMessage(
            id="m1",
            group_id="g1",
            sender_id="u1",
            sender_name="Ada",
            content="hello",
            timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_message_event_matches_persisted_message(self):
        event = MessageEvent.from_message(self._message())
        assert event.to_message() == self._message()

    def test_dump_is_json_ready(self):
        data = dump_event(MessageEvent.from_message(self._message()))
        assert data["type"] == "message"
        assert isinstance(data["timestamp"], str)

    def test_parse_dispatches_on_type(self):
        assert isinstance(parse_outbound(dump_event(SystemEvent(content="x joined", kind=SystemKind.JOINED))), SystemEvent)
        assert isinstance(parse_outbound({"type": "error", "error": "nope", "code": "validation"}), ErrorEvent)
        parsed = parse_outbound(dump_event(MessageEvent.from_message(self._message())))
        assert isinstance(parsed, MessageEvent)
        assert parsed.timestamp == self._message().timestamp

    def test_parse_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            parse_outbound({"type": "typing", "user": "u1"})

    def test_system_event_defaults(self):
        event = SystemEvent(content="Ada left the chat", kind=SystemKind.LEFT)
        assert event.timestamp.tzinfo is not None
        assert dump_event(event)["kind"] == "left"
