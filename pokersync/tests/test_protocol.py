"""
Tests for the wire protocol.

Tests:
- Inbound parsing and its error classes
- Outbound parsing tolerance
- Wire field names
"""

import json

import pytest

from ..errors import InvalidPayloadError, ProtocolViolation
from ..protocol.events import (
    INBOUND_TAGS,
    OUTBOUND_TAGS,
    IdentifyMessage,
    IdentifyPayload,
    LeaveMessage,
    UserLeftEvent,
    UserLeftPayload,
    VoteMessage,
    VoteSubmittedEvent,
    dump_event,
    error_event,
    parse_inbound,
    parse_outbound,
)


class TestParseInbound:
    """Tests for client message parsing."""

    def test_identify_from_json(self):
        message = parse_inbound('{"type": "identify", "payload": {"displayName": "Alice", "userId": "u1"}}')

        assert isinstance(message, IdentifyMessage)
        assert message.payload.display_name == "Alice"
        assert message.payload.user_id == "u1"

    def test_identify_accepts_user_name_alias(self):
        message = parse_inbound({"type": "identify", "payload": {"userName": "Bob"}})
        assert message.payload.display_name == "Bob"

    def test_vote_accepts_vote_alias(self):
        message = parse_inbound({"type": "vote", "payload": {"itemId": "item-1", "vote": "5"}})

        assert isinstance(message, VoteMessage)
        assert message.payload.token == "5"

    def test_leave_without_payload(self):
        assert isinstance(parse_inbound({"type": "leave"}), LeaveMessage)

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"payload": {}}',
        '{"type": 7}',
        '{"type": "launch_rockets", "payload": {}}',
        b"\x80abc",
        pytest.param("[" * 100000 + "]" * 100000, id="deep-nesting"),
    ])
    def test_protocol_violations(self, raw):
        with pytest.raises(ProtocolViolation):
            parse_inbound(raw)

    def test_outbound_tag_is_not_inbound(self):
        with pytest.raises(ProtocolViolation):
            parse_inbound({"type": "welcome", "payload": {}})

    def test_bad_payload_is_invalid_payload(self):
        with pytest.raises(InvalidPayloadError) as exc:
            parse_inbound({"type": "vote", "payload": {"itemId": "item-1"}})
        assert "token" in exc.value.message

    def test_bad_payload_is_not_protocol_violation(self):
        with pytest.raises(InvalidPayloadError):
            parse_inbound({"type": "reveal_votes", "payload": {}})


class TestParseOutbound:
    """Outbound parsing never raises."""

    def test_unknown_tag(self):
        assert parse_outbound({"type": "confetti", "payload": {}}) is None

    def test_malformed_payload(self):
        assert parse_outbound({"type": "vote_submitted", "payload": {"itemId": 3}}) is None

    def test_garbage(self):
        assert parse_outbound("}{") is None
        assert parse_outbound("null") is None

    @pytest.mark.parametrize("raw", [
        b"\x80abc",
        b'{"type": "welcome\xff"}',
        pytest.param("[" * 100000 + "]" * 100000, id="deep-nesting"),
    ])
    def test_undecodable(self, raw):
        assert parse_outbound(raw) is None

    def test_vote_submitted(self):
        event = parse_outbound({
            "type": "vote_submitted",
            "payload": {"itemId": "item-1", "userId": "bob", "hasVoted": True},
        })
        assert isinstance(event, VoteSubmittedEvent)
        assert event.payload.user_id == "bob"


class TestWireFormat:
    """Tests for serialized field names."""

    def test_dump_uses_camel_case(self):
        data = dump_event(UserLeftEvent(payload=UserLeftPayload(user_id="bob", host_id="carol")))

        assert data == {
            "type": "user_left",
            "payload": {"userId": "bob", "hostId": "carol", "removed": False},
        }

    def test_error_event(self):
        data = dump_event(error_event("Only the host can do that", code="NOT_HOST"))
        assert data["payload"] == {"error": "Only the host can do that", "code": "NOT_HOST"}

    def test_client_identify_reparses(self):
        message = IdentifyMessage(payload=IdentifyPayload(display_name="Alice"))
        text = json.dumps(dump_event(message))

        assert '"displayName"' in text
        assert parse_inbound(text).payload.display_name == "Alice"

    def test_tag_sets_are_disjoint(self):
        assert INBOUND_TAGS.isdisjoint(OUTBOUND_TAGS)
