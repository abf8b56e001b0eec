"""Unit tests for the wire mapping of chat structures."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from pawchat.core.message import ChatMessage, TypingKind, TypingSignal, to_wire_room_id, to_wire_timestamp


def test_from_event_maps_fields():
    message = ChatMessage.from_event(
        {
            "roomId": "42",
            "senderId": 7,
            "message": "hi",
            "timestamp": "2025-03-01T10:00:00.123Z",
            "senderName": "Alice",
        }
    )

    assert message.room_id == "42"
    assert message.sender_id == "7"
    assert message.body == "hi"
    assert message.sender_display_name == "Alice"
    assert message.sent_at == datetime(2025, 3, 1, 10, 0, 0, 123000, tzinfo=timezone.utc)
    assert message.message_id is None


def test_from_event_without_timestamp_uses_now():
    before = datetime.now(timezone.utc)
    message = ChatMessage.from_event({"roomId": "42", "senderId": "7", "message": "hi"})
    assert message.sent_at >= before


def test_from_event_rejects_missing_body():
    with pytest.raises(ValidationError):
        ChatMessage.from_event({"roomId": "42", "senderId": "7"})


def test_naive_timestamps_are_utc():
    message = ChatMessage(room_id="1", sender_id="2", body="x", sent_at=datetime(2025, 1, 1, 12, 0))
    assert message.sent_at.tzinfo is not None
    assert message.to_event()["timestamp"] == "2025-01-01T12:00:00.000Z"


def test_to_event_shape():
    message = ChatMessage(
        room_id="42",
        sender_id="7",
        body="hi",
        sent_at=datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc),
        sender_display_name="Alice",
    )

    assert message.to_event() == {
        "roomId": 42,
        "senderId": "7",
        "message": "hi",
        "timestamp": "2025-03-01T10:00:00.000Z",
        "senderName": "Alice",
    }


def test_wire_timestamp_converts_to_utc():
    local = datetime(2025, 3, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_wire_timestamp(local) == "2025-03-01T10:00:00.000Z"


def test_typing_signal_round_trip_shape():
    signal = TypingSignal.from_event(TypingKind.STOP_TYPING, {"roomId": 42, "senderId": 7})

    assert signal.room_id == "42"
    assert signal.kind is TypingKind.STOP_TYPING
    assert signal.to_event() == {"roomId": 42, "senderId": "7"}


def test_wire_room_id_matches_gateway_keys():
    # Inbox chat ids are numeric on the gateway; other ids pass through
    assert to_wire_room_id("42") == 42
    assert to_wire_room_id("room-a") == "room-a"
    assert to_wire_room_id("") == ""
