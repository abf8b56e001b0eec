"""
Define chat structures to ensure consistency between the REST API,
the live transport and the in-memory store.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EventName(str, Enum):
    """Live transport event names."""

    JOIN_CHAT = "join_chat"
    SEND_MESSAGE = "send_message"
    RECEIVE_MESSAGE = "receive_message"
    TYPING = "typing"
    STOP_TYPING = "stop_typing"


class TypingKind(str, Enum):
    """Kinds of typing signal exchanged over the transport."""

    TYPING = "typing"
    STOP_TYPING = "stop_typing"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_wire_timestamp(value: datetime) -> str:
    """ISO-8601 UTC with milliseconds and a Z suffix."""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_wire_room_id(room_id: str) -> Union[int, str]:
    """
    Room id as the gateway keys its rooms: chat ids are numeric there, and
    Socket.IO treats 42 and "42" as different rooms.
    """
    return int(room_id) if room_id.isascii() and room_id.isdigit() else room_id


def _stringify(value: Any) -> Any:
    # The gateway mixes numeric and string ids
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class ChatMessage(BaseModel):
    """Message structure in the client."""

    room_id: str
    sender_id: str
    body: str
    sent_at: datetime = Field(default_factory=utc_now)
    sender_display_name: Optional[str] = None
    # Persisted id, only when the gateway supplies one
    message_id: Optional[str] = None

    @field_validator("room_id", "sender_id", "message_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _stringify(value)

    @field_validator("sent_at", mode="before")
    @classmethod
    def _default_now(cls, value: Any) -> Any:
        return utc_now() if value is None else value

    @field_validator("sent_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_history(cls, room_id: str, record: Dict[str, Any]) -> "ChatMessage":
        """Builds a message from a persisted record of GET /chat/{roomId}."""
        sender = record.get("sender") or {}
        return cls.model_validate(
            {
                "room_id": room_id,
                "sender_id": record.get("senderId"),
                "body": record.get("messageText"),
                "sent_at": record.get("createdAt"),
                "sender_display_name": sender.get("fullName"),
                "message_id": record.get("id"),
            }
        )

    @classmethod
    def from_event(cls, payload: Dict[str, Any]) -> "ChatMessage":
        """Builds a message from a receive_message payload."""
        return cls.model_validate(
            {
                "room_id": payload.get("roomId"),
                "sender_id": payload.get("senderId"),
                "body": payload.get("message"),
                "sent_at": payload.get("timestamp"),
                "sender_display_name": payload.get("senderName"),
                "message_id": payload.get("id"),
            }
        )

    def to_event(self) -> Dict[str, Any]:
        """Payload of a send_message emit."""
        return {
            "roomId": to_wire_room_id(self.room_id),
            "senderId": self.sender_id,
            "message": self.body,
            "timestamp": to_wire_timestamp(self.sent_at),
            "senderName": self.sender_display_name,
        }


class TypingSignal(BaseModel):
    """Ephemeral typing notification. Never stored."""

    room_id: str
    sender_id: str
    kind: TypingKind

    @field_validator("room_id", "sender_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return _stringify(value)

    @classmethod
    def from_event(cls, kind: TypingKind, payload: Dict[str, Any]) -> "TypingSignal":
        return cls.model_validate(
            {"room_id": payload.get("roomId"), "sender_id": payload.get("senderId"), "kind": kind}
        )

    def to_event(self) -> Dict[str, Any]:
        return {"roomId": to_wire_room_id(self.room_id), "senderId": self.sender_id}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Participant(_CamelModel):
    """A user taking part in a conversation."""

    id: str
    full_name: str = ""
    role: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return _stringify(value)


class LastMessage(_CamelModel):
    text: str = ""
    created_at: Optional[datetime] = None


class ChatSummary(_CamelModel):
    """One row of the inbox returned by GET /chat."""

    id: str
    pet_name: str = ""
    pet_image: Optional[str] = None
    other_participant: Participant
    last_message: Optional[LastMessage] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return _stringify(value)


@dataclass(frozen=True)
class RoomEvent:
    """
    Item delivered on a room subscription channel.
    Exactly one of message / signal is set.
    """

    room_id: str
    message: Optional[ChatMessage] = None
    signal: Optional[TypingSignal] = None
