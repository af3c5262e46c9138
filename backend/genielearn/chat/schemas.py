"""Message model and WebSocket event schemas for group chat.

Wire protocol (JSON text frames):

    Client → Server
        {"type": "message", "content": "<1..1000 chars>"}

    Server → Client
        {"type": "message", "id", "group_id", "content", "sender_id",
         "sender_name", "timestamp"}
        {"type": "system", "content", "timestamp", "kind"}
        {"type": "error", "error", "code"}

Outbound events form a discriminated union on ``type``; anything with an
unrecognized ``type`` is rejected rather than passed through.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from genielearn.errors import ValidationFailure

# Maximum message length after trimming
MAX_CONTENT_LENGTH = 1000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_content(content: Any) -> str:
    """Trim and check message content.

    Returns:
        The trimmed content.

    Raises:
        ValidationFailure: If content is not a string, is empty after
            trimming, or is longer than MAX_CONTENT_LENGTH.
    """
    if not isinstance(content, str):
        raise ValidationFailure("Message content must be text.")
    trimmed = content.strip()
    if not trimmed:
        raise ValidationFailure("Message content cannot be empty.")
    if len(trimmed) > MAX_CONTENT_LENGTH:
        raise ValidationFailure(
            f"Message is too long ({len(trimmed)} characters, "
            f"maximum is {MAX_CONTENT_LENGTH})."
        )
    return trimmed


# =============================================================================
# Data Models
# =============================================================================


class SystemKind(str, Enum):
    """Kind of membership notice carried by a system event."""
    JOINED = "joined"
    LEFT = "left"


class ChatMessage(BaseModel):
    """A persisted chat message.

    ``id`` and ``timestamp`` are assigned by the message store. The sender's
    display name is captured at send time and never re-joined.
    """
    id: str = Field(..., description="Unique message ID")
    group_id: str = Field(..., description="Group this message belongs to")
    sender_id: str = Field(..., description="User ID of the sender")
    sender_name: str = Field(default="", description="Sender display name at send time")
    content: str = Field(..., description="Message text")
    timestamp: datetime = Field(..., description="Server-assigned persist time (UTC)")
    is_system: bool = Field(default=False, description="True for membership notices")
    system_kind: Optional[SystemKind] = Field(default=None)


# =============================================================================
# Inbound events (client → server)
# =============================================================================


class SendMessageEvent(BaseModel):
    type: Literal["message"] = "message"
    content: str


_INBOUND: Dict[str, Type[BaseModel]] = {
    "message": SendMessageEvent,
}

InboundEvent = SendMessageEvent


def parse_inbound(payload: Any) -> InboundEvent:
    """Validate a decoded client frame.

    Raises:
        ValidationFailure: For non-object payloads, unknown event types, or
            payloads whose fields do not match the event schema.
    """
    if not isinstance(payload, dict):
        raise ValidationFailure("Invalid event: expected a JSON object.")
    event_type = payload.get("type")
    model = _INBOUND.get(event_type)
    if model is None:
        raise ValidationFailure(f"Unsupported event type: {event_type!r}.")
    try:
        event = model.model_validate(payload)
    except ValidationError:
        raise ValidationFailure("Invalid message format: content is required.")
    event.content = validate_content(event.content)
    return event


# =============================================================================
# Outbound events (server → client)
# =============================================================================


class MessageEvent(BaseModel):
    type: Literal["message"] = "message"
    id: str
    group_id: str
    content: str
    sender_id: str
    sender_name: str
    timestamp: datetime

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageEvent":
        return cls(
            id=message.id,
            group_id=message.group_id,
            content=message.content,
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            timestamp=message.timestamp,
        )

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            id=self.id,
            group_id=self.group_id,
            sender_id=self.sender_id,
            sender_name=self.sender_name,
            content=self.content,
            timestamp=self.timestamp,
        )


class SystemEvent(BaseModel):
    type: Literal["system"] = "system"
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    kind: Optional[SystemKind] = None


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str
    code: str = "internal"


OutboundEvent = Annotated[
    Union[MessageEvent, SystemEvent, ErrorEvent],
    Field(discriminator="type"),
]

_outbound_adapter: TypeAdapter = TypeAdapter(OutboundEvent)


def parse_outbound(payload: Any) -> Union[MessageEvent, SystemEvent, ErrorEvent]:
    """Validate a decoded server frame (used by the chat client).

    Raises:
        pydantic.ValidationError: If the payload matches no known event.
    """
    return _outbound_adapter.validate_python(payload)


def dump_event(event: BaseModel) -> dict:
    """JSON-ready dict for sending over a socket."""
    return event.model_dump(mode="json")
