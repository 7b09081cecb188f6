"""
Wire protocol: event names, inbound payload schemas and outbound messages.

Every frame exchanged over the WebSocket is a JSON object
`{"event": <name>, "data": {...}}`.
"""

import math
from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.core.exceptions import EventValidationError


class EventType(str, Enum):
    """Events that drive the room state machine."""

    JOIN = "join-room"
    LOAD_VIDEO = "load-video"
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"
    CHAT = "chat"
    REQUEST_SYNC = "request-sync"
    # Never sent by clients: raised when a connection closes
    LEAVE = "leave"


class OutboundEvent(str, Enum):
    """Events sent from the server to clients."""

    CONNECTED = "connected"
    USERS = "users"
    ROOM_STATE = "room-state"
    LOAD_VIDEO = "load-video"
    PLAY = "play"
    PAUSE = "pause"
    SEEK = "seek"
    CHAT = "chat"
    ERROR = "error"


class Audience(Enum):
    """Who receives an outbound message."""

    ROOM = "room"
    ROOM_EXCEPT_SENDER = "room-except-sender"
    SENDER = "sender"


class OutboundMessage(BaseModel):
    """A message produced by a transition, tagged with its audience."""

    event: OutboundEvent
    data: Dict[str, Any] = Field(default_factory=dict)
    audience: Audience = Audience.ROOM

    def frame(self) -> Dict[str, Any]:
        """JSON frame written to the socket."""
        return {"event": self.event.value, "data": self.data}


def error_message(message: str) -> OutboundMessage:
    """Actor-only error notification."""
    return OutboundMessage(event=OutboundEvent.ERROR, data={"message": message}, audience=Audience.SENDER)


# === Inbound payloads ===


class EventPayload(BaseModel):
    """Base for inbound payloads. Unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinRoomPayload(EventPayload):
    room_id: str = Field(default="", alias="roomId")
    name: Optional[str] = None


class LoadVideoPayload(EventPayload):
    video_id: str = Field(default="", alias="videoId")


class TimePayload(EventPayload):
    """Shared by play, pause and seek."""

    time: float = 0.0

    @field_validator("time", mode="before")
    @classmethod
    def _missing_time_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @field_validator("time")
    @classmethod
    def _finite_non_negative(cls, value: float) -> float:
        if math.isnan(value) or math.isinf(value) or value < 0:
            raise ValueError("time must be a finite, non-negative number")
        return value


class ChatPayload(EventPayload):
    text: str = ""


class EmptyPayload(EventPayload):
    """request-sync and leave carry no data."""


PAYLOAD_MODELS: Dict[EventType, Type[EventPayload]] = {
    EventType.JOIN: JoinRoomPayload,
    EventType.LOAD_VIDEO: LoadVideoPayload,
    EventType.PLAY: TimePayload,
    EventType.PAUSE: TimePayload,
    EventType.SEEK: TimePayload,
    EventType.CHAT: ChatPayload,
    EventType.REQUEST_SYNC: EmptyPayload,
    EventType.LEAVE: EmptyPayload,
}


def parse_event(name: Any) -> EventType:
    """
    Resolves a client supplied event name.
    `leave` is internal and cannot be sent by clients.
    """
    try:
        event = EventType(name)
    except ValueError as e:
        raise EventValidationError(f"Unknown event {name}") from e
    if event is EventType.LEAVE:
        raise EventValidationError(f"Unknown event {name}")
    return event


def parse_payload(event: EventType, data: Any) -> EventPayload:
    """Validates raw event data against the schema of the event."""
    model = PAYLOAD_MODELS[event]
    try:
        return model.model_validate(data if data is not None else {})
    except ValidationError as e:
        raise EventValidationError(f"Invalid payload for {event.value}") from e
