"""Pydantic models for live websocket message validation."""

from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field

EventValue = Dict[str, Union[str, int, float, bool, None]]


class JoinMessage(BaseModel):
    """Client asks to mount the view at ``path``."""

    type: Literal["join"]
    path: str
    session: Dict[str, Union[str, int, float, bool, None]] = Field(default_factory=dict)


class EventMessage(BaseModel):
    """Client event (click, submit, ...) for the joined view."""

    type: Literal["event"]
    event: str
    value: EventValue = Field(default_factory=dict)


class PingMessage(BaseModel):
    """Live websocket ping message."""

    type: Literal["ping"]


class RenderMessage(BaseModel):
    """Server reply carrying the current render."""

    type: Literal["render"] = "render"
    html: str


class RedirectMessage(BaseModel):
    """Server tells the client to navigate away."""

    type: Literal["redirect"] = "redirect"
    to: str


class PongMessage(BaseModel):
    """Live websocket pong message."""

    type: Literal["pong"] = "pong"


class ErrorMessage(BaseModel):
    """Server reply for a message it could not serve."""

    type: Literal["error"] = "error"
    error: str
    detail: Optional[str] = None


# Union type for all possible incoming messages
ClientMessage = Union[JoinMessage, EventMessage, PingMessage]

# Union type for all possible outgoing messages
ServerMessage = Union[RenderMessage, RedirectMessage, PongMessage, ErrorMessage]


def parse_client_message(data: Dict[str, object]) -> ClientMessage:
    """Parse a client message using the appropriate model based on type."""
    message_type = data.get("type")

    if message_type == "join":
        return JoinMessage.model_validate(data)
    elif message_type == "event":
        return EventMessage.model_validate(data)
    elif message_type == "ping":
        return PingMessage.model_validate(data)
    else:
        raise ValueError(f"Unknown message type: {message_type}")
