"""
duet/protocol.py - Wire messages for the signaling socket.

Every frame is a JSON object tagged by "type". Inbound frames are parsed
into a discriminated union; anything that doesn't fit raises ProtocolError
and never reaches the state machine.

Inbound:
    {"type": "ready"}
    {"type": "signal", "payload": {"kind": "offer"|"answer"|"ice", "data": ...}}
    {"type": "leave"}
    {"type": "pong"}

Outbound:
    {"type": "status", "payload": {"message": str}}
    {"type": "match", "payload": {"partnerId": str, "role": "offerer"|"answerer"}}
    {"type": "signal", "payload": <relayed as-is>}
    {"type": "partner_left"}
    {"type": "error", "payload": {"message": str}}
    {"type": "ping"}
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class ProtocolError(ValueError):
    """Raised when an inbound frame can't be turned into a known message."""


# ============================================================================
# Inbound
# ============================================================================


class ReadyMessage(BaseModel):
    type: Literal["ready"]


class SignalMessage(BaseModel):
    type: Literal["signal"]
    # Opaque negotiation blob. Never validated beyond being present.
    payload: Any


class LeaveMessage(BaseModel):
    type: Literal["leave"]


class PongMessage(BaseModel):
    type: Literal["pong"]


InboundMessage = Annotated[
    Union[ReadyMessage, SignalMessage, LeaveMessage, PongMessage],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> ReadyMessage | SignalMessage | LeaveMessage | PongMessage:
    """Decode one text frame. Raises ProtocolError with a client-facing message."""
    try:
        data = json.loads(raw)
    except (ValueError, TypeError):
        raise ProtocolError("Invalid JSON payload")

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ProtocolError("Message must be an object with a type")

    try:
        return _inbound.validate_python(data)
    except ValidationError as e:
        # Unknown tag vs. known tag with a bad body
        if any(err["type"] == "union_tag_invalid" for err in e.errors()):
            raise ProtocolError("Unknown message type")
        raise ProtocolError(f"Malformed {data['type']} message")


# ============================================================================
# Outbound
# ============================================================================


class StatusPayload(BaseModel):
    message: str


class MatchPayload(BaseModel):
    partnerId: str
    role: Literal["offerer", "answerer"]


class StatusMessage(BaseModel):
    type: Literal["status"] = "status"
    payload: StatusPayload


class MatchMessage(BaseModel):
    type: Literal["match"] = "match"
    payload: MatchPayload


class PartnerLeftMessage(BaseModel):
    type: Literal["partner_left"] = "partner_left"


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    payload: StatusPayload


class PingMessage(BaseModel):
    type: Literal["ping"] = "ping"


def status(message: str) -> dict[str, Any]:
    return StatusMessage(payload=StatusPayload(message=message)).model_dump()


def error(message: str) -> dict[str, Any]:
    return ErrorMessage(payload=StatusPayload(message=message)).model_dump()


def match(partner_id: str, role: Literal["offerer", "answerer"]) -> dict[str, Any]:
    return MatchMessage(payload=MatchPayload(partnerId=partner_id, role=role)).model_dump()


def signal(payload: Any) -> dict[str, Any]:
    # Built by hand: a model_dump round-trip could coerce the opaque payload.
    return {"type": "signal", "payload": payload}


def partner_left() -> dict[str, Any]:
    return PartnerLeftMessage().model_dump()


def ping() -> dict[str, Any]:
    return PingMessage().model_dump()
