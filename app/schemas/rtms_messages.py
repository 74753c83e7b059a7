"""RTMS wire message schemas.

Every frame on the signaling and media websockets is a JSON text frame with an
integer ``msg_type`` discriminator. Inbound frames are decoded with
``parse_message``; outbound frames are rendered with ``encode_message``.

References:
- https://developers.zoom.us/docs/rtms/
"""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Annotated, Any, Literal, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, JsonValue, TypeAdapter, ValidationError

from app.domain.rtms.rtms_errors import MalformedMessage

RTMS_PROTOCOL_VERSION = 1
STATUS_OK = 0


class RtmsMessageType(IntEnum):
    """RTMS msg_type values."""

    SIGNALING_HAND_SHAKE_REQ = 1
    SIGNALING_HAND_SHAKE_RESP = 2
    DATA_HAND_SHAKE_REQ = 3
    DATA_HAND_SHAKE_RESP = 4
    CLIENT_READY_ACK = 7
    STREAM_STATE_UPDATE = 8
    SESSION_STATE_UPDATE = 9
    KEEP_ALIVE_REQ = 12
    KEEP_ALIVE_RESP = 13
    MEDIA_DATA_TRANSCRIPT = 17


class MediaType(IntFlag):
    """Media kinds requested in a data handshake, combined as a bitmask."""

    AUDIO = 1
    VIDEO = 2
    DESKSHARE = 4
    TRANSCRIPT = 8
    CHAT = 16
    ALL = 32


class RtmsMessage(BaseModel):
    # Zoom adds fields over time; keep unknown ones instead of rejecting the frame.
    model_config = ConfigDict(extra="allow")

    msg_type: int


# Outbound


class SignalingHandshakeRequest(RtmsMessage):
    msg_type: Literal[1] = 1
    meeting_uuid: str
    rtms_stream_id: str
    signature: str


class DataHandshakeRequest(RtmsMessage):
    msg_type: Literal[3] = 3
    protocol_version: int = RTMS_PROTOCOL_VERSION
    sequence: int = 0
    meeting_uuid: str
    rtms_stream_id: str
    signature: str
    media_type: int = int(MediaType.TRANSCRIPT)


class ClientReadyAck(RtmsMessage):
    msg_type: Literal[7] = 7
    rtms_stream_id: str


class KeepAliveResponse(RtmsMessage):
    msg_type: Literal[13] = 13
    # Echoed exactly as received
    timestamp: JsonValue


# Inbound


class MediaServerUrls(BaseModel):
    model_config = ConfigDict(extra="allow")

    audio: str | None = None
    video: str | None = None
    transcript: str | None = None
    all: str | None = None


class MediaServer(BaseModel):
    model_config = ConfigDict(extra="allow")

    server_urls: MediaServerUrls = Field(default_factory=MediaServerUrls)


class SignalingHandshakeResponse(RtmsMessage):
    msg_type: Literal[2]
    status_code: int
    reason: str | None = None
    media_server: MediaServer | None = None
    media_url: str | None = None

    def transcript_url(self) -> str | None:
        """Return the media endpoint to use for transcript data.

        Prefers the transcript-specific URL, then the combined ``all`` URL, then
        a flat ``media_url`` field.
        """
        if self.media_server is not None:
            urls = self.media_server.server_urls
            if urls.transcript:
                return urls.transcript
            if urls.all:
                return urls.all
        return self.media_url


class DataHandshakeResponse(RtmsMessage):
    msg_type: Literal[4]
    status_code: int
    reason: str | None = None
    sequence: int | None = None


class StreamStateUpdate(RtmsMessage):
    msg_type: Literal[8]
    state: int | None = None
    reason: int | None = None
    timestamp: int | None = None


class SessionStateUpdate(RtmsMessage):
    msg_type: Literal[9]
    state: int | None = None
    stop_reason: int | None = None
    timestamp: int | None = None


class KeepAliveRequest(RtmsMessage):
    msg_type: Literal[12]
    timestamp: JsonValue


class TranscriptContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_id: int | str | None = None
    user_name: str = ""
    data: str = ""
    timestamp: int | None = None


class TranscriptMessage(RtmsMessage):
    msg_type: Literal[17]
    content: TranscriptContent


InboundMessage = Annotated[
    Union[
        SignalingHandshakeResponse,
        DataHandshakeResponse,
        StreamStateUpdate,
        SessionStateUpdate,
        KeepAliveRequest,
        TranscriptMessage,
    ],
    Field(discriminator="msg_type"),
]

_inbound_adapter: TypeAdapter[Any] = TypeAdapter(InboundMessage)

INBOUND_MESSAGE_TYPES = frozenset(
    {
        RtmsMessageType.SIGNALING_HAND_SHAKE_RESP,
        RtmsMessageType.DATA_HAND_SHAKE_RESP,
        RtmsMessageType.STREAM_STATE_UPDATE,
        RtmsMessageType.SESSION_STATE_UPDATE,
        RtmsMessageType.KEEP_ALIVE_REQ,
        RtmsMessageType.MEDIA_DATA_TRANSCRIPT,
    }
)


def parse_message(frame: str | bytes) -> RtmsMessage:
    """Decode an inbound frame into its typed message.

    Raises:
        MalformedMessage: The frame is not a JSON object, has no integer
            msg_type, carries a msg_type this client does not handle, or does
            not match the payload shape of its msg_type.
    """
    try:
        data = orjson.loads(frame)
    except orjson.JSONDecodeError as exc:
        raise MalformedMessage(f"Undecodable frame: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedMessage(f"Frame is not a JSON object: {type(data).__name__}")

    msg_type = data.get("msg_type")
    if isinstance(msg_type, bool) or not isinstance(msg_type, int):
        raise MalformedMessage(f"Frame has no integer msg_type: {msg_type!r}")

    if msg_type not in INBOUND_MESSAGE_TYPES:
        raise MalformedMessage(f"Unrecognized msg_type {msg_type}", msg_type=msg_type)

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as exc:
        raise MalformedMessage(
            f"Invalid payload for msg_type {msg_type}: {exc}", msg_type=msg_type
        ) from exc


def encode_message(message: RtmsMessage) -> str:
    """Render an outbound message as a JSON text frame."""
    return message.model_dump_json(exclude_none=True)


__all__ = [
    "ClientReadyAck",
    "DataHandshakeRequest",
    "DataHandshakeResponse",
    "InboundMessage",
    "KeepAliveRequest",
    "KeepAliveResponse",
    "MediaServer",
    "MediaServerUrls",
    "MediaType",
    "RTMS_PROTOCOL_VERSION",
    "RtmsMessage",
    "RtmsMessageType",
    "STATUS_OK",
    "SessionStateUpdate",
    "SignalingHandshakeRequest",
    "SignalingHandshakeResponse",
    "StreamStateUpdate",
    "TranscriptContent",
    "TranscriptMessage",
    "encode_message",
    "parse_message",
]
