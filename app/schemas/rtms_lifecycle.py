"""Zoom lifecycle event schemas.

The meeting service announces RTMS streams through webhook events shaped as
``{"event": "...", "event_ts": 1700000000000, "payload": {...}}``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ZoomEventType(str, Enum):
    """Zoom webhook event types handled by this service."""

    URL_VALIDATION = "endpoint.url_validation"
    RTMS_STARTED = "meeting.rtms_started"
    RTMS_STOPPED = "meeting.rtms_stopped"


class RtmsStartedPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    meeting_uuid: str = Field(..., min_length=1)
    rtms_stream_id: str = Field(..., min_length=1)
    # Opaque endpoint descriptor for the signaling websocket
    server_urls: Any = Field(...)
    operator_id: str | None = None


class RtmsStoppedPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    meeting_uuid: str = Field(..., min_length=1)
    rtms_stream_id: str | None = None
    stop_reason: int | str | None = None


class RtmsStartedEvent(BaseModel):
    event: Literal["meeting.rtms_started"]
    event_ts: int | None = None
    payload: RtmsStartedPayload

    @property
    def meeting_uuid(self) -> str:
        return self.payload.meeting_uuid

    @property
    def stream_id(self) -> str:
        return self.payload.rtms_stream_id

    @property
    def endpoint_descriptor(self) -> Any:
        return self.payload.server_urls


class RtmsStoppedEvent(BaseModel):
    event: Literal["meeting.rtms_stopped"]
    event_ts: int | None = None
    payload: RtmsStoppedPayload

    @property
    def meeting_uuid(self) -> str:
        return self.payload.meeting_uuid


LifecycleEvent = Union[RtmsStartedEvent, RtmsStoppedEvent]


def parse_lifecycle_event(data: dict[str, Any]) -> LifecycleEvent | None:
    """Parse a webhook body into a lifecycle event.

    Returns None when the event kind is not an RTMS lifecycle event.

    Raises:
        pydantic.ValidationError: The kind is recognized but the payload is not.
    """
    event_type = data.get("event")
    if event_type == ZoomEventType.RTMS_STARTED:
        return RtmsStartedEvent.model_validate(data)
    if event_type == ZoomEventType.RTMS_STOPPED:
        return RtmsStoppedEvent.model_validate(data)
    return None
