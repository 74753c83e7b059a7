"""Pydantic schemas for RTMS wire messages, lifecycle events and states."""

from .rtms_lifecycle import (
    LifecycleEvent,
    RtmsStartedEvent,
    RtmsStoppedEvent,
    ZoomEventType,
    parse_lifecycle_event,
)
from .rtms_messages import MediaType, RtmsMessageType
from .rtms_state import MediaState, RtmsSessionState, SignalingState

__all__ = [
    "LifecycleEvent",
    "MediaState",
    "MediaType",
    "RtmsMessageType",
    "RtmsSessionState",
    "RtmsStartedEvent",
    "RtmsStoppedEvent",
    "SignalingState",
    "ZoomEventType",
    "parse_lifecycle_event",
]
