"""Transcript events and the sinks that consume them.

Classes:
    - TranscriptEvent: one decoded MEDIA_DATA_TRANSCRIPT frame
    - TranscriptSink: consumer interface for transcript events
    - LoggingTranscriptSink: writes each transcript line to the log
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from loguru import logger

from app.schemas.rtms_messages import TranscriptMessage


@dataclass(frozen=True)
class TranscriptEvent:
    """A single transcript line, decoupled from the wire format."""

    meeting_uuid: str
    stream_id: str
    user_name: str
    text: str
    timestamp: int | None = None
    user_id: int | str | None = None

    @property
    def user(self) -> str:
        return self.user_name

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8"))

    @classmethod
    def from_message(
        cls, message: TranscriptMessage, *, meeting_uuid: str, stream_id: str
    ) -> TranscriptEvent:
        content = message.content
        return cls(
            meeting_uuid=meeting_uuid,
            stream_id=stream_id,
            user_name=content.user_name,
            text=content.data,
            timestamp=content.timestamp,
            user_id=content.user_id,
        )


class TranscriptSink(ABC):
    """Consumer of transcript events."""

    @abstractmethod
    async def handle(self, event: TranscriptEvent) -> None:
        """Consume one transcript event."""


class LoggingTranscriptSink(TranscriptSink):
    async def handle(self, event: TranscriptEvent) -> None:
        logger.info(f"[{event.meeting_uuid}] {event.user_name}: {event.text}")
        logger.debug(f"[{event.meeting_uuid}] bytes={event.size} sent_at={event.timestamp}")
