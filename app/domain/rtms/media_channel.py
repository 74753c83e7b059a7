"""Media channel: negotiates and streams transcript data."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, ClassVar

from loguru import logger

from app.domain.rtms._channel import RtmsChannel
from app.domain.rtms.channel_state_machine import MediaStateMachine
from app.domain.rtms.rtms_errors import ProtocolError
from app.domain.rtms.transcripts import TranscriptEvent
from app.domain.rtms.transport import Connector
from app.schemas import MediaState
from app.schemas.rtms_messages import (
    STATUS_OK,
    DataHandshakeRequest,
    DataHandshakeResponse,
    MediaType,
    RtmsMessage,
    TranscriptMessage,
)

if TYPE_CHECKING:
    from app.domain.rtms.session import RtmsSession


class MediaChannel(RtmsChannel):
    """State machine for the media websocket.

    CONNECTING → AWAITING_HANDSHAKE_ACK → READY_ACK_SENT → STREAMING → CLOSED | ERROR

    On a successful data handshake the session is asked to emit
    CLIENT_READY_ACK on the signaling channel; the ack never travels on this
    socket. Transcript frames are delivered to the session's sink in arrival
    order.
    """

    role: ClassVar[str] = "media"
    state_machine = MediaStateMachine

    # Upper bound per sink delivery; keep-alives wait behind it
    sink_timeout: ClassVar[float] = 5.0

    CONNECTING = MediaState.CONNECTING
    AWAITING_HANDSHAKE_ACK = MediaState.AWAITING_HANDSHAKE_ACK
    CLOSED = MediaState.CLOSED
    ERROR = MediaState.ERROR

    def __init__(
        self,
        session: RtmsSession,
        url: str,
        *,
        connector: Connector,
        handshake_timeout: float | None = None,
        media_types: MediaType = MediaType.TRANSCRIPT,
    ) -> None:
        super().__init__(session, url, connector=connector, handshake_timeout=handshake_timeout)
        self.media_types = media_types
        self.transcripts_delivered = 0

    def build_handshake_request(self) -> DataHandshakeRequest:
        return DataHandshakeRequest(
            meeting_uuid=self.session.meeting_uuid,
            rtms_stream_id=self.session.stream_id,
            signature=self.session.sign(),
            media_type=int(self.media_types),
        )

    async def handle_message(self, message: RtmsMessage) -> None:
        if isinstance(message, DataHandshakeResponse):
            await self._on_handshake_response(message)
        elif isinstance(message, TranscriptMessage):
            await self._on_transcript(message)
        else:
            logger.debug(f"{self._log_prefix()} ignoring msg_type={message.msg_type}")

    async def _on_handshake_response(self, message: DataHandshakeResponse) -> None:
        if self.state != MediaState.AWAITING_HANDSHAKE_ACK:
            logger.warning(f"{self._log_prefix()} unexpected handshake response in state {self.state}")
            return

        if message.status_code != STATUS_OK:
            raise ProtocolError(
                f"Media handshake rejected: status_code={message.status_code} "
                f"reason={message.reason}",
                status_code_received=message.status_code,
            )

        self._mark_handshake_complete()
        logger.info(f"{self._log_prefix()} handshake accepted, acknowledging on signaling")
        await self.session.send_client_ready_ack()
        self._transition(MediaState.READY_ACK_SENT)

    async def _on_transcript(self, message: TranscriptMessage) -> None:
        if self.state not in (MediaState.READY_ACK_SENT, MediaState.STREAMING):
            logger.warning(f"{self._log_prefix()} dropping transcript received in state {self.state}")
            return

        self._transition(MediaState.STREAMING)
        event = TranscriptEvent.from_message(
            message,
            meeting_uuid=self.session.meeting_uuid,
            stream_id=self.session.stream_id,
        )
        try:
            await asyncio.wait_for(self.session.sink.handle(event), timeout=self.sink_timeout)
        except TimeoutError:
            logger.warning(
                f"{self._log_prefix()} transcript sink exceeded {self.sink_timeout}s, event dropped"
            )
        except Exception:
            logger.exception(f"{self._log_prefix()} transcript sink failed")
        else:
            self.transcripts_delivered += 1
