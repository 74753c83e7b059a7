"""Signaling channel: authenticates the session and discovers the media endpoint."""

from __future__ import annotations

from typing import ClassVar

from loguru import logger

from app.domain.rtms._channel import RtmsChannel
from app.domain.rtms.channel_state_machine import SignalingStateMachine
from app.domain.rtms.rtms_errors import ProtocolError, TransportError
from app.schemas import SignalingState
from app.schemas.rtms_messages import (
    STATUS_OK,
    ClientReadyAck,
    RtmsMessage,
    SessionStateUpdate,
    SignalingHandshakeRequest,
    SignalingHandshakeResponse,
    StreamStateUpdate,
)


class SignalingChannel(RtmsChannel):
    """State machine for the signaling websocket.

    CONNECTING → AWAITING_HANDSHAKE_ACK → READY → CLOSED | ERROR

    A successful handshake response hands the media URL to the session, which
    starts the media channel. CLIENT_READY_ACK is only ever sent from here, on
    request of the media channel.
    """

    role: ClassVar[str] = "signaling"
    state_machine = SignalingStateMachine

    CONNECTING = SignalingState.CONNECTING
    AWAITING_HANDSHAKE_ACK = SignalingState.AWAITING_HANDSHAKE_ACK
    CLOSED = SignalingState.CLOSED
    ERROR = SignalingState.ERROR

    def build_handshake_request(self) -> SignalingHandshakeRequest:
        return SignalingHandshakeRequest(
            meeting_uuid=self.session.meeting_uuid,
            rtms_stream_id=self.session.stream_id,
            signature=self.session.sign(),
        )

    async def handle_message(self, message: RtmsMessage) -> None:
        if isinstance(message, SignalingHandshakeResponse):
            await self._on_handshake_response(message)
        elif isinstance(message, (StreamStateUpdate, SessionStateUpdate)):
            logger.info(
                f"{self._log_prefix()} state update: msg_type={message.msg_type} "
                f"state={message.state}"
            )
        else:
            logger.debug(f"{self._log_prefix()} ignoring msg_type={message.msg_type}")

    async def _on_handshake_response(self, message: SignalingHandshakeResponse) -> None:
        if self.state != SignalingState.AWAITING_HANDSHAKE_ACK:
            logger.warning(f"{self._log_prefix()} unexpected handshake response in state {self.state}")
            return

        if message.status_code != STATUS_OK:
            raise ProtocolError(
                f"Signaling handshake rejected: status_code={message.status_code} "
                f"reason={message.reason}",
                status_code_received=message.status_code,
            )

        media_url = message.transcript_url()
        if not media_url:
            raise ProtocolError("Signaling handshake response carried no media endpoint")

        self._mark_handshake_complete()
        self._transition(SignalingState.READY)
        logger.info(f"{self._log_prefix()} handshake accepted, media endpoint: {media_url}")

        self.session.start_media(media_url)

    async def send_client_ready_ack(self) -> None:
        """Emit CLIENT_READY_ACK once the media channel handshake succeeded."""
        if self.state != SignalingState.READY:
            raise TransportError(
                f"Cannot send CLIENT_READY_ACK, signaling channel is {self.state}"
            )
        await self._send(ClientReadyAck(rtms_stream_id=self.session.stream_id))
        logger.info(f"{self._log_prefix()} CLIENT_READY_ACK sent")
