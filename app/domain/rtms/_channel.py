"""Shared run loop for the signaling and media channels."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from loguru import logger

from app.domain.rtms.channel_state_machine import ChannelStateMachine
from app.domain.rtms.rtms_errors import MalformedMessage, TransportError
from app.domain.rtms.transport import ChannelTransport, Connector
from app.schemas.rtms_messages import (
    KeepAliveRequest,
    KeepAliveResponse,
    RtmsMessage,
    encode_message,
    parse_message,
)

if TYPE_CHECKING:
    from app.domain.rtms.session import RtmsSession


class RtmsChannel:
    """One websocket of an RTMS session, driven by its own task.

    The run loop connects, sends the handshake request as the first outbound
    frame, then consumes inbound frames until the transport closes or the task
    is cancelled. Keep-alive requests are answered here so both channels echo
    them on their own socket. Subclasses build the handshake request and
    handle the remaining message types.
    """

    role: ClassVar[str] = "channel"
    state_machine: ClassVar[type[ChannelStateMachine]] = ChannelStateMachine

    CONNECTING: ClassVar[Enum]
    AWAITING_HANDSHAKE_ACK: ClassVar[Enum]
    CLOSED: ClassVar[Enum]
    ERROR: ClassVar[Enum]

    def __init__(
        self,
        session: RtmsSession,
        url: str,
        *,
        connector: Connector,
        handshake_timeout: float | None = None,
    ) -> None:
        self.session = session
        self.url = url
        self.state = self.CONNECTING
        self._connector = connector
        self._handshake_timeout = handshake_timeout or None
        self._handshake_deadline: float | None = None
        self._handshake_complete = False
        self._transport: ChannelTransport | None = None
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} meeting={self.session.meeting_uuid} state={self.state}>"

    @property
    def is_terminal(self) -> bool:
        return self.state_machine.is_terminal(self.state)

    def _log_prefix(self) -> str:
        return f"[{self.session.meeting_uuid}] {self.role}"

    def _transition(self, new_state: Enum) -> bool:
        if self.state == new_state:
            return True
        if not self.state_machine.can_transition(self.state, new_state):
            valid = sorted(str(s) for s in self.state_machine.get_valid_transitions(self.state))
            logger.warning(
                f"{self._log_prefix()} refused transition {self.state} -> {new_state} (valid: {valid})"
            )
            return False
        logger.debug(f"{self._log_prefix()} {self.state} -> {new_state}")
        self.state = new_state
        return True

    def build_handshake_request(self) -> RtmsMessage:
        raise NotImplementedError

    async def handle_message(self, message: RtmsMessage) -> None:
        raise NotImplementedError

    async def run(self) -> None:
        """Drive the channel until it closes.

        Raises:
            TransportError: connection failed, dropped, or the handshake timed out
            ProtocolError: the handshake was rejected
        """
        try:
            self._transport = await self._connector(self.url)
            logger.info(f"{self._log_prefix()} channel connected: {self.url}")

            await self._send(self.build_handshake_request())
            self._transition(self.AWAITING_HANDSHAKE_ACK)
            if self._handshake_timeout is not None:
                self._handshake_deadline = asyncio.get_running_loop().time() + self._handshake_timeout

            while True:
                frame = await self._recv()
                try:
                    message = parse_message(frame)
                except MalformedMessage as exc:
                    logger.warning(f"{self._log_prefix()} ignoring frame: {exc.errmesg}")
                    continue
                await self._dispatch(message)

        except asyncio.CancelledError:
            self._transition(self.CLOSED)
            logger.info(f"{self._log_prefix()} channel cancelled")
            raise
        except TransportError as exc:
            self._transition(self.CLOSED if exc.clean else self.ERROR)
            raise
        except Exception:
            self._transition(self.ERROR)
            raise
        finally:
            await self._close_transport()

    async def close(self) -> None:
        self._transition(self.CLOSED)
        await self._close_transport()

    async def _dispatch(self, message: RtmsMessage) -> None:
        if isinstance(message, KeepAliveRequest):
            await self._send(KeepAliveResponse(timestamp=message.timestamp))
            logger.debug(f"{self._log_prefix()} keep-alive answered: timestamp={message.timestamp}")
            return
        await self.handle_message(message)

    def _mark_handshake_complete(self) -> None:
        self._handshake_complete = True
        self._handshake_deadline = None

    async def _recv(self) -> str | bytes:
        assert self._transport is not None, "transport not connected"
        if self._handshake_deadline is None or self._handshake_complete:
            return await self._transport.recv()

        remaining = max(0.0, self._handshake_deadline - asyncio.get_running_loop().time())
        try:
            return await asyncio.wait_for(self._transport.recv(), timeout=remaining)
        except TimeoutError as exc:
            raise TransportError(
                f"{self.role} handshake not acknowledged within {self._handshake_timeout}s"
            ) from exc

    async def _send(self, message: RtmsMessage) -> None:
        if self._transport is None or self.is_terminal:
            raise TransportError(f"{self.role} channel is not open (state={self.state})")
        frame = encode_message(message)
        async with self._send_lock:
            await self._transport.send(frame)
        logger.debug(f"{self._log_prefix()} sent msg_type={message.msg_type}")

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
