"""RTMS session: one meeting's signaling channel plus its media channel."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from loguru import logger

from app.domain.rtms.media_channel import MediaChannel
from app.domain.rtms.rtms_errors import TransportError
from app.domain.rtms.signaling_channel import SignalingChannel
from app.domain.rtms.signature import RtmsCredentials
from app.domain.rtms.transcripts import TranscriptSink
from app.domain.rtms.transport import Connector, connect_websocket
from app.schemas import RtmsSessionState
from app.utils.app_errors import AppError, AppErrorCode

SessionClosedCallback = Callable[["RtmsSession"], Awaitable[None]]


def resolve_endpoint(descriptor: Any) -> str:
    """Pick the signaling URL out of an opaque endpoint descriptor.

    A string is used as-is, a list uses its first entry, a mapping prefers the
    ``signaling`` key, then ``all``, then its first value.
    """
    if isinstance(descriptor, str) and descriptor.strip():
        return descriptor.strip()

    if isinstance(descriptor, (list, tuple)) and descriptor:
        return resolve_endpoint(descriptor[0])

    if isinstance(descriptor, Mapping) and descriptor:
        for key in ("signaling", "all"):
            if descriptor.get(key):
                return resolve_endpoint(descriptor[key])
        return resolve_endpoint(next(iter(descriptor.values())))

    raise AppError(
        errcode=AppErrorCode.E_INVALID_REQUEST,
        errmesg=f"No usable signaling endpoint in descriptor: {descriptor!r}",
    )


class RtmsSession:
    """Owns the two channel tasks of one meeting.

    The signaling task is started by ``start()``; the media task is spawned
    when the signaling handshake succeeds. When either task ends on its own
    (ProtocolError, TransportError or remote close) the sibling is cancelled
    and ``on_closed`` is awaited so the coordinator can drop the session.
    ``stop()`` cancels both tasks without waiting for pending I/O.
    """

    def __init__(
        self,
        meeting_uuid: str,
        stream_id: str,
        endpoint_descriptor: Any,
        *,
        credentials: RtmsCredentials,
        sink: TranscriptSink,
        connector: Connector = connect_websocket,
        handshake_timeout: float | None = None,
        on_closed: SessionClosedCallback | None = None,
    ) -> None:
        self.meeting_uuid = meeting_uuid
        self.stream_id = stream_id
        self.signaling_url = resolve_endpoint(endpoint_descriptor)
        self.sink = sink
        self.state = RtmsSessionState.CONNECTING
        self.error: BaseException | None = None

        self._credentials = credentials
        self._connector = connector
        self._handshake_timeout = handshake_timeout
        self._on_closed = on_closed

        self.signaling_channel = SignalingChannel(
            self,
            self.signaling_url,
            connector=connector,
            handshake_timeout=handshake_timeout,
        )
        self.media_channel: MediaChannel | None = None

        self._tasks: dict[str, asyncio.Task] = {}
        self._teardown_task: asyncio.Task | None = None
        self._closing = False
        self._closed = asyncio.Event()

    def __repr__(self) -> str:
        return f"<RtmsSession meeting={self.meeting_uuid} stream={self.stream_id} state={self.state}>"

    def sign(self) -> str:
        """Fresh handshake signature for this session's meeting and stream."""
        return self._credentials.sign(self.meeting_uuid, self.stream_id)

    def start(self) -> None:
        logger.info(f"[{self.meeting_uuid}] starting session, signaling endpoint: {self.signaling_url}")
        self._spawn("signaling", self.signaling_channel)

    def start_media(self, media_url: str) -> None:
        """Open the media channel against the endpoint the signaling handshake returned."""
        if self._closing:
            logger.info(f"[{self.meeting_uuid}] session closing, not starting media channel")
            return
        if self.media_channel is not None:
            logger.warning(f"[{self.meeting_uuid}] media channel already started")
            return

        self.media_channel = MediaChannel(
            self,
            media_url,
            connector=self._connector,
            handshake_timeout=self._handshake_timeout,
        )
        self._spawn("media", self.media_channel)

    async def send_client_ready_ack(self) -> None:
        await self.signaling_channel.send_client_ready_ack()
        if self.state == RtmsSessionState.CONNECTING:
            self.state = RtmsSessionState.STREAMING

    async def stop(self) -> None:
        """Cancel both channels and mark the session stopped."""
        if self._closing:
            await self._closed.wait()
            return

        self._closing = True
        logger.info(f"[{self.meeting_uuid}] stopping session")
        await self._cancel_channels()
        self.state = RtmsSessionState.STOPPED
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def snapshot(self) -> dict[str, Any]:
        media = self.media_channel
        return {
            "meeting_uuid": self.meeting_uuid,
            "stream_id": self.stream_id,
            "state": self.state.value,
            "signaling_state": self.signaling_channel.state.value,
            "media_state": media.state.value if media else None,
            "signaling_url": self.signaling_url,
            "media_url": media.url if media else None,
            "transcripts_delivered": media.transcripts_delivered if media else 0,
        }

    def _spawn(self, name: str, channel: SignalingChannel | MediaChannel) -> None:
        task = asyncio.create_task(channel.run(), name=f"rtms-{name}:{self.meeting_uuid}")
        self._tasks[name] = task
        task.add_done_callback(self._on_channel_done)

    def _on_channel_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return

        exc = task.exception()
        if self._closing:
            if exc is not None:
                logger.debug(f"[{self.meeting_uuid}] {task.get_name()} ended during close: {exc}")
            return

        self._closing = True
        self._teardown_task = asyncio.create_task(
            self._teardown(exc), name=f"rtms-teardown:{self.meeting_uuid}"
        )

    async def _teardown(self, exc: BaseException | None) -> None:
        if exc is None or (isinstance(exc, TransportError) and exc.clean):
            self.state = RtmsSessionState.STOPPED
            logger.info(f"[{self.meeting_uuid}] remote closed the session")
        else:
            self.state = RtmsSessionState.FAILED
            self.error = exc
            logger.error(f"[{self.meeting_uuid}] session failed: {type(exc).__name__}: {exc}")

        await self._cancel_channels()
        self._closed.set()

        if self._on_closed is not None:
            try:
                await self._on_closed(self)
            except Exception:
                logger.exception(f"[{self.meeting_uuid}] session close callback failed")

    async def _cancel_channels(self) -> None:
        # Media first: it never outlives its signaling channel.
        tasks = [
            task
            for name in ("media", "signaling")
            if (task := self._tasks.get(name)) is not None and not task.done()
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
