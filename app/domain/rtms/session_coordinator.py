"""Session coordinator: maps lifecycle events to RTMS sessions.

The registry is a dict keyed by meeting_uuid. Every create and delete for a
key runs under that key's ``asyncio.Lock``, so concurrent start/stop events
for one meeting are applied one at a time while other meetings proceed.
Locks only live while some call holds or waits on them.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

from app.domain.rtms.session import RtmsSession
from app.domain.rtms.signature import RtmsCredentials
from app.domain.rtms.transcripts import LoggingTranscriptSink, TranscriptSink
from app.domain.rtms.transport import Connector, connect_websocket
from app.schemas import LifecycleEvent, RtmsStartedEvent, RtmsStoppedEvent


class SessionCoordinator:
    def __init__(
        self,
        *,
        credentials: RtmsCredentials | None = None,
        sink: TranscriptSink | None = None,
        connector: Connector = connect_websocket,
        handshake_timeout: float | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            credentials: Zoom client credentials; loaded from config on each
                start when not given, so a missing secret fails that start.
            sink: Consumer of transcript events for every session
            connector: Opens a channel transport for a URL
            handshake_timeout: Seconds to wait for each handshake response;
                None or 0 waits indefinitely
        """
        self._credentials = credentials
        self.sink = sink or LoggingTranscriptSink()
        self._connector = connector
        self._handshake_timeout = handshake_timeout or None

        self._sessions: dict[str, RtmsSession] = {}
        # meeting_uuid -> (lock, number of holders and waiters)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, meeting_uuid: str) -> bool:
        return meeting_uuid in self._sessions

    @asynccontextmanager
    async def _lock_for(self, meeting_uuid: str) -> AsyncIterator[None]:
        """Hold the meeting's lock; the entry is dropped once nobody holds or awaits it."""
        lock, users = self._locks.get(meeting_uuid, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[meeting_uuid] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[meeting_uuid]
            if users == 1:
                del self._locks[meeting_uuid]
            else:
                self._locks[meeting_uuid] = (lock, users - 1)

    def get(self, meeting_uuid: str) -> RtmsSession | None:
        return self._sessions.get(meeting_uuid)

    def list_sessions(self) -> list[dict[str, Any]]:
        return [session.snapshot() for session in self._sessions.values()]

    async def on_start(self, meeting_uuid: str, stream_id: str, endpoint_descriptor: Any) -> bool:
        """Create and start a session unless one already exists for the meeting.

        Returns:
            True if a new session was started

        Raises:
            ConfigurationError: Zoom credentials are not configured
            AppError: the endpoint descriptor holds no usable URL
        """
        async with self._lock_for(meeting_uuid):
            existing = self._sessions.get(meeting_uuid)
            if existing is not None:
                logger.warning(
                    f"[{meeting_uuid}] start ignored, session already exists "
                    f"(stream={existing.stream_id}, state={existing.state})"
                )
                return False

            credentials = self._credentials or RtmsCredentials.from_config()
            session = RtmsSession(
                meeting_uuid,
                stream_id,
                endpoint_descriptor,
                credentials=credentials,
                sink=self.sink,
                connector=self._connector,
                handshake_timeout=self._handshake_timeout,
                on_closed=self._on_session_closed,
            )
            self._sessions[meeting_uuid] = session
            session.start()

        logger.info(f"[{meeting_uuid}] session registered, active sessions: {len(self._sessions)}")
        return True

    async def on_stop(self, meeting_uuid: str) -> bool:
        """Stop and remove the meeting's session.

        Returns:
            True if a session was stopped, False if none existed
        """
        async with self._lock_for(meeting_uuid):
            session = self._sessions.pop(meeting_uuid, None)
            if session is None:
                logger.info(f"[{meeting_uuid}] stop ignored, no session")
                return False
            await session.stop()

        logger.info(f"[{meeting_uuid}] session stopped, active sessions: {len(self._sessions)}")
        return True

    async def dispatch(self, event: LifecycleEvent | None) -> bool:
        """Route a lifecycle event to on_start / on_stop.

        Unrecognized events are logged and ignored.
        """
        if isinstance(event, RtmsStartedEvent):
            return await self.on_start(event.meeting_uuid, event.stream_id, event.endpoint_descriptor)
        if isinstance(event, RtmsStoppedEvent):
            return await self.on_stop(event.meeting_uuid)

        logger.info(f"Ignoring unrecognized lifecycle event: {event!r}")
        return False

    async def aclose(self) -> None:
        """Stop every session."""
        meeting_uuids = list(self._sessions)
        if meeting_uuids:
            await asyncio.gather(*(self.on_stop(m) for m in meeting_uuids), return_exceptions=True)
        logger.info("SessionCoordinator closed")

    async def _on_session_closed(self, session: RtmsSession) -> None:
        async with self._lock_for(session.meeting_uuid):
            # A newer session may already hold this meeting_uuid.
            if self._sessions.get(session.meeting_uuid) is session:
                del self._sessions[session.meeting_uuid]
                logger.info(
                    f"[{session.meeting_uuid}] session removed after {session.state}, "
                    f"active sessions: {len(self._sessions)}"
                )
