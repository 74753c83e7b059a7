"""Websocket transport for RTMS channels.

Channels talk to a ``ChannelTransport`` obtained from a ``Connector``; the
default connector opens a real websocket, tests inject in-memory fakes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import websockets
from loguru import logger

from app.domain.rtms.rtms_errors import TransportError

CLOSE_TIMEOUT_SECONDS = 2.0


class ChannelTransport(Protocol):
    async def send(self, frame: str) -> None: ...

    async def recv(self) -> str | bytes:
        """Return the next inbound frame; raise TransportError once closed."""
        ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[ChannelTransport]]


class WebsocketTransport:
    """ChannelTransport over a ``websockets`` client connection."""

    def __init__(self, url: str, websocket) -> None:
        self.url = url
        self._websocket = websocket

    async def send(self, frame: str) -> None:
        try:
            await self._websocket.send(frame)
        except websockets.exceptions.ConnectionClosed as exc:
            raise _closed_error(self.url, exc) from exc
        except OSError as exc:
            raise TransportError(f"Socket error sending to {self.url}: {exc}") from exc

    async def recv(self) -> str | bytes:
        try:
            return await self._websocket.recv()
        except websockets.exceptions.ConnectionClosed as exc:
            raise _closed_error(self.url, exc) from exc
        except OSError as exc:
            raise TransportError(f"Socket error reading from {self.url}: {exc}") from exc

    async def close(self) -> None:
        try:
            await self._websocket.close()
        except Exception as exc:
            logger.debug(f"Ignoring error while closing websocket {self.url}: {exc}")


def _closed_error(url: str, exc: websockets.exceptions.ConnectionClosed) -> TransportError:
    clean = isinstance(exc, websockets.exceptions.ConnectionClosedOK)
    return TransportError(f"Connection to {url} closed: {exc}", clean=clean)


async def connect_websocket(url: str) -> WebsocketTransport:
    """Open a websocket to ``url``.

    Raises:
        TransportError: the connection could not be established
    """
    try:
        websocket = await websockets.connect(url, close_timeout=CLOSE_TIMEOUT_SECONDS)
    except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as exc:
        raise TransportError(f"Failed to connect to {url}: {exc}") from exc

    logger.debug(f"Websocket connected: {url}")
    return WebsocketTransport(url, websocket)
