"""In-memory RTMS transports and sinks for testing."""

import asyncio
from collections.abc import Callable

import orjson
import pytest

from app.domain.rtms.rtms_errors import TransportError
from app.domain.rtms.signature import RtmsCredentials
from app.domain.rtms.transcripts import TranscriptEvent, TranscriptSink


async def eventually(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"condition not met within {timeout}s")
        await asyncio.sleep(0.001)


class FakeTransport:
    """ChannelTransport backed by a queue of inbound frames."""

    def __init__(self, url: str):
        self.url = url
        self.sent: list[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, frame: str) -> None:
        if self.closed:
            raise TransportError(f"{self.url} is closed")
        self.sent.append(orjson.loads(frame))

    async def recv(self) -> str | bytes:
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def push(self, message: dict | str | bytes) -> None:
        frame = orjson.dumps(message).decode() if isinstance(message, dict) else message
        self._inbox.put_nowait(frame)

    def drop(self, *, clean: bool = False) -> None:
        """Simulate the peer closing the socket."""
        self._inbox.put_nowait(TransportError(f"{self.url} closed by peer", clean=clean))

    def sent_types(self) -> list[int]:
        return [m["msg_type"] for m in self.sent]


class FakeNetwork:
    """Connector handing out a FakeTransport per URL."""

    def __init__(self):
        self.transports: dict[str, FakeTransport] = {}
        self.refused: set[str] = set()

    async def connect(self, url: str) -> FakeTransport:
        if url in self.refused:
            raise TransportError(f"Failed to connect to {url}: connection refused")
        transport = FakeTransport(url)
        self.transports[url] = transport
        return transport

    async def wait_for(self, url: str, timeout: float = 1.0) -> FakeTransport:
        await eventually(lambda: url in self.transports, timeout)
        return self.transports[url]


class RecordingSink(TranscriptSink):
    def __init__(self):
        self.events: list[TranscriptEvent] = []

    async def handle(self, event: TranscriptEvent) -> None:
        self.events.append(event)


class FailingSink(TranscriptSink):
    def __init__(self):
        self.calls = 0

    async def handle(self, event: TranscriptEvent) -> None:
        self.calls += 1
        raise RuntimeError("sink unavailable")


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def credentials() -> RtmsCredentials:
    return RtmsCredentials(client_id="client_abc", client_secret="secret_xyz")
