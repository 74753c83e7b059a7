"""Tests for the media channel: data handshake, ready ack and transcript delivery."""

import asyncio

import pytest

from app.domain.rtms.media_channel import MediaChannel
from app.domain.rtms.rtms_errors import ProtocolError, TransportError
from app.domain.rtms.session import RtmsSession
from app.domain.rtms.transcripts import TranscriptSink
from app.schemas import MediaState, RtmsSessionState, SignalingState
from tests.fixtures.rtms_fixtures import FailingSink, eventually


def _session(network, sink, credentials) -> RtmsSession:
    return RtmsSession(
        "abc", "xyz", "sig://A", credentials=credentials, sink=sink, connector=network.connect
    )


async def _open_media(session, network):
    session.start()
    signaling = await network.wait_for("sig://A")
    signaling.push({"msg_type": 2, "status_code": 0, "media_url": "media://B"})
    media = await network.wait_for("media://B")
    await eventually(lambda: len(media.sent) == 1)
    return signaling, media


def _transcript(text: str, user_name: str = "Alice") -> dict:
    return {
        "msg_type": 17,
        "content": {"user_id": 1, "user_name": user_name, "data": text, "timestamp": 1700000000},
    }


class TestDataHandshake:
    @pytest.mark.asyncio
    async def test_requests_transcript_media(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        signaling, media = await _open_media(session, network)

        request = media.sent[0]
        assert request["msg_type"] == 3
        assert request["media_type"] == 8
        assert request["meeting_uuid"] == "abc"
        assert request["rtms_stream_id"] == "xyz"
        assert request["signature"] == signaling.sent[0]["signature"]
        assert session.media_channel.state == MediaState.AWAITING_HANDSHAKE_ACK
        await session.stop()

    @pytest.mark.asyncio
    async def test_ready_ack_sent_on_signaling_only(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        signaling, media = await _open_media(session, network)
        assert 7 not in signaling.sent_types()

        media.push({"msg_type": 4, "status_code": 0})

        await eventually(lambda: 7 in signaling.sent_types())
        assert signaling.sent[-1] == {"msg_type": 7, "rtms_stream_id": "xyz"}
        assert media.sent_types() == [3]
        assert session.media_channel.state == MediaState.READY_ACK_SENT
        assert session.state == RtmsSessionState.STREAMING
        await session.stop()

    @pytest.mark.asyncio
    async def test_rejected_data_handshake_fails_session(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        signaling, media = await _open_media(session, network)

        media.push({"msg_type": 4, "status_code": 2, "reason": "bad media type"})

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert isinstance(session.error, ProtocolError)
        assert 7 not in signaling.sent_types()
        assert session.media_channel.state == MediaState.ERROR
        assert session.signaling_channel.state == SignalingState.CLOSED
        assert media.closed
        assert signaling.closed


class TestTranscripts:
    @pytest.mark.asyncio
    async def test_transcript_delivered_to_sink(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        _, media = await _open_media(session, network)
        media.push({"msg_type": 4, "status_code": 0})

        media.push(_transcript("hello"))

        await eventually(lambda: len(sink.events) == 1)
        event = sink.events[0]
        assert event.user == "Alice"
        assert event.text == "hello"
        assert event.meeting_uuid == "abc"
        assert event.stream_id == "xyz"
        assert event.timestamp == 1700000000
        assert session.media_channel.state == MediaState.STREAMING
        assert session.media_channel.transcripts_delivered == 1
        await session.stop()

    @pytest.mark.asyncio
    async def test_transcripts_keep_arrival_order(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        _, media = await _open_media(session, network)
        media.push({"msg_type": 4, "status_code": 0})

        for text in ("one", "two", "three"):
            media.push(_transcript(text))

        await eventually(lambda: len(sink.events) == 3)
        assert [e.text for e in sink.events] == ["one", "two", "three"]
        await session.stop()

    @pytest.mark.asyncio
    async def test_transcript_before_ready_ack_dropped(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        _, media = await _open_media(session, network)

        media.push(_transcript("early"))
        media.push({"msg_type": 4, "status_code": 0})
        media.push(_transcript("late"))

        await eventually(lambda: len(sink.events) == 1)
        assert sink.events[0].text == "late"
        await session.stop()

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_stop_stream(self, network, credentials):
        failing = FailingSink()
        session = _session(network, failing, credentials)
        _, media = await _open_media(session, network)
        media.push({"msg_type": 4, "status_code": 0})

        media.push(_transcript("one"))
        media.push(_transcript("two"))

        await eventually(lambda: failing.calls == 2)
        assert session.media_channel.state == MediaState.STREAMING
        assert session.media_channel.transcripts_delivered == 0
        assert session.state == RtmsSessionState.STREAMING
        await session.stop()


class _StalledSink(TranscriptSink):
    def __init__(self):
        self.calls = 0

    async def handle(self, event) -> None:
        self.calls += 1
        await asyncio.Event().wait()


class TestSlowSink:
    @pytest.mark.asyncio
    async def test_stalled_sink_does_not_block_keep_alive(
        self, network, sink, credentials, monkeypatch
    ):
        monkeypatch.setattr(MediaChannel, "sink_timeout", 0.05)
        stalled = _StalledSink()
        session = _session(network, stalled, credentials)
        _, media = await _open_media(session, network)
        media.push({"msg_type": 4, "status_code": 0})

        media.push(_transcript("stuck"))
        media.push({"msg_type": 12, "timestamp": 11})

        await eventually(lambda: 13 in media.sent_types())
        assert media.sent[-1] == {"msg_type": 13, "timestamp": 11}
        assert stalled.calls == 1
        assert session.media_channel.transcripts_delivered == 0
        assert session.media_channel.state == MediaState.STREAMING
        await session.stop()


class TestMediaKeepAlive:
    @pytest.mark.asyncio
    async def test_keep_alive_answered_on_media_socket(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        signaling, media = await _open_media(session, network)

        media.push({"msg_type": 12, "timestamp": 7})

        await eventually(lambda: 13 in media.sent_types())
        assert media.sent[-1] == {"msg_type": 13, "timestamp": 7}
        assert 13 not in signaling.sent_types()
        await session.stop()

    @pytest.mark.asyncio
    async def test_non_integer_timestamp_echoed(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        _, media = await _open_media(session, network)

        media.push({"msg_type": 12, "timestamp": 1700000000.25})

        await eventually(lambda: 13 in media.sent_types())
        assert media.sent[-1] == {"msg_type": 13, "timestamp": 1700000000.25}
        await session.stop()


class TestMediaClose:
    @pytest.mark.asyncio
    async def test_media_drop_tears_down_signaling(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        signaling, media = await _open_media(session, network)
        media.push({"msg_type": 4, "status_code": 0})
        await eventually(lambda: session.state == RtmsSessionState.STREAMING)

        media.drop()

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert isinstance(session.error, TransportError)
        assert session.media_channel.state == MediaState.ERROR
        assert session.signaling_channel.state == SignalingState.CLOSED
        assert signaling.closed
