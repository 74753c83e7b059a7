"""Tests for the signaling channel run loop."""

from unittest.mock import patch

import pytest

from app.domain.rtms.rtms_errors import ProtocolError, TransportError
from app.domain.rtms.session import RtmsSession
from app.schemas import RtmsSessionState, SignalingState
from tests.fixtures.rtms_fixtures import eventually

EXPECTED_SIGNATURE = "2eb9e78e4f67bdc280fce54148a98c3e81c6cf4bf33d70be1e369eddb21d1d82"


def _session(network, sink, credentials, **kwargs) -> RtmsSession:
    return RtmsSession(
        "abc",
        "xyz",
        "sig://A",
        credentials=credentials,
        sink=sink,
        connector=network.connect,
        **kwargs,
    )


class TestSignalingHandshake:
    @pytest.mark.asyncio
    async def test_handshake_is_first_frame(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()

        signaling = await network.wait_for("sig://A")
        await eventually(
            lambda: session.signaling_channel.state == SignalingState.AWAITING_HANDSHAKE_ACK
        )

        assert signaling.sent == [
            {
                "msg_type": 1,
                "meeting_uuid": "abc",
                "rtms_stream_id": "xyz",
                "signature": EXPECTED_SIGNATURE,
            }
        ]
        await session.stop()

    @pytest.mark.asyncio
    async def test_accepted_handshake_opens_media(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push(
            {
                "msg_type": 2,
                "status_code": 0,
                "media_server": {"server_urls": {"transcript": "media://B"}},
            }
        )

        await network.wait_for("media://B")
        assert session.signaling_channel.state == SignalingState.READY
        assert session.media_channel is not None
        assert session.media_channel.url == "media://B"
        await session.stop()

    @pytest.mark.asyncio
    async def test_rejected_handshake_fails_session(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push({"msg_type": 2, "status_code": 1, "reason": "invalid signature"})

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert session.signaling_channel.state == SignalingState.ERROR
        assert isinstance(session.error, ProtocolError)
        assert session.error.status_code_received == 1
        assert signaling.closed
        assert "media://B" not in network.transports

    @pytest.mark.asyncio
    async def test_handshake_without_media_url_fails(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push({"msg_type": 2, "status_code": 0})

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert isinstance(session.error, ProtocolError)

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, network, sink, credentials):
        session = _session(network, sink, credentials, handshake_timeout=0.05)
        session.start()

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert isinstance(session.error, TransportError)
        assert "handshake" in session.error.errmesg
        assert session.signaling_channel.state == SignalingState.ERROR

    @pytest.mark.asyncio
    async def test_connect_refused(self, network, sink, credentials):
        network.refused.add("sig://A")
        session = _session(network, sink, credentials)
        session.start()

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert isinstance(session.error, TransportError)


class TestSignalingMessages:
    @pytest.mark.asyncio
    async def test_keep_alive_echoed(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push({"msg_type": 12, "timestamp": 1700000000123})

        await eventually(lambda: len(signaling.sent) == 2)
        assert signaling.sent[1] == {"msg_type": 13, "timestamp": 1700000000123}
        await session.stop()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timestamp", [1700000000123.5, "1700000000123"])
    async def test_keep_alive_echoes_timestamp_unchanged(
        self, network, sink, credentials, timestamp
    ):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push({"msg_type": 12, "timestamp": timestamp})

        await eventually(lambda: len(signaling.sent) == 2)
        reply = signaling.sent[1]
        assert reply == {"msg_type": 13, "timestamp": timestamp}
        assert type(reply["timestamp"]) is type(timestamp)
        await session.stop()

    @pytest.mark.asyncio
    async def test_unknown_and_garbage_frames_ignored(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.push({"msg_type": 99, "foo": "bar"})
        signaling.push("{not json")
        signaling.push({"msg_type": 12, "timestamp": 5})

        await eventually(lambda: 13 in signaling.sent_types())
        assert session.signaling_channel.state == SignalingState.AWAITING_HANDSHAKE_ACK
        assert session.state == RtmsSessionState.CONNECTING
        await session.stop()

    @pytest.mark.asyncio
    async def test_state_updates_are_informational(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")
        signaling.push({"msg_type": 2, "status_code": 0, "media_url": "media://B"})
        await network.wait_for("media://B")

        signaling.push({"msg_type": 8, "state": 1})
        signaling.push({"msg_type": 9, "state": 2})
        signaling.push({"msg_type": 12, "timestamp": 9})

        await eventually(lambda: 13 in signaling.sent_types())
        assert session.signaling_channel.state == SignalingState.READY
        await session.stop()

    @pytest.mark.asyncio
    async def test_ready_ack_refused_before_handshake(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        await network.wait_for("sig://A")

        with pytest.raises(TransportError):
            await session.signaling_channel.send_client_ready_ack()
        await session.stop()


class TestRefusedTransition:
    def test_refused_transition_keeps_state(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        channel = session.signaling_channel

        with patch("app.domain.rtms._channel.logger") as logger:
            assert channel._transition(SignalingState.READY) is False

        assert channel.state == SignalingState.CONNECTING
        message = logger.warning.call_args.args[0]
        assert "connecting -> ready" in message
        assert "['awaiting_handshake_ack', 'closed', 'error']" in message


class TestSignalingClose:
    @pytest.mark.asyncio
    async def test_clean_remote_close_stops_session(self, network, sink, credentials):
        closed = []

        async def on_closed(s):
            closed.append(s)

        session = _session(network, sink, credentials, on_closed=on_closed)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.drop(clean=True)

        await eventually(lambda: closed == [session])
        assert session.state == RtmsSessionState.STOPPED
        assert session.signaling_channel.state == SignalingState.CLOSED
        assert session.error is None

    @pytest.mark.asyncio
    async def test_dropped_connection_fails_session(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        signaling.drop()

        await eventually(lambda: session.state == RtmsSessionState.FAILED)
        await session.wait_closed()
        assert session.signaling_channel.state == SignalingState.ERROR
        assert isinstance(session.error, TransportError)

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_receive(self, network, sink, credentials):
        session = _session(network, sink, credentials)
        session.start()
        signaling = await network.wait_for("sig://A")

        await session.stop()

        assert session.state == RtmsSessionState.STOPPED
        assert session.signaling_channel.state == SignalingState.CLOSED
        assert signaling.closed
