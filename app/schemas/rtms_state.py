"""State enums for RTMS sessions and their channels."""

from enum import Enum


class SignalingState(str, Enum):
    """Signaling channel states.

    CONNECTING → AWAITING_HANDSHAKE_ACK → READY → CLOSED | ERROR

    - CONNECTING: websocket being opened.
    - AWAITING_HANDSHAKE_ACK: SIGNALING_HAND_SHAKE_REQ sent.
    - READY: handshake accepted; media endpoint discovered.
    - CLOSED: closed by a stop event or a clean remote close.
    - ERROR: handshake rejected or transport failure.

    Terminal states: CLOSED, ERROR
    """

    CONNECTING = "connecting"
    AWAITING_HANDSHAKE_ACK = "awaiting_handshake_ack"
    READY = "ready"
    CLOSED = "closed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class MediaState(str, Enum):
    """Media channel states.

    CONNECTING → AWAITING_HANDSHAKE_ACK → READY_ACK_SENT → STREAMING → CLOSED | ERROR

    - READY_ACK_SENT: DATA_HAND_SHAKE_RESP accepted and CLIENT_READY_ACK emitted
      on the signaling channel.
    - STREAMING: the first transcript frame has been delivered.

    Terminal states: CLOSED, ERROR
    """

    CONNECTING = "connecting"
    AWAITING_HANDSHAKE_ACK = "awaiting_handshake_ack"
    READY_ACK_SENT = "ready_ack_sent"
    STREAMING = "streaming"
    CLOSED = "closed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class RtmsSessionState(str, Enum):
    """Session lifecycle states.

    CONNECTING → STREAMING → STOPPED | FAILED

    - CONNECTING: handshakes in progress on signaling and/or media.
    - STREAMING: CLIENT_READY_ACK sent; transcripts flowing.
    - STOPPED: ended by a stop event or a clean remote close.
    - FAILED: ended by a ProtocolError or TransportError.
    """

    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


__all__ = ["MediaState", "RtmsSessionState", "SignalingState"]
