"""Transition tables for the signaling and media channel state machines."""

from enum import Enum
from typing import ClassVar

from app.schemas import MediaState, SignalingState


class ChannelStateMachine:
    """Base transition table.

    Subclasses declare TRANSITIONS and TERMINAL_STATES; the channel objects
    consult them before every state change.
    """

    TRANSITIONS: ClassVar[dict] = {}
    TERMINAL_STATES: ClassVar[set] = set()

    @classmethod
    def can_transition(cls, current: Enum, new: Enum) -> bool:
        """Check if state transition is valid."""
        return new in cls.TRANSITIONS.get(current, set())

    @classmethod
    def is_terminal(cls, state: Enum) -> bool:
        return state in cls.TERMINAL_STATES

    @classmethod
    def get_valid_transitions(cls, state: Enum) -> set:
        return cls.TRANSITIONS.get(state, set())


class SignalingStateMachine(ChannelStateMachine):
    """Signaling channel transitions.

    - CONNECTING -> AWAITING_HANDSHAKE_ACK (handshake request sent) | CLOSED | ERROR
    - AWAITING_HANDSHAKE_ACK -> READY (status_code 0) | ERROR (non-zero status) | CLOSED
    - READY -> CLOSED | ERROR
    """

    TRANSITIONS: ClassVar[dict[SignalingState, set[SignalingState]]] = {
        SignalingState.CONNECTING: {
            SignalingState.AWAITING_HANDSHAKE_ACK,
            SignalingState.CLOSED,
            SignalingState.ERROR,
        },
        SignalingState.AWAITING_HANDSHAKE_ACK: {
            SignalingState.READY,
            SignalingState.CLOSED,
            SignalingState.ERROR,
        },
        SignalingState.READY: {SignalingState.CLOSED, SignalingState.ERROR},
        SignalingState.CLOSED: set(),
        SignalingState.ERROR: set(),
    }

    TERMINAL_STATES: ClassVar[set[SignalingState]] = {SignalingState.CLOSED, SignalingState.ERROR}


class MediaStateMachine(ChannelStateMachine):
    """Media channel transitions.

    - CONNECTING -> AWAITING_HANDSHAKE_ACK | CLOSED | ERROR
    - AWAITING_HANDSHAKE_ACK -> READY_ACK_SENT (status_code 0, ack emitted) | CLOSED | ERROR
    - READY_ACK_SENT -> STREAMING (first transcript delivered) | CLOSED | ERROR
    - STREAMING -> CLOSED | ERROR
    """

    TRANSITIONS: ClassVar[dict[MediaState, set[MediaState]]] = {
        MediaState.CONNECTING: {
            MediaState.AWAITING_HANDSHAKE_ACK,
            MediaState.CLOSED,
            MediaState.ERROR,
        },
        MediaState.AWAITING_HANDSHAKE_ACK: {
            MediaState.READY_ACK_SENT,
            MediaState.CLOSED,
            MediaState.ERROR,
        },
        MediaState.READY_ACK_SENT: {
            MediaState.STREAMING,
            MediaState.CLOSED,
            MediaState.ERROR,
        },
        MediaState.STREAMING: {MediaState.CLOSED, MediaState.ERROR},
        MediaState.CLOSED: set(),
        MediaState.ERROR: set(),
    }

    TERMINAL_STATES: ClassVar[set[MediaState]] = {MediaState.CLOSED, MediaState.ERROR}
