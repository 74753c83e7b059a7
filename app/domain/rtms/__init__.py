"""
Zoom RTMS client.

Modules:
- signature: HMAC handshake signature and credentials.
- transport: websocket transport and the connector seam.
- signaling_channel / media_channel: per-channel state machines.
- session: one meeting's pair of channels.
- session_coordinator: registry of sessions keyed by meeting_uuid.
- transcripts: transcript events and sinks.
"""
