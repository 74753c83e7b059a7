"""Handshake signature for RTMS signaling and media channels."""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass

from app.app_config import get_app_environ_config
from app.domain.rtms.rtms_errors import ConfigurationError


def sign(client_id: str, client_secret: str, meeting_uuid: str, stream_id: str) -> str:
    """Compute the handshake signature.

    HMAC-SHA256 over ``"{client_id},{meeting_uuid},{stream_id}"`` keyed by the
    client secret, rendered as lowercase hex. Depends only on its arguments.

    Raises:
        ConfigurationError: client_secret is missing or empty
    """
    if not client_secret:
        raise ConfigurationError("Zoom client secret is not configured")

    message = f"{client_id},{meeting_uuid},{stream_id}"
    return hmac.new(
        client_secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


@dataclass(frozen=True)
class RtmsCredentials:
    client_id: str
    client_secret: str

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("ZOOM_CLIENT_ID is not configured")
        if not self.client_secret:
            raise ConfigurationError("ZOOM_CLIENT_SECRET is not configured")

    def __repr__(self) -> str:
        return f"RtmsCredentials(client_id={self.client_id!r}, client_secret='***')"

    @classmethod
    def from_config(cls) -> RtmsCredentials:
        config = get_app_environ_config()
        return cls(
            client_id=config.ZOOM_CLIENT_ID or "",
            client_secret=config.ZOOM_CLIENT_SECRET or "",
        )

    def sign(self, meeting_uuid: str, stream_id: str) -> str:
        return sign(self.client_id, self.client_secret, meeting_uuid, stream_id)
