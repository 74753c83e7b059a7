"""Error taxonomy for the RTMS protocol engine.

- ConfigurationError: credentials missing; raised before any connection attempt.
- ProtocolError: a handshake response carried a non-zero status_code.
- TransportError: socket failure or close; terminal for the affected channel.
- MalformedMessage: undecodable frame or unrecognized msg_type; logged and ignored.
"""

from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


class RtmsError(AppError):
    """Base class for RTMS errors."""

    default_errcode = AppErrorCode.E_INTERNAL_ERROR

    def __init__(self, errmesg: str, *, status_code: int = HttpStatusCode.INTERNAL_SERVER_ERROR):
        super().__init__(errcode=self.default_errcode, errmesg=errmesg, status_code=status_code)


class ConfigurationError(RtmsError):
    default_errcode = AppErrorCode.E_RTMS_CONFIG_MISSING


class ProtocolError(RtmsError):
    default_errcode = AppErrorCode.E_RTMS_HANDSHAKE_REJECTED

    def __init__(self, errmesg: str, *, status_code_received: int | None = None):
        super().__init__(errmesg)
        self.status_code_received = status_code_received


class TransportError(RtmsError):
    default_errcode = AppErrorCode.E_RTMS_TRANSPORT

    def __init__(self, errmesg: str, *, clean: bool = False):
        super().__init__(errmesg)
        # True when the peer closed the connection with a normal close frame
        self.clean = clean


class MalformedMessage(RtmsError):
    default_errcode = AppErrorCode.E_RTMS_MALFORMED_MESSAGE

    def __init__(self, errmesg: str, *, msg_type: int | None = None):
        super().__init__(errmesg, status_code=HttpStatusCode.BAD_REQUEST)
        self.msg_type = msg_type
