"""Application error types shared by the API layer and the RTMS domain."""

from __future__ import annotations

import inspect
from enum import Enum, IntEnum
from uuid import uuid4


class HttpStatusCode(IntEnum):
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL_SERVER_ERROR = 500


class AppErrorCode(str, Enum):
    """Error codes returned in ApiFailure.errcode."""

    E_INTERNAL_ERROR = "E_INTERNAL_ERROR"
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_SESSION_NOT_FOUND = "E_SESSION_NOT_FOUND"

    # Webhook boundary
    E_WEBHOOK_ERROR = "E_WEBHOOK_ERROR"
    E_WEBHOOK_INVALID_JSON = "E_WEBHOOK_INVALID_JSON"
    E_WEBHOOK_MISSING_EVENT_TYPE = "E_WEBHOOK_MISSING_EVENT_TYPE"
    E_WEBHOOK_VALIDATION_ERROR = "E_WEBHOOK_VALIDATION_ERROR"
    E_WEBHOOK_INVALID_SIGNATURE = "E_WEBHOOK_INVALID_SIGNATURE"
    E_WEBHOOK_CONFIG_MISSING = "E_WEBHOOK_CONFIG_MISSING"

    # RTMS protocol engine
    E_RTMS_CONFIG_MISSING = "E_RTMS_CONFIG_MISSING"
    E_RTMS_HANDSHAKE_REJECTED = "E_RTMS_HANDSHAKE_REJECTED"
    E_RTMS_TRANSPORT = "E_RTMS_TRANSPORT"
    E_RTMS_MALFORMED_MESSAGE = "E_RTMS_MALFORMED_MESSAGE"

    def __str__(self) -> str:
        return self.value


class AppError(Exception):
    """Exception carrying an API error code and the call site that raised it.

    The caller info is captured at construction time so the exception handler
    can log where the error originated rather than where it was caught.
    """

    def __init__(
        self,
        errcode: AppErrorCode | str = AppErrorCode.E_INTERNAL_ERROR,
        errmesg: str = "We are sorry, an error occurred.",
        status_code: int = HttpStatusCode.BAD_REQUEST,
    ) -> None:
        super().__init__(errmesg)
        self.errcode = errcode.value if isinstance(errcode, AppErrorCode) else str(errcode)
        self.errmesg = errmesg
        self.status_code = int(status_code)
        self.erresid = uuid4().hex[:10]
        self.caller_info = _caller_info()

    def __str__(self) -> str:
        return self.errmesg


def _caller_info() -> str:
    # Skip this helper and AppError.__init__ (plus any subclass __init__ frames).
    for frame_info in inspect.stack()[2:]:
        if frame_info.function != "__init__":
            module = inspect.getmodule(frame_info.frame)
            module_name = (
                module.__name__ if module and getattr(module, "__name__", None) else frame_info.filename
            )
            return f"{module_name}:{frame_info.function}:{frame_info.lineno}"
    return "unknown"
