from fastapi import Request

from app.domain.rtms.session_coordinator import SessionCoordinator
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode


def get_session_coordinator(request: Request) -> SessionCoordinator:
    coordinator = getattr(request.app.state, "session_coordinator", None)
    if coordinator is None:
        raise AppError(
            errcode=AppErrorCode.E_INTERNAL_ERROR,
            errmesg="Session coordinator is not initialized",
            status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
        )
    return coordinator
