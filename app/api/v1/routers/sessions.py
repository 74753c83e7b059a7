from typing import Any

from fastapi import APIRouter, Depends

from app.api.dependency import get_session_coordinator
from app.domain.rtms.session_coordinator import SessionCoordinator
from app.shared.api.utils import ApiSuccess
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/sessions", tags=["Sessions"])


class SessionListSuccess(ApiSuccess):
    results: list[dict[str, Any]]  # type: ignore[assignment]


class SessionSuccess(ApiSuccess):
    results: dict[str, Any]  # type: ignore[assignment]


@router.get("", response_model=SessionListSuccess)
async def list_sessions(
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
) -> SessionListSuccess:
    """List live RTMS sessions with their channel states."""
    return SessionListSuccess(results=coordinator.list_sessions())


# Zoom meeting UUIDs may contain "/"
@router.get("/{meeting_uuid:path}", response_model=SessionSuccess)
async def get_session(
    meeting_uuid: str,
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
) -> SessionSuccess:
    session = coordinator.get(meeting_uuid)
    if session is None:
        raise AppError(
            errcode=AppErrorCode.E_SESSION_NOT_FOUND,
            errmesg=f"No live session for meeting {meeting_uuid}",
            status_code=HttpStatusCode.NOT_FOUND,
        )
    return SessionSuccess(results=session.snapshot())
