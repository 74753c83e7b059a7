import time
import traceback
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from granian import Granian
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.routers import sessions
from app.api.webhooks import zoom
from app.app_config import get_app_environ_config
from app.domain.rtms.session_coordinator import SessionCoordinator
from app.domain.rtms.transcripts import LoggingTranscriptSink
from app.shared.api import health
from app.shared.api.utils import api_failure, app_error_handler, init_logger
from app.utils.app_errors import AppError, AppErrorCode


class HTTPLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore
        start_time = time.time()
        request_id = str(uuid.uuid4())[:8]

        logger.info(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = (time.time() - start_time) * 1000

            logger.info(
                f"[{request_id}] {request.method} {request.url.path} - "
                f"Status: {response.status_code} - "
                f"Duration: {process_time:.2f}ms"
            )

            return response

        except Exception as exc:
            process_time = (time.time() - start_time) * 1000

            logger.error(
                f"[{request_id}] Unhandled exception in {request.method} {request.url.path} - "
                f"Duration: {process_time:.2f}ms - "
                f"Error: {type(exc).__name__}: {exc}\n"
                f"Traceback:\n{traceback.format_exc()}"
            )

            failure = api_failure(
                errcode=AppErrorCode.E_INTERNAL_ERROR,
                errmesg=f"Internal server error (request_id: {request_id})",
            )
            return ORJSONResponse(
                status_code=500,
                content=failure.model_dump(),
            )


async def app_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()

    logger.warning(
        "Validation error: path={} method={} errors={}",
        request.url.path,
        request.method,
        errors,
    )

    failure = api_failure(AppErrorCode.E_INVALID_REQUEST, errmesg=str(errors))

    return ORJSONResponse(status_code=422, content=failure.model_dump())


@asynccontextmanager
async def lifespan(server: FastAPI):
    init_logger()

    logger.info("Application startup...")

    config = get_app_environ_config()
    if not (config.ZOOM_CLIENT_ID and config.ZOOM_CLIENT_SECRET):
        logger.warning("ZOOM_CLIENT_ID / ZOOM_CLIENT_SECRET not configured, RTMS sessions will be refused")

    server.state.session_coordinator = SessionCoordinator(
        sink=LoggingTranscriptSink(),
        handshake_timeout=config.RTMS_HANDSHAKE_TIMEOUT_SECONDS,
    )

    yield

    logger.info("Application shutdown...")

    await server.state.session_coordinator.aclose()


def create_app() -> FastAPI:
    server = FastAPI(
        version="1.0",
        title="Zoom RTMS Transcript Relay",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    server.add_middleware(HTTPLoggingMiddleware)

    server.add_exception_handler(RequestValidationError, app_validation_exception_handler)  # type: ignore
    server.add_exception_handler(AppError, app_error_handler)  # type: ignore

    server.include_router(health.router)
    server.include_router(zoom.router)
    server.include_router(sessions.router, prefix="/api/v1")

    return server


app = create_app()


def build_granian_kwargs():
    config = get_app_environ_config()
    kwargs = {
        "interface": "asgi",
        "address": config.API_HOST,
        "port": config.API_PORT,
        "workers": config.API_WORKERS,
        "reload": config.DEBUG,
    }

    return kwargs


if __name__ == "__main__":
    granian_kwargs = build_granian_kwargs()
    Granian("app.main:app", **granian_kwargs).serve()
