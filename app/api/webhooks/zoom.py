"""Zoom webhook endpoint for receiving RTMS lifecycle events.

Event Types:
- endpoint.url_validation: Zoom checks endpoint ownership (challenge/response)
- meeting.rtms_started: RTMS stream available for a meeting; starts a session
- meeting.rtms_stopped: RTMS stream ended; stops the meeting's session

Every other event is acknowledged and ignored. Receipt is always acknowledged
with HTTP 200; session failures only show up in the logs.

References:
- https://developers.zoom.us/docs/api/webhooks/
- https://developers.zoom.us/docs/rtms/
- Pydantic schemas: app.schemas.rtms_lifecycle
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from loguru import logger
from pydantic import BaseModel, ValidationError

from app.api.dependency import get_session_coordinator
from app.app_config import get_app_environ_config
from app.domain.rtms.session_coordinator import SessionCoordinator
from app.schemas import ZoomEventType, parse_lifecycle_event
from app.shared.api.utils import ApiFailure, ApiSuccess, api_failure
from app.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


class ZoomWebhookSuccess(ApiSuccess):
    """Success response for webhook."""

    results: dict[str, Any]  # type: ignore[assignment]


class UrlValidationResponse(BaseModel):
    plainToken: str
    encryptedToken: str


def encrypt_plain_token(plain_token: str, secret_token: str) -> str:
    """Answer to Zoom's endpoint.url_validation challenge."""
    return hmac.new(
        secret_token.encode("utf-8"),
        plain_token.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_zoom_signature(
    payload: bytes,
    signature_header: str,
    timestamp_header: str | None,
    secret_token: str,
    tolerance_seconds: int = 300,
) -> bool:
    """Verify a Zoom webhook signature.

    Zoom signs ``v0:{x-zm-request-timestamp}:{raw body}`` with HMAC SHA256
    keyed by the webhook secret token and sends ``v0=<hex>`` in x-zm-signature.

    Args:
        payload: Raw request body bytes
        signature_header: Value of 'x-zm-signature' header
        timestamp_header: Value of 'x-zm-request-timestamp' header
        secret_token: Webhook secret token of the Zoom app
        tolerance_seconds: Maximum age of webhook (default: 5 minutes)

    Returns:
        True if signature is valid and timestamp is within tolerance

    Raises:
        AppError: If headers are malformed or the timestamp is too old
    """
    if not signature_header.startswith("v0="):
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
            errmesg="Invalid signature header format - expected v0=<hex>",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    if not timestamp_header:
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
            errmesg="Missing x-zm-request-timestamp header",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    try:
        timestamp = int(timestamp_header)
    except ValueError as exc:
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
            errmesg=f"Invalid timestamp in signature: {timestamp_header}",
            status_code=HttpStatusCode.BAD_REQUEST,
        ) from exc

    current_time = int(time.time())
    if abs(current_time - timestamp) > tolerance_seconds:
        raise AppError(
            errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
            errmesg=f"Timestamp outside tolerance window: "
            f"received={timestamp}, current={current_time}, "
            f"diff={abs(current_time - timestamp)}s",
            status_code=HttpStatusCode.BAD_REQUEST,
        )

    message = f"v0:{timestamp_header}:{payload.decode('utf-8')}"
    expected_signature = "v0=" + hmac.new(
        secret_token.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(expected_signature, signature_header)


def handle_url_validation(event_data: dict[str, Any], secret_token: str | None):
    """Handle endpoint.url_validation event."""
    if not secret_token:
        logger.error("ZOOM_WEBHOOK_SECRET_TOKEN not configured, cannot answer URL validation")
        return api_failure(
            errcode=AppErrorCode.E_WEBHOOK_CONFIG_MISSING,
            errmesg="Webhook secret token not configured",
        )

    plain_token = (event_data.get("payload") or {}).get("plainToken")
    if not plain_token:
        return api_failure(
            errcode=AppErrorCode.E_WEBHOOK_VALIDATION_ERROR,
            errmesg="Missing payload.plainToken",
        )

    logger.info("Answering Zoom endpoint URL validation")
    return UrlValidationResponse(
        plainToken=plain_token,
        encryptedToken=encrypt_plain_token(plain_token, secret_token),
    )


async def handle_lifecycle_event(
    event_data: dict[str, Any],
    coordinator: SessionCoordinator,
) -> dict[str, Any]:
    """Hand an RTMS lifecycle event to the coordinator.

    Raises:
        ValidationError: the event kind is known but its payload is invalid
    """
    event_type = event_data.get("event")
    event = parse_lifecycle_event(event_data)
    if event is None:
        logger.info(f"Unhandled event type: {event_type}")
        return {"handled": False, "reason": "unhandled_event_type", "event": event_type}

    logger.info(f"{event_type}: meeting_uuid={event.meeting_uuid}")
    try:
        handled = await coordinator.dispatch(event)
    except AppError as exc:
        logger.error(f"{event_type} for {event.meeting_uuid} failed: {exc.errcode} {exc.errmesg}")
        return {
            "handled": False,
            "event": event_type,
            "meeting_uuid": event.meeting_uuid,
            "reason": exc.errcode,
        }

    return {"handled": handled, "event": event_type, "meeting_uuid": event.meeting_uuid}


@router.post("/zoom", response_model=None)
async def zoom_webhook(
    request: Request,
    x_zm_signature: str | None = Header(None, alias="x-zm-signature"),
    x_zm_request_timestamp: str | None = Header(None, alias="x-zm-request-timestamp"),
    coordinator: SessionCoordinator = Depends(get_session_coordinator),
) -> ZoomWebhookSuccess | UrlValidationResponse | ApiFailure:
    """Receive and process Zoom webhook events.

    Security:
        - When ZOOM_WEBHOOK_SECRET_TOKEN is set, signed requests are verified
        - Timestamp must be within 5 minutes (prevents replay attacks)
        - Uses constant-time signature comparison
    """
    try:
        body = await request.body()
        logger.debug(
            f"Received Zoom webhook request: body_length={len(body)}, has_signature={bool(x_zm_signature)}"
        )

        config = get_app_environ_config()
        secret_token = config.ZOOM_WEBHOOK_SECRET_TOKEN

        if secret_token and x_zm_signature:
            try:
                is_valid = verify_zoom_signature(
                    payload=body,
                    signature_header=x_zm_signature,
                    timestamp_header=x_zm_request_timestamp,
                    secret_token=secret_token,
                )
            except AppError as exc:
                logger.warning(f"Signature verification failed: {exc}")
                return api_failure(errcode=exc.errcode, errmesg=exc.errmesg)

            if not is_valid:
                logger.warning("Invalid Zoom webhook signature")
                return api_failure(
                    errcode=AppErrorCode.E_WEBHOOK_INVALID_SIGNATURE,
                    errmesg="Invalid webhook signature",
                )
            logger.debug("Zoom webhook signature verified successfully")
        elif secret_token:
            logger.warning("Zoom webhook received without signature header")

        try:
            event_data = json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error(f"Invalid JSON in webhook body: {exc}")
            return api_failure(
                errcode=AppErrorCode.E_WEBHOOK_INVALID_JSON,
                errmesg=f"Invalid JSON: {exc!s}",
            )

        event_type = event_data.get("event") if isinstance(event_data, dict) else None
        if not event_type:
            logger.error("Missing 'event' field in webhook payload")
            return api_failure(
                errcode=AppErrorCode.E_WEBHOOK_MISSING_EVENT_TYPE,
                errmesg="Missing 'event' field",
            )

        logger.info(f"Zoom Webhook: {event_type}")

        if event_type == ZoomEventType.URL_VALIDATION:
            return handle_url_validation(event_data, secret_token)

        try:
            result = await handle_lifecycle_event(event_data, coordinator)
        except ValidationError as exc:
            logger.error(f"Failed to parse {event_type} event: {exc}")
            return api_failure(
                errcode=AppErrorCode.E_WEBHOOK_VALIDATION_ERROR,
                errmesg=f"Failed to parse event: {exc!s}",
            )

        return ZoomWebhookSuccess(results=result)

    except Exception as exc:
        logger.exception("Error processing Zoom webhook")
        return api_failure(
            errcode=AppErrorCode.E_WEBHOOK_ERROR,
            errmesg=str(exc),
            trace=type(exc).__name__,
        )
