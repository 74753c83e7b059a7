from pydantic import BaseModel

from app.shared.config import config


def _flag(value: str | None, default: str = "false") -> bool:
    return (value or default).strip().lower() in {"true", "1", "yes", "on"}


class AppEnvironConfig(BaseModel):
    DEBUG: bool = _flag(config.get("DEBUG"))

    API_HOST: str = (config.get("API_HOST") or "0.0.0.0").strip()
    API_PORT: int = int((config.get("API_PORT") or "").strip() or 3000)
    API_WORKERS: int = int((config.get("API_WORKERS") or "").strip() or 1)

    # Zoom app credentials used to sign RTMS handshakes
    ZOOM_CLIENT_ID: str | None = (config.get("ZOOM_CLIENT_ID") or "").strip() or None
    ZOOM_CLIENT_SECRET: str | None = (config.get("ZOOM_CLIENT_SECRET") or "").strip() or None

    # Webhook secret token; enables x-zm-signature checks and URL validation
    ZOOM_WEBHOOK_SECRET_TOKEN: str | None = (
        config.get("ZOOM_WEBHOOK_SECRET_TOKEN") or ""
    ).strip() or None

    # Upper bound on waiting for a handshake response on either channel; 0 disables it
    RTMS_HANDSHAKE_TIMEOUT_SECONDS: float = float(
        (config.get("RTMS_HANDSHAKE_TIMEOUT_SECONDS") or "").strip() or 30
    )


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
