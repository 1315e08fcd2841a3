from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so type casting stays in one place
    return os.environ.get(name, default).strip()


def _getint(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    default_passing_score: int
    media_storage_url: str | None
    media_cloud_name: str | None
    media_api_key: str | None
    media_api_secret: str | None
    max_upload_bytes: int
    cors_origins: tuple[str, ...]
    jwt_public_key: str | None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def media_storage_configured(self) -> bool:
        return bool(
            self.media_storage_url
            and self.media_cloud_name
            and self.media_api_key
            and self.media_api_secret
        )


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", 8000)

    passing_score = _getint("DEFAULT_PASSING_SCORE", 50)
    if not 0 <= passing_score <= 100:
        raise ValueError(
            f"DEFAULT_PASSING_SCORE must be between 0 and 100 (got {passing_score})"
        )

    max_upload_bytes = _getint("MAX_UPLOAD_BYTES", 50 * 1024 * 1024)
    if max_upload_bytes <= 0:
        raise ValueError(
            f"MAX_UPLOAD_BYTES must be positive (got {max_upload_bytes})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv("LOG_JSON", "false").lower() in _TRUTHY,
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        default_passing_score=passing_score,
        media_storage_url=_getenv("MEDIA_STORAGE_URL", "") or None,
        media_cloud_name=_getenv("MEDIA_CLOUD_NAME", "") or None,
        media_api_key=_getenv("MEDIA_API_KEY", "") or None,
        media_api_secret=_getenv("MEDIA_API_SECRET", "") or None,
        max_upload_bytes=max_upload_bytes,
        cors_origins=tuple(
            origin.strip()
            for origin in _getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
            if origin.strip()
        ),
        jwt_public_key=_getenv("JWT_PUBLIC_KEY", "") or None,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
