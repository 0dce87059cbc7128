"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the stream proxy, and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class TelegramSettings(BaseSettings):
    """Credentials and limits for the Telegram Bot API file host."""

    bot_token: Optional[str] = Field(None, alias="TELEGRAM_BOT_TOKEN")
    chat_id: Optional[str] = Field(
        None,
        alias="TELEGRAM_CHAT_ID",
        description="Chat or channel that stores uploaded videos.",
    )
    api_base_url: str = Field("https://api.telegram.org", alias="TELEGRAM_API_BASE_URL")
    webhook_secret: Optional[str] = Field(
        None,
        alias="TELEGRAM_WEBHOOK_SECRET",
        description="Shared secret expected in the webhook ``token`` query parameter.",
    )
    request_timeout_seconds: float = Field(10.0, alias="TELEGRAM_REQUEST_TIMEOUT", gt=0)
    max_upload_bytes: int = Field(
        50 * 1024 * 1024,
        alias="TELEGRAM_MAX_UPLOAD_BYTES",
        gt=0,
        description="Bot API uploads are capped at 50 MB.",
    )

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)


class StreamSettings(BaseSettings):
    """Token lifetime, access policy and upstream relay limits."""

    token_lifetime_seconds: int = Field(
        3600, alias="VIDEO_TOKEN_EXPIRY", gt=0, le=366 * 24 * 3600
    )
    identity_binding: Literal["lenient", "strict"] = Field(
        "lenient",
        alias="VIDEO_TOKEN_IDENTITY_BINDING",
        description=(
            "Whether the caller address must match the address the token was "
            "issued to. Mobile and proxied clients change address often."
        ),
    )
    max_uses: int = Field(
        5,
        alias="VIDEO_TOKEN_MAX_USES",
        ge=0,
        description="Stream requests allowed per token; 0 disables the limit.",
    )
    expose_direct_url: bool = Field(
        False,
        alias="VIDEO_EXPOSE_DIRECT_URL",
        description="Return the upstream URL (which embeds the bot token) as a fallback.",
    )
    connect_timeout_seconds: float = Field(5.0, alias="STREAM_CONNECT_TIMEOUT", gt=0)
    read_timeout_seconds: float = Field(30.0, alias="STREAM_READ_TIMEOUT", gt=0)
    transfer_timeout_seconds: float = Field(
        3 * 3600.0, alias="STREAM_TRANSFER_TIMEOUT", gt=0
    )
    chunk_size: int = Field(64 * 1024, alias="STREAM_CHUNK_SIZE", gt=0)

    @field_validator("identity_binding", mode="before")
    @classmethod
    def _normalise_binding(cls, value: str) -> str:
        return value.strip().lower() if isinstance(value, str) else value


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    database_path: str = Field("data/reelpress.db", alias="DATABASE_PATH")
    admin_api_key: Optional[str] = Field(
        None,
        alias="ADMIN_API_KEY",
        description="Key expected in the X-Admin-Key header for admin endpoints.",
    )
    cors_allow_origins: str = Field(
        "*",
        alias="CORS_ALLOW_ORIGINS",
        description="Comma-separated list of origins allowed to call /api.",
    )
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def cors_origins(self) -> tuple[str, ...]:
        return tuple(
            origin.strip()
            for origin in self.cors_allow_origins.split(",")
            if origin.strip()
        )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "StreamSettings",
    "TelegramSettings",
    "get_settings",
]
