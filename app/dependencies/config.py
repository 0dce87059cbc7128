"""
FastAPI dependency utilities for injecting configuration and admin checks.
"""

import hmac
from functools import lru_cache
from http import HTTPStatus

from fastapi import Depends, Header, HTTPException

from app.core.config import AppSettings, get_settings


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def require_admin(
    settings: AppSettings = Depends(get_app_settings),
    x_admin_key: str | None = Header(default=None),
) -> None:
    """Reject requests that do not carry the configured admin key."""
    expected = settings.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Admin access is not configured.",
        )
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=HTTPStatus.FORBIDDEN, detail="Invalid admin key.")


AdminDependency = Depends(require_admin)

__all__ = ["AdminDependency", "get_app_settings", "require_admin"]
