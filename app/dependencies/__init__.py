"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_analytics_service,
    get_content_store,
    get_stream_proxy,
    get_telegram_client,
    get_token_store,
    get_token_verifier,
    get_video_access_issuer,
)
from .config import AdminDependency, get_app_settings, require_admin

__all__ = [
    "AdminDependency",
    "get_analytics_service",
    "get_app_settings",
    "get_content_store",
    "get_stream_proxy",
    "get_telegram_client",
    "get_token_store",
    "get_token_verifier",
    "get_video_access_issuer",
    "require_admin",
]
