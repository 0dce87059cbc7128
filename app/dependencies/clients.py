"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import AccessTokenStore, ContentStore, TelegramBotClient
from app.core.config import get_settings
from app.services import AnalyticsService, StreamProxy, TokenVerifier, VideoAccessIssuer


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_content_store() -> ContentStore:
    """Provide the shared movie and analytics store."""
    return ContentStore(_settings().database_path)


@lru_cache()
def get_token_store() -> AccessTokenStore:
    """Provide the persisted access token records."""
    return AccessTokenStore(_settings().database_path)


@lru_cache()
def get_telegram_client() -> TelegramBotClient:
    """Provide the Telegram Bot API file host."""
    settings = _settings()
    return TelegramBotClient(settings.telegram, settings.stream)


def get_analytics_service() -> AnalyticsService:
    """Build an analytics service over the content store."""
    return AnalyticsService(get_content_store())


def get_token_verifier() -> TokenVerifier:
    """Build a token verifier using the configured access policy."""
    return TokenVerifier(_settings().stream, get_token_store())


def get_video_access_issuer() -> VideoAccessIssuer:
    """Build the issuer that mints stream tokens."""
    return VideoAccessIssuer(
        content_store=get_content_store(),
        file_host=get_telegram_client(),
        analytics=get_analytics_service(),
        settings=_settings().stream,
        token_store=get_token_store(),
    )


def get_stream_proxy() -> StreamProxy:
    """Build the proxy that relays upstream bytes."""
    return StreamProxy(
        verifier=get_token_verifier(),
        file_host=get_telegram_client(),
        analytics=get_analytics_service(),
        settings=_settings().stream,
    )


__all__ = [
    "get_analytics_service",
    "get_content_store",
    "get_stream_proxy",
    "get_telegram_client",
    "get_token_store",
    "get_token_verifier",
    "get_video_access_issuer",
]
