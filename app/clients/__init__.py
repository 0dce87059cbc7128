"""Expose constructed client wrappers."""

from .sqlite_store import ContentStore
from .telegram import FileHost, TelegramAPIError, TelegramBotClient, TelegramFile, UpstreamStream
from .token_store import AccessTokenStore, hash_token

__all__ = [
    "AccessTokenStore",
    "ContentStore",
    "FileHost",
    "TelegramAPIError",
    "TelegramBotClient",
    "TelegramFile",
    "UpstreamStream",
    "hash_token",
]
