"""
Issue and verify temporary video access tokens.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from app.clients.sqlite_store import ContentStore
from app.clients.telegram import FileHost
from app.clients.token_store import AccessTokenStore, hash_token
from app.core.config import StreamSettings
from app.core.errors import (
    ExpiredTokenError,
    MalformedTokenError,
    ResourceNotFoundError,
    UnauthorizedError,
)
from app.models.video import AccessTokenRecord
from app.services.analytics import VIDEO_ACCESS_REQUEST, AnalyticsService
from app.services.token_codec import decode_token, encode_token, token_safe

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def epoch_millis() -> int:
    return int(time.time() * 1000)


def _from_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


@dataclass(frozen=True)
class IssuedAccess:
    """What a caller needs to start playback."""

    token: str
    stream_url: str
    expires_at: datetime
    file_size: Optional[int] = None
    direct_url: Optional[str] = None


@dataclass(frozen=True)
class VerifiedAccess:
    resource_locator_id: str
    requester_identity: str
    expires_at: datetime


class TokenVerifier:
    """Gate stream requests on token shape, expiry, identity and use count.

    Identity binding is a policy choice. ``lenient`` accepts a caller whose
    address differs from the one the token was issued to; ``strict`` rejects
    it.

    When ``max_uses`` is positive, tokens without a live persisted record are
    rejected. A use is spent only when ``spend_use`` is requested, so callers
    decide which requests count (the stream proxy counts playback starts, not
    the range requests a player issues while seeking).
    """

    def __init__(
        self,
        settings: StreamSettings,
        token_store: AccessTokenStore | None = None,
        *,
        clock: Clock = epoch_millis,
    ) -> None:
        if settings.max_uses > 0 and token_store is None:
            raise ValueError("A token store is required when max_uses is enabled.")
        self._settings = settings
        self._token_store = token_store if settings.max_uses > 0 else None
        self._clock = clock

    def verify(
        self, token: str, requester_identity: str, *, spend_use: bool = True
    ) -> Optional[VerifiedAccess]:
        """Return the verified access, or ``None`` for any invalid token."""
        try:
            return self.check(token, requester_identity, spend_use=spend_use)
        except (MalformedTokenError, ExpiredTokenError, UnauthorizedError) as exc:
            logger.info("Rejected video access token: %s", exc)
            return None

    def check(
        self, token: str, requester_identity: str, *, spend_use: bool = True
    ) -> VerifiedAccess:
        """Like ``verify`` but raises the specific rejection reason."""
        access = decode_token(token)
        now_ms = self._clock()
        if access.is_expired(now_ms):
            raise ExpiredTokenError(
                f"Token expired {now_ms - access.expires_at_ms} ms ago."
            )

        caller = token_safe(requester_identity)
        if access.requester_identity != caller:
            if self._settings.identity_binding == "strict":
                raise UnauthorizedError("Token was issued to a different address.")
            logger.debug("Accepting token presented from a different address.")

        store = self._token_store
        if store is not None:
            token_hash = hash_token(token)
            if spend_use:
                if not store.consume(token_hash, now_ms=now_ms):
                    raise UnauthorizedError(
                        "Token is unknown or its use limit is reached."
                    )
            elif not store.is_live(token_hash, now_ms=now_ms):
                raise UnauthorizedError("Token is unknown or expired.")

        return VerifiedAccess(
            resource_locator_id=access.resource_locator_id,
            requester_identity=access.requester_identity,
            expires_at=_from_millis(access.expires_at_ms),
        )

    def spend_use(self, token: str) -> bool:
        """Spend one use of an already verified token.

        Always succeeds when use limits are disabled.
        """
        store = self._token_store
        if store is None:
            return True
        return store.consume(hash_token(token), now_ms=self._clock())


class VideoAccessIssuer:
    """Mint stream tokens for published movies hosted on Telegram."""

    def __init__(
        self,
        *,
        content_store: ContentStore,
        file_host: FileHost,
        analytics: AnalyticsService,
        settings: StreamSettings,
        token_store: AccessTokenStore | None = None,
        stream_path: str = "/api/stream",
        clock: Clock = epoch_millis,
    ) -> None:
        if settings.max_uses > 0 and token_store is None:
            raise ValueError("A token store is required when max_uses is enabled.")
        self._content = content_store
        self._file_host = file_host
        self._analytics = analytics
        self._settings = settings
        self._token_store = token_store
        self._stream_path = stream_path.rstrip("/")
        self._clock = clock

    async def issue(
        self,
        *,
        movie_slug: str,
        requester_identity: str,
        requester_agent: str | None = None,
        file_reference: str | None = None,
    ) -> IssuedAccess:
        movie = self._content.find_published_by_slug(movie_slug)
        if movie is None:
            raise ResourceNotFoundError(f"No published movie with slug {movie_slug!r}.")
        file_id = movie.telegram_file_id
        if not file_id:
            raise ResourceNotFoundError(f"Movie {movie_slug!r} has no hosted video.")
        if file_reference and file_reference != file_id:
            raise ResourceNotFoundError(
                f"File reference does not belong to movie {movie_slug!r}."
            )

        upstream = await self._file_host.resolve_file(file_id)

        issued_ms = self._clock()
        expires_ms = issued_ms + self._settings.token_lifetime_seconds * 1000
        token = encode_token(file_id, token_safe(requester_identity), expires_ms)

        if self._token_store is not None:
            self._token_store.create(
                AccessTokenRecord(
                    token_hash=hash_token(token),
                    file_id=file_id,
                    movie_id=movie.id,
                    user_ip=requester_identity,
                    user_agent=requester_agent,
                    created_at=_from_millis(issued_ms),
                    expires_at_ms=expires_ms,
                    max_uses=self._settings.max_uses,
                )
            )

        self._analytics.record_event_best_effort(
            VIDEO_ACCESS_REQUEST,
            page_url=f"/watch/{movie.slug}",
            movie_id=movie.id,
            user_ip=requester_identity,
            user_agent=requester_agent,
        )
        logger.info("Issued video access token for movie %s", movie.slug)

        direct_url = None
        if self._settings.expose_direct_url:
            direct_url = self._file_host.download_url(upstream.file_path)

        return IssuedAccess(
            token=token,
            stream_url=f"{self._stream_path}/{token}",
            expires_at=_from_millis(expires_ms),
            file_size=upstream.file_size,
            direct_url=direct_url,
        )


__all__ = [
    "IssuedAccess",
    "TokenVerifier",
    "VerifiedAccess",
    "VideoAccessIssuer",
    "epoch_millis",
]
