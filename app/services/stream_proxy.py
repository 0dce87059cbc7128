"""
Relay Telegram-hosted video bytes to callers holding a valid access token.

Range requests are forwarded upstream so players can seek. Seeks only need a
live token; a use is spent when playback starts (no Range, or ``bytes=0-``)
and only after the upstream has answered.
"""

from __future__ import annotations

import logging
import mimetypes
import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Optional

from app.clients.telegram import FileHost, UpstreamStream
from app.core.config import StreamSettings
from app.core.errors import ResourceGoneError, UnauthorizedError, UpstreamLookupError
from app.services.analytics import AnalyticsService
from app.services.video_access import TokenVerifier

logger = logging.getLogger(__name__)

_NO_STORE = "no-cache, no-store, must-revalidate"
_PASSTHROUGH_HEADERS = ("Content-Length", "Content-Range", "Content-Encoding")
_GENERIC_TYPES = {"application/octet-stream", "binary/octet-stream"}


@dataclass
class ProxiedStream:
    """An upstream download ready to be relayed to the caller."""

    status_code: int
    headers: Dict[str, str]
    upstream: UpstreamStream
    chunk_size: int
    deadline: float
    stream_id: Optional[int] = None
    bytes_sent: int = field(default=0, init=False)

    async def body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.upstream.iter_bytes(self.chunk_size):
                if time.monotonic() > self.deadline:
                    logger.warning(
                        "Transfer deadline reached after %d bytes; closing upstream.",
                        self.bytes_sent,
                    )
                    break
                self.bytes_sent += len(chunk)
                yield chunk
        finally:
            await self.upstream.aclose()

    async def aclose(self) -> None:
        await self.upstream.aclose()


def _is_playback_start(range_header: str | None) -> bool:
    if not range_header:
        return True
    return range_header.replace(" ", "").lower() == "bytes=0-"


def _content_type(upstream_type: str | None, file_path: str) -> str:
    media_type = (upstream_type or "").split(";")[0].strip().lower()
    if media_type and media_type not in _GENERIC_TYPES:
        return upstream_type  # type: ignore[return-value]
    guessed, _ = mimetypes.guess_type(file_path)
    return guessed or "video/mp4"


class StreamProxy:
    """Verify a token, then open and describe the upstream byte stream."""

    def __init__(
        self,
        *,
        verifier: TokenVerifier,
        file_host: FileHost,
        analytics: AnalyticsService,
        settings: StreamSettings,
    ) -> None:
        self._verifier = verifier
        self._file_host = file_host
        self._analytics = analytics
        self._settings = settings

    async def open(
        self,
        token: str,
        requester_identity: str,
        *,
        range_header: str | None = None,
        requester_agent: str | None = None,
    ) -> ProxiedStream:
        access = self._verifier.verify(token, requester_identity, spend_use=False)
        if access is None:
            raise UnauthorizedError("Invalid or expired token.")

        # Download paths expire upstream, so resolve on every request.
        try:
            upstream_file = await self._file_host.resolve_file(access.resource_locator_id)
        except UpstreamLookupError as exc:
            raise ResourceGoneError("File host no longer recognises the file.") from exc

        upstream = await self._file_host.fetch_bytes(
            upstream_file, range_header=range_header
        )

        try:
            starts_playback = upstream.status_code != 416 and _is_playback_start(
                range_header
            )
            if starts_playback and not self._verifier.spend_use(token):
                raise UnauthorizedError("Token use limit reached.")
            headers = self._relay_headers(upstream, upstream_file.file_path)
            stream_id = None
            if starts_playback:
                stream_id = self._analytics.start_stream_best_effort(
                    stream_source="telegram",
                    movie_id=self._analytics.movie_id_for_file(
                        access.resource_locator_id
                    ),
                    file_id=access.resource_locator_id,
                    user_ip=requester_identity,
                    user_agent=requester_agent,
                )
        except Exception:
            await upstream.aclose()
            raise

        if stream_id is not None:
            headers["X-Stream-Id"] = str(stream_id)

        return ProxiedStream(
            status_code=upstream.status_code,
            headers=headers,
            upstream=upstream,
            chunk_size=self._settings.chunk_size,
            deadline=time.monotonic() + self._settings.transfer_timeout_seconds,
            stream_id=stream_id,
        )

    @staticmethod
    def _relay_headers(upstream: UpstreamStream, file_path: str) -> Dict[str, str]:
        headers = {
            "Content-Type": _content_type(upstream.headers.get("content-type"), file_path),
            "Accept-Ranges": "bytes",
            "Cache-Control": _NO_STORE,
            "Pragma": "no-cache",
            "X-Content-Type-Options": "nosniff",
        }
        for name in _PASSTHROUGH_HEADERS:
            value = upstream.headers.get(name)
            if value:
                headers[name] = value
        return headers


__all__ = ["ProxiedStream", "StreamProxy"]
