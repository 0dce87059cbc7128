"""
Telegram Bot API wrapper used as the video file host.

Bot credentials are part of every request URL, so nothing in this module puts
a URL or an httpx exception message into an error or log line.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import httpx

from app.core.config import StreamSettings, TelegramSettings
from app.core.errors import (
    ConfigurationError,
    ResourceGoneError,
    UpstreamFetchError,
    UpstreamLookupError,
)

logger = logging.getLogger(__name__)

_RELAYED_STATUSES = frozenset({200, 206, 416})


class TelegramAPIError(UpstreamFetchError):
    """Raised when the Bot API answers with ``ok: false``."""

    def __init__(self, method: str, error_code: int, description: str | None) -> None:
        self.method = method
        self.error_code = error_code
        self.description = description
        super().__init__(f"Telegram {method} failed with {error_code}: {description}")


@dataclass(frozen=True)
class TelegramFile:
    """Result of ``getFile``; ``file_path`` is only valid for about an hour."""

    file_id: str
    file_path: str
    file_size: Optional[int] = None
    file_unique_id: Optional[str] = None


class UpstreamStream:
    """An open download from the file host. Always close it with ``aclose``."""

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self._response = response
        self._client = client
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_bytes(self, chunk_size: int) -> AsyncIterator[bytes]:
        # Raw bytes keep Content-Length and Content-Encoding consistent.
        async for chunk in self._response.aiter_raw(chunk_size):
            yield chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class FileHost(Protocol):
    """Capability the issuer and stream proxy need from a file host."""

    async def resolve_file(self, file_id: str) -> TelegramFile:
        ...

    async def fetch_bytes(
        self, file: TelegramFile, *, range_header: str | None = None
    ) -> UpstreamStream:
        ...

    def download_url(self, file_path: str) -> str:
        ...


class TelegramBotClient:
    """Resolve, download and upload files through the Telegram Bot API."""

    def __init__(
        self,
        settings: TelegramSettings,
        stream_settings: StreamSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._base_url = settings.api_base_url.rstrip("/")
        self._api_timeout = httpx.Timeout(settings.request_timeout_seconds)
        stream = stream_settings or StreamSettings()  # type: ignore[call-arg]
        self._stream_timeout = httpx.Timeout(
            stream.read_timeout_seconds, connect=stream.connect_timeout_seconds
        )
        self._transport = transport

    def _bot_token(self) -> str:
        token = self._settings.bot_token
        if not token:
            raise ConfigurationError("TELEGRAM_BOT_TOKEN is not configured.")
        return token

    def _method_url(self, method: str) -> str:
        return f"{self._base_url}/bot{self._bot_token()}/{method}"

    def download_url(self, file_path: str) -> str:
        return f"{self._base_url}/file/bot{self._bot_token()}/{file_path}"

    async def _call(
        self,
        method: str,
        *,
        params: Dict[str, Any] | None = None,
        data: Dict[str, Any] | None = None,
        files: Dict[str, Any] | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> Any:
        url = self._method_url(method)
        async with httpx.AsyncClient(
            timeout=timeout or self._api_timeout, transport=self._transport
        ) as client:
            try:
                if data is not None or files is not None:
                    response = await client.post(url, data=data, files=files)
                else:
                    response = await client.get(url, params=params)
            except httpx.HTTPError as exc:
                raise UpstreamFetchError(
                    f"Telegram {method} request failed ({type(exc).__name__})."
                ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamFetchError(
                f"Telegram {method} returned a non-JSON response "
                f"(status {response.status_code})."
            ) from exc

        if not payload.get("ok"):
            raise TelegramAPIError(
                method,
                int(payload.get("error_code") or response.status_code),
                payload.get("description"),
            )
        return payload.get("result")

    async def get_me(self) -> Dict[str, Any]:
        return await self._call("getMe")

    async def resolve_file(self, file_id: str) -> TelegramFile:
        """Look up a fresh download path for ``file_id``.

        Raises ``UpstreamLookupError`` when Telegram rejects the identifier
        (unknown id, or a file above the bot download limit).
        """
        try:
            result = await self._call("getFile", params={"file_id": file_id})
        except TelegramAPIError as exc:
            if exc.error_code == 400:
                raise UpstreamLookupError(
                    f"Telegram rejected file id: {exc.description}"
                ) from exc
            raise

        file_path = (result or {}).get("file_path")
        if not file_path:
            raise UpstreamLookupError("Telegram returned no file_path for the file.")
        return TelegramFile(
            file_id=result.get("file_id", file_id),
            file_path=file_path,
            file_size=result.get("file_size"),
            file_unique_id=result.get("file_unique_id"),
        )

    async def fetch_bytes(
        self, file: TelegramFile, *, range_header: str | None = None
    ) -> UpstreamStream:
        """Open a streaming download; the caller owns the returned stream."""
        url = self.download_url(file.file_path)
        headers = {"Range": range_header} if range_header else {}
        client = httpx.AsyncClient(timeout=self._stream_timeout, transport=self._transport)
        try:
            request = client.build_request("GET", url, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise UpstreamFetchError(
                f"File download failed ({type(exc).__name__})."
            ) from exc

        if response.status_code not in _RELAYED_STATUSES:
            status_code = response.status_code
            await response.aclose()
            await client.aclose()
            if status_code == 404:
                raise ResourceGoneError("File host no longer serves the file.")
            raise UpstreamFetchError(f"File download returned status {status_code}.")

        return UpstreamStream(response, client)

    async def send_video(
        self,
        *,
        filename: str,
        content: bytes,
        content_type: str = "video/mp4",
    ) -> Dict[str, Any]:
        """Upload a video to the storage chat and return Telegram's video object."""
        chat_id = self._settings.chat_id
        if not chat_id:
            raise ConfigurationError("TELEGRAM_CHAT_ID is not configured.")

        message = await self._call(
            "sendVideo",
            data={"chat_id": chat_id, "supports_streaming": "true"},
            files={"video": (filename, content, content_type)},
            timeout=httpx.Timeout(
                self._stream_timeout.read, connect=self._stream_timeout.connect
            ),
        )
        video = (message or {}).get("video") or (message or {}).get("document")
        if not video:
            raise UpstreamFetchError("Telegram sendVideo returned no video object.")
        return {**video, "chat_id": str(chat_id)}


__all__ = [
    "FileHost",
    "TelegramAPIError",
    "TelegramBotClient",
    "TelegramFile",
    "UpstreamStream",
]
