try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import API_BASE_URL, BOT_TOKEN, FakeTelegram
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import API_BASE_URL, BOT_TOKEN, FakeTelegram  # type: ignore

import time
from datetime import datetime, timezone

import pytest

from app.clients.sqlite_store import ContentStore
from app.clients.telegram import TelegramBotClient
from app.clients.token_store import AccessTokenStore, hash_token
from app.core.config import StreamSettings, TelegramSettings
from app.core.errors import ResourceGoneError, UnauthorizedError, UpstreamFetchError
from app.models.video import AccessTokenRecord
from app.services.analytics import AnalyticsService
from app.services.stream_proxy import StreamProxy, _content_type, _is_playback_start
from app.services.token_codec import encode_token
from app.services.video_access import TokenVerifier

pytestmark = pytest.mark.anyio("asyncio")

VIDEO = bytes(range(256)) * 4
EXPIRES = int(time.time() * 1000) + 3_600_000


@pytest.fixture()
def telegram() -> FakeTelegram:
    return FakeTelegram({"FILE123": VIDEO})


@pytest.fixture()
def content_store(tmp_path) -> ContentStore:
    store = ContentStore(str(tmp_path / "content.db"))
    store.create_movie(
        slug="movie-x", title="Movie X", published=True, telegram_file_id="FILE123"
    )
    return store


@pytest.fixture()
def proxy(telegram, content_store) -> StreamProxy:
    settings = StreamSettings(VIDEO_TOKEN_MAX_USES=0, STREAM_CHUNK_SIZE=100)
    client = TelegramBotClient(
        TelegramSettings(TELEGRAM_BOT_TOKEN=BOT_TOKEN, TELEGRAM_API_BASE_URL=API_BASE_URL),
        settings,
        transport=telegram.transport,
    )
    return StreamProxy(
        verifier=TokenVerifier(settings),
        file_host=client,
        analytics=AnalyticsService(content_store),
        settings=settings,
    )


async def _read(stream) -> bytes:
    return b"".join([chunk async for chunk in stream.body()])


async def test_full_stream_relays_bytes_and_headers(proxy, content_store) -> None:
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    stream = await proxy.open(token, "203.0.113.5", requester_agent="pytest")
    body = await _read(stream)

    assert stream.status_code == 200
    assert body == VIDEO
    assert stream.bytes_sent == len(VIDEO)
    assert stream.upstream.closed
    assert stream.headers["Content-Type"] == "video/mp4"
    assert stream.headers["Accept-Ranges"] == "bytes"
    assert stream.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert stream.headers["Pragma"] == "no-cache"
    assert stream.headers["X-Content-Type-Options"] == "nosniff"
    assert stream.headers["Content-Length"] == str(len(VIDEO))

    event = content_store.get_stream_event(stream.stream_id)
    assert stream.headers["X-Stream-Id"] == str(stream.stream_id)
    assert event.stream_source == "telegram"
    assert event.movie_id == content_store.find_by_slug("movie-x").id
    assert event.user_agent == "pytest"


async def test_range_request_is_forwarded(proxy, telegram) -> None:
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    stream = await proxy.open(token, "203.0.113.5", range_header="bytes=10-19")
    body = await _read(stream)

    assert stream.status_code == 206
    assert body == VIDEO[10:20]
    assert stream.headers["Content-Range"] == f"bytes 10-19/{len(VIDEO)}"
    assert "X-Stream-Id" not in stream.headers
    assert telegram.downloads()[0].headers["range"] == "bytes=10-19"


async def test_unsatisfiable_range_is_relayed(proxy) -> None:
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    stream = await proxy.open(token, "203.0.113.5", range_header="bytes=5000-")
    await _read(stream)

    assert stream.status_code == 416
    assert stream.stream_id is None


async def test_invalid_token_never_reaches_upstream(proxy, telegram) -> None:
    expired = encode_token("FILE123", "203.0.113.5", 1_000)

    with pytest.raises(UnauthorizedError):
        await proxy.open(expired, "203.0.113.5")
    with pytest.raises(UnauthorizedError):
        await proxy.open("garbage", "203.0.113.5")

    assert telegram.requests == []


async def test_rejected_file_id_is_gone(proxy) -> None:
    token = encode_token("FILE404", "203.0.113.5", EXPIRES)

    with pytest.raises(ResourceGoneError):
        await proxy.open(token, "203.0.113.5")


async def test_missing_download_is_gone(proxy, telegram) -> None:
    telegram.gone.add("FILE123")
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    with pytest.raises(ResourceGoneError):
        await proxy.open(token, "203.0.113.5")


async def test_upstream_failure_is_fetch_error(proxy, telegram) -> None:
    telegram.download_status = 500
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    with pytest.raises(UpstreamFetchError):
        await proxy.open(token, "203.0.113.5")


async def test_abandoned_stream_closes_upstream(proxy) -> None:
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)
    stream = await proxy.open(token, "203.0.113.5")

    body = stream.body()
    first = await body.__anext__()
    await body.aclose()
    await stream.aclose()

    assert len(first) == 100
    assert stream.upstream.closed


async def test_transfer_deadline_stops_relay(proxy) -> None:
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)
    stream = await proxy.open(token, "203.0.113.5")
    stream.deadline = time.monotonic() - 1

    body = await _read(stream)

    assert body == b""
    assert stream.upstream.closed


@pytest.fixture()
def token_store(tmp_path) -> AccessTokenStore:
    return AccessTokenStore(str(tmp_path / "content.db"))


def _limited_proxy(telegram, content_store, token_store, max_uses: int) -> StreamProxy:
    settings = StreamSettings(VIDEO_TOKEN_MAX_USES=max_uses, STREAM_CHUNK_SIZE=100)
    client = TelegramBotClient(
        TelegramSettings(TELEGRAM_BOT_TOKEN=BOT_TOKEN, TELEGRAM_API_BASE_URL=API_BASE_URL),
        settings,
        transport=telegram.transport,
    )
    return StreamProxy(
        verifier=TokenVerifier(settings, token_store),
        file_host=client,
        analytics=AnalyticsService(content_store),
        settings=settings,
    )


def _persist(token_store: AccessTokenStore, token: str, max_uses: int) -> None:
    token_store.create(
        AccessTokenRecord(
            token_hash=hash_token(token),
            file_id="FILE123",
            created_at=datetime.now(timezone.utc),
            expires_at_ms=EXPIRES,
            max_uses=max_uses,
        )
    )


async def test_only_playback_starts_spend_uses(telegram, content_store, token_store) -> None:
    proxy = _limited_proxy(telegram, content_store, token_store, max_uses=1)
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)
    _persist(token_store, token, max_uses=1)

    for range_header in ("bytes=10-19", "bytes=500-", "bytes=5000-"):
        stream = await proxy.open(token, "203.0.113.5", range_header=range_header)
        await _read(stream)
    assert token_store.get(hash_token(token)).used_count == 0

    stream = await proxy.open(token, "203.0.113.5")
    await _read(stream)
    assert token_store.get(hash_token(token)).used_count == 1

    with pytest.raises(UnauthorizedError):
        await proxy.open(token, "203.0.113.5", range_header="bytes=0-")
    assert len(telegram.downloads()) == 5


async def test_failed_fetch_keeps_use(telegram, content_store, token_store) -> None:
    proxy = _limited_proxy(telegram, content_store, token_store, max_uses=1)
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)
    _persist(token_store, token, max_uses=1)
    telegram.download_status = 500

    with pytest.raises(UpstreamFetchError):
        await proxy.open(token, "203.0.113.5")

    assert token_store.get(hash_token(token)).used_count == 0


async def test_unrecorded_token_never_reaches_upstream(
    telegram, content_store, token_store
) -> None:
    proxy = _limited_proxy(telegram, content_store, token_store, max_uses=3)
    token = encode_token("FILE123", "203.0.113.5", EXPIRES)

    with pytest.raises(UnauthorizedError):
        await proxy.open(token, "203.0.113.5", range_header="bytes=10-19")

    assert telegram.requests == []


def test_playback_start_detection() -> None:
    assert _is_playback_start(None)
    assert _is_playback_start("bytes=0-")
    assert not _is_playback_start("bytes=0-1")
    assert not _is_playback_start("bytes=1024-")


def test_content_type_falls_back_to_file_extension() -> None:
    assert _content_type("video/webm", "videos/a.mp4") == "video/webm"
    assert _content_type("application/octet-stream", "videos/a.mkv") in {
        "video/x-matroska",
        "video/mp4",
    }
    assert _content_type(None, "videos/file_7") == "video/mp4"
