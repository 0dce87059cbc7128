try:
    from . import _bootstrap  # noqa: F401
    from ._fakes import API_BASE_URL, BOT_TOKEN, FakeTelegram
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401
    from _fakes import API_BASE_URL, BOT_TOKEN, FakeTelegram  # type: ignore

import httpx
import pytest

from app.clients.sqlite_store import ContentStore
from app.clients.telegram import TelegramBotClient
from app.clients.token_store import AccessTokenStore
from app.core.config import StreamSettings, TelegramSettings
from app.main import app
from app.services import AnalyticsService, StreamProxy, TokenVerifier, VideoAccessIssuer
from app.services.token_codec import decode_token, encode_token

pytestmark = pytest.mark.anyio("asyncio")

VIDEO = b"0123456789" * 100


class RecordingProxy:
    """Wraps the real proxy so tests can inspect the opened stream."""

    def __init__(self, proxy: StreamProxy) -> None:
        self._proxy = proxy
        self.streams = []

    async def open(self, *args, **kwargs):
        stream = await self._proxy.open(*args, **kwargs)
        self.streams.append(stream)
        return stream


@pytest.fixture()
def telegram() -> FakeTelegram:
    return FakeTelegram({"FILE123": VIDEO})


@pytest.fixture()
def overrides(tmp_path, telegram):
    from app import dependencies

    db_path = str(tmp_path / "reelpress.db")
    content_store = ContentStore(db_path)
    token_store = AccessTokenStore(db_path)
    content_store.create_movie(
        slug="movie-x", title="Movie X", published=True, telegram_file_id="FILE123"
    )
    settings = StreamSettings(VIDEO_TOKEN_EXPIRY=3600, VIDEO_TOKEN_MAX_USES=5)
    client = TelegramBotClient(
        TelegramSettings(TELEGRAM_BOT_TOKEN=BOT_TOKEN, TELEGRAM_API_BASE_URL=API_BASE_URL),
        settings,
        transport=telegram.transport,
    )
    analytics = AnalyticsService(content_store)
    issuer = VideoAccessIssuer(
        content_store=content_store,
        file_host=client,
        analytics=analytics,
        settings=settings,
        token_store=token_store,
    )
    proxy = RecordingProxy(
        StreamProxy(
            verifier=TokenVerifier(settings, token_store),
            file_host=client,
            analytics=analytics,
            settings=settings,
        )
    )

    app.dependency_overrides.clear()
    app.dependency_overrides.update(
        {
            dependencies.get_video_access_issuer: lambda: issuer,
            dependencies.get_stream_proxy: lambda: proxy,
            dependencies.get_analytics_service: lambda: analytics,
            dependencies.get_content_store: lambda: content_store,
        }
    )

    yield content_store, proxy

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(overrides):
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://testserver",
    ) as test_client:
        yield test_client


async def test_video_access_returns_stream_url(client) -> None:
    response = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"streamUrl", "directUrlFallback", "expiresAt", "fileSize"}
    assert body["directUrlFallback"] is None
    assert body["fileSize"] == len(VIDEO)
    token = body["streamUrl"].rsplit("/", 1)[-1]
    assert body["streamUrl"] == f"/api/stream/{token}"
    access = decode_token(token)
    assert access.resource_locator_id == "FILE123"
    assert access.requester_identity == "127.0.0.1"


async def test_video_access_prefers_forwarded_address(client) -> None:
    response = await client.post(
        "/api/video-access",
        json={"movie_slug": "movie-x"},
        headers={"X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
    )

    token = response.json()["streamUrl"].rsplit("/", 1)[-1]
    assert decode_token(token).requester_identity == "198.51.100.7"


async def test_video_access_unknown_movie(client) -> None:
    response = await client.post("/api/video-access", json={"resourceSlug": "nope"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Movie not found."


async def test_video_access_requires_slug(client) -> None:
    response = await client.post("/api/video-access", json={})

    assert response.status_code == 422


async def test_video_access_without_bot_token(client, overrides) -> None:
    from app import dependencies

    content_store, _ = overrides
    settings = StreamSettings(VIDEO_TOKEN_MAX_USES=0)
    unconfigured = VideoAccessIssuer(
        content_store=content_store,
        file_host=TelegramBotClient(TelegramSettings(TELEGRAM_BOT_TOKEN=None), settings),
        analytics=AnalyticsService(content_store),
        settings=settings,
    )
    app.dependency_overrides[dependencies.get_video_access_issuer] = lambda: unconfigured

    response = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})

    assert response.status_code == 503


async def test_issue_then_stream(client, overrides, telegram) -> None:
    content_store, proxy = overrides
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    stream_url = access.json()["streamUrl"]

    response = await client.get(stream_url, headers={"User-Agent": "pytest-player"})

    assert response.status_code == 200
    assert response.content == VIDEO
    assert response.headers["content-type"] == "video/mp4"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
    assert response.headers["x-content-type-options"] == "nosniff"
    stream_id = int(response.headers["x-stream-id"])
    assert content_store.get_stream_event(stream_id).user_agent == "pytest-player"
    assert proxy.streams[0].upstream.closed
    assert telegram.downloads()[0].url.path.endswith("/videos/FILE123.mp4")


async def test_stream_forwards_range(client) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})

    response = await client.get(
        access.json()["streamUrl"], headers={"Range": "bytes=100-199"}
    )

    assert response.status_code == 206
    assert response.content == VIDEO[100:200]
    assert response.headers["content-range"] == f"bytes 100-199/{len(VIDEO)}"
    assert "x-stream-id" not in response.headers


async def test_seeking_does_not_spend_uses(client) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    stream_url = access.json()["streamUrl"]

    assert (await client.get(stream_url)).status_code == 200
    statuses = [
        (
            await client.get(stream_url, headers={"Range": f"bytes={offset}-{offset + 9}"})
        ).status_code
        for offset in range(10, 100, 10)
    ]

    assert statuses == [206] * 9


async def test_stream_use_limit_counts_playback_starts(client) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    stream_url = access.json()["streamUrl"]

    statuses = [(await client.get(stream_url)).status_code for _ in range(5)]
    statuses.append(
        (await client.get(stream_url, headers={"Range": "bytes=0-"})).status_code
    )

    assert statuses == [200] * 5 + [401]


async def test_failed_upstream_fetch_does_not_spend_use(client, telegram) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    stream_url = access.json()["streamUrl"]

    telegram.download_status = 503
    failures = [(await client.get(stream_url)).status_code for _ in range(5)]
    telegram.download_status = None
    response = await client.get(stream_url)

    assert failures == [502] * 5
    assert response.status_code == 200
    assert response.content == VIDEO


async def test_stream_rejects_forged_token(client, telegram) -> None:
    forged = encode_token("FILE123", "127.0.0.1", 9_999_999_999_999)

    response = await client.get(f"/api/stream/{forged}")

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token."
    assert telegram.downloads() == []


async def test_stream_rejects_garbage_token(client) -> None:
    response = await client.get("/api/stream/definitely-not-a-token")

    assert response.status_code == 401


async def test_stream_reports_gone_file(client, telegram) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    telegram.gone.add("FILE123")

    response = await client.get(access.json()["streamUrl"])

    assert response.status_code == 404
    assert BOT_TOKEN not in response.text


async def test_stream_reports_upstream_failure(client, telegram) -> None:
    access = await client.post("/api/video-access", json={"resourceSlug": "movie-x"})
    telegram.download_status = 503

    response = await client.get(access.json()["streamUrl"])

    assert response.status_code == 502
    assert response.json()["detail"] == "Video stream unavailable."
