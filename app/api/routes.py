"""
FastAPI routes for movie listing, secure video access and Telegram tooling.
"""

from __future__ import annotations

import hmac
import logging
import sqlite3
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from app.core.errors import (
    ConfigurationError,
    ResourceGoneError,
    ResourceNotFoundError,
    UnauthorizedError,
    UpstreamFetchError,
    UpstreamLookupError,
    VideoAccessError,
)
from app.dependencies import (
    AdminDependency,
    get_analytics_service,
    get_app_settings,
    get_content_store,
    get_stream_proxy,
    get_telegram_client,
    get_video_access_issuer,
)
from app.models.video import Movie
from app.schemas import (
    AnalyticsBatchRequest,
    AnalyticsBatchResult,
    AnalyticsEventRequest,
    BulkImportRequest,
    BulkImportResult,
    MovieCreateRequest,
    MovieUpdateRequest,
    PublicMovie,
    StreamCompletionRequest,
    TelegramUpdate,
    TelegramUploadResult,
    VideoAccessRequest,
    VideoAccessResponse,
    VideoSource,
    VideoSourcesResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


# Generic details only; exception text may describe upstream state.
_ERROR_RESPONSES: tuple[tuple[type[VideoAccessError], HTTPStatus, str], ...] = (
    (UnauthorizedError, HTTPStatus.UNAUTHORIZED, "Invalid or expired token."),
    (ResourceNotFoundError, HTTPStatus.NOT_FOUND, "Movie not found."),
    (ResourceGoneError, HTTPStatus.NOT_FOUND, "Video no longer available."),
    (ConfigurationError, HTTPStatus.SERVICE_UNAVAILABLE, "Video service unavailable."),
    (UpstreamLookupError, HTTPStatus.SERVICE_UNAVAILABLE, "Video temporarily unavailable."),
    (UpstreamFetchError, HTTPStatus.BAD_GATEWAY, "Video stream unavailable."),
)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    content_store: Annotated[Any, Depends(get_content_store)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> dict:
    """Report database reachability and integration configuration."""
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        database_ok = content_store.ping()
        stats = content_store.stats()
    except sqlite3.Error as exc:
        logger.error("Health check database failure: %s", exc)
        return JSONResponse(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "timestamp": timestamp,
                "checks": {"database": "error"},
            },
        )

    return {
        "status": "healthy" if database_ok else "degraded",
        "timestamp": timestamp,
        "checks": {
            "database": "ok" if database_ok else "error",
            "telegram_integration": (
                "configured" if settings.telegram.configured else "not_configured"
            ),
        },
        "stats": stats,
    }


@router.get("/movies", response_model=list[PublicMovie])
async def list_movies(
    content_store: Annotated[Any, Depends(get_content_store)],
) -> list[PublicMovie]:
    """List published movies, newest first."""
    return [_public_movie(movie) for movie in content_store.list_published_movies()]


@router.get("/movies/{slug}", response_model=PublicMovie)
async def get_movie(
    slug: str,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> PublicMovie:
    movie = content_store.find_published_by_slug(slug)
    if not movie:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")
    return _public_movie(movie)


@router.get("/movies/{slug}/video-sources", response_model=VideoSourcesResponse)
async def get_video_sources(
    slug: str,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> VideoSourcesResponse:
    """Describe the playable sources for a movie.

    Hosted Telegram files are listed by id only; players must call
    ``/video-access`` to obtain a stream URL.
    """
    movie = content_store.find_published_by_slug(slug)
    if not movie:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")

    sources: list[VideoSource] = []
    if movie.video_embed_url:
        sources.append(
            VideoSource(
                type=movie.video_type or "youtube",
                url=movie.video_embed_url,
                quality="HD",
                primary=True,
            )
        )
    if movie.telegram_file_id:
        sources.append(
            VideoSource(
                type="telegram",
                file_id=movie.telegram_file_id,
                quality="Original",
                requires_unlock=True,
            )
        )
    return VideoSourcesResponse(movie=_public_movie(movie), sources=sources)


@router.post("/analytics", status_code=HTTPStatus.CREATED)
async def record_analytics_event(
    payload: AnalyticsEventRequest,
    request: Request,
    analytics: Annotated[Any, Depends(get_analytics_service)],
) -> dict:
    """Record a client-side analytics event."""
    try:
        event_id = analytics.record_event(
            payload.event_type,
            page_url=payload.page_url,
            movie_id=payload.movie_id,
            blog_id=payload.blog_id,
            session_id=payload.session_id,
            metadata=payload.metadata,
            user_ip=_client_identity(request),
            user_agent=request.headers.get("user-agent"),
            referrer=request.headers.get("referer"),
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Invalid event type."
        ) from exc
    except sqlite3.Error as exc:
        logger.error("Failed to record analytics event: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            detail="Failed to record event.",
        ) from exc
    return {"status": "recorded", "event_id": event_id}


@router.post(
    "/analytics/batch",
    response_model=AnalyticsBatchResult,
    status_code=HTTPStatus.CREATED,
)
async def record_analytics_batch(
    payload: AnalyticsBatchRequest,
    request: Request,
    analytics: Annotated[Any, Depends(get_analytics_service)],
) -> AnalyticsBatchResult:
    """Record several events; invalid ones are counted and skipped."""
    user_ip = _client_identity(request)
    user_agent = request.headers.get("user-agent")
    referrer = request.headers.get("referer")
    accepted = 0
    errors: list[str] = []
    for index, event in enumerate(payload.events):
        try:
            analytics.record_event(
                event.event_type,
                page_url=event.page_url,
                movie_id=event.movie_id,
                blog_id=event.blog_id,
                session_id=event.session_id,
                metadata=event.metadata,
                user_ip=user_ip,
                user_agent=user_agent,
                referrer=referrer,
            )
        except ValueError:
            errors.append(f"Event {index}: invalid event type.")
            continue
        except sqlite3.Error as exc:
            logger.error("Failed to record analytics event %d: %s", index, exc)
            errors.append(f"Event {index}: storage failure.")
            continue
        accepted += 1

    return AnalyticsBatchResult(
        processed=len(payload.events),
        accepted=accepted,
        rejected=len(errors),
        errors=errors[:5],
    )


@router.post("/video-access", response_model=VideoAccessResponse)
async def request_video_access(
    payload: VideoAccessRequest,
    request: Request,
    issuer: Annotated[Any, Depends(get_video_access_issuer)],
) -> VideoAccessResponse:
    """Mint a temporary stream URL for a published movie."""
    try:
        issued = await issuer.issue(
            movie_slug=payload.resource_slug,
            requester_identity=_client_identity(request),
            requester_agent=request.headers.get("user-agent"),
            file_reference=payload.file_reference,
        )
    except VideoAccessError as exc:
        raise _http_error(exc) from exc

    return VideoAccessResponse(
        stream_url=issued.stream_url,
        direct_url_fallback=issued.direct_url,
        expires_at=issued.expires_at,
        file_size=issued.file_size,
    )


@router.get("/stream/{token}")
async def stream_video(
    token: str,
    request: Request,
    proxy: Annotated[Any, Depends(get_stream_proxy)],
) -> StreamingResponse:
    """Relay the upstream video bytes for a valid token."""
    try:
        stream = await proxy.open(
            token,
            _client_identity(request),
            range_header=request.headers.get("range"),
            requester_agent=request.headers.get("user-agent"),
        )
    except VideoAccessError as exc:
        raise _http_error(exc) from exc

    # The background task also runs when the client disconnects mid-stream.
    return StreamingResponse(
        stream.body(),
        status_code=stream.status_code,
        headers=stream.headers,
        background=BackgroundTask(stream.aclose),
    )


@router.post("/stream-events/{stream_id}/complete", status_code=HTTPStatus.OK)
async def complete_stream_event(
    stream_id: int,
    payload: StreamCompletionRequest,
    analytics: Annotated[Any, Depends(get_analytics_service)],
) -> dict:
    """Record how long a stream was watched. Only the first report counts."""
    try:
        updated = analytics.complete_stream(
            stream_id, duration_seconds=payload.duration_seconds
        )
    except LookupError as exc:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="Stream not found."
        ) from exc
    if not updated:
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT, detail="Stream already completed."
        )
    return {"status": "completed", "stream_id": stream_id}


# Nullable columns may be cleared; these may not.
_REQUIRED_MOVIE_FIELDS = ("slug", "title", "published")


@router.get("/admin/movies", response_model=list[Movie], dependencies=[AdminDependency])
async def admin_list_movies(
    content_store: Annotated[Any, Depends(get_content_store)],
) -> list[Movie]:
    """Every movie, drafts included."""
    return content_store.list_movies()


@router.post(
    "/admin/movies",
    response_model=Movie,
    status_code=HTTPStatus.CREATED,
    dependencies=[AdminDependency],
)
async def admin_create_movie(
    payload: MovieCreateRequest,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> Movie:
    try:
        movie = content_store.create_movie(**payload.model_dump())
    except sqlite3.IntegrityError as exc:
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT, detail="Slug already exists."
        ) from exc
    logger.info("Created movie %s", movie.slug)
    return movie


@router.post(
    "/admin/movies/bulk-import",
    response_model=BulkImportResult,
    dependencies=[AdminDependency],
)
async def admin_bulk_import_movies(
    payload: BulkImportRequest,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> BulkImportResult:
    """Create each movie independently; duplicates are reported, not fatal."""
    imported = 0
    errors: list[str] = []
    for entry in payload.movies:
        try:
            content_store.create_movie(**entry.model_dump())
        except sqlite3.IntegrityError:
            errors.append(f"{entry.slug}: slug already exists.")
            continue
        imported += 1
    logger.info("Bulk import created %d movies, skipped %d", imported, len(errors))
    return BulkImportResult(imported=imported, errors=errors)


@router.get(
    "/admin/movies/{movie_id}", response_model=Movie, dependencies=[AdminDependency]
)
async def admin_get_movie(
    movie_id: int,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> Movie:
    movie = content_store.get_movie(movie_id)
    if movie is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")
    return movie


@router.put(
    "/admin/movies/{movie_id}", response_model=Movie, dependencies=[AdminDependency]
)
async def admin_update_movie(
    movie_id: int,
    payload: MovieUpdateRequest,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> Movie:
    """Apply the fields present in the body."""
    changes = payload.model_dump(exclude_unset=True)
    for field_name in _REQUIRED_MOVIE_FIELDS:
        if field_name in changes and changes[field_name] is None:
            raise HTTPException(
                status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
                detail=f"{field_name} cannot be null.",
            )
    try:
        movie = content_store.update_movie(movie_id, **changes)
    except sqlite3.IntegrityError as exc:
        raise HTTPException(
            status_code=HTTPStatus.CONFLICT, detail="Slug already exists."
        ) from exc
    if movie is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")
    return movie


@router.delete("/admin/movies/{movie_id}", dependencies=[AdminDependency])
async def admin_delete_movie(
    movie_id: int,
    content_store: Annotated[Any, Depends(get_content_store)],
) -> dict:
    if not content_store.delete_movie(movie_id):
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")
    logger.info("Deleted movie %d", movie_id)
    return {"status": "deleted", "movie_id": movie_id}


@router.get("/admin/telegram/bot-info", dependencies=[AdminDependency])
async def telegram_bot_info(
    telegram: Annotated[Any, Depends(get_telegram_client)],
) -> dict:
    try:
        bot = await telegram.get_me()
    except VideoAccessError as exc:
        logger.warning("Telegram getMe failed: %s", exc)
        raise _http_error(exc) from exc
    return {"bot": bot}


@router.get("/admin/telegram/video-info/{file_id}", dependencies=[AdminDependency])
async def telegram_video_info(
    file_id: str,
    telegram: Annotated[Any, Depends(get_telegram_client)],
) -> dict:
    """Look up a hosted file without exposing its credential-bearing URL."""
    try:
        info = await telegram.resolve_file(file_id)
    except UpstreamLookupError as exc:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND, detail="File not found."
        ) from exc
    except VideoAccessError as exc:
        raise _http_error(exc) from exc
    return {
        "file_id": info.file_id,
        "file_unique_id": info.file_unique_id,
        "file_size": info.file_size,
        "file_path": info.file_path,
    }


@router.post(
    "/admin/telegram/upload",
    response_model=TelegramUploadResult,
    status_code=HTTPStatus.CREATED,
    dependencies=[AdminDependency],
)
async def upload_telegram_video(
    telegram: Annotated[Any, Depends(get_telegram_client)],
    content_store: Annotated[Any, Depends(get_content_store)],
    settings: Annotated[Any, Depends(get_app_settings)],
    video: UploadFile = File(..., description="Video file to store on Telegram."),
    movie_slug: str | None = Form(
        default=None, description="Attach the uploaded file to this movie."
    ),
) -> TelegramUploadResult:
    """Upload a video to the storage chat and optionally attach it to a movie."""
    if movie_slug and content_store.find_by_slug(movie_slug) is None:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail="Movie not found.")

    limit = settings.telegram.max_upload_bytes
    content = await video.read(limit + 1)
    if not content:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="No video file provided."
        )
    if len(content) > limit:
        raise HTTPException(
            status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE,
            detail=f"Video exceeds the {limit} byte upload limit.",
        )

    try:
        uploaded = await telegram.send_video(
            filename=video.filename or "video.mp4",
            content=content,
            content_type=video.content_type or "video/mp4",
        )
    except VideoAccessError as exc:
        logger.warning("Telegram upload failed: %s", exc)
        raise _http_error(exc) from exc

    if movie_slug:
        content_store.attach_telegram_video(
            movie_slug,
            file_id=uploaded["file_id"],
            file_unique_id=uploaded.get("file_unique_id"),
            chat_id=uploaded.get("chat_id"),
            duration=uploaded.get("duration"),
            file_size=uploaded.get("file_size"),
            width=uploaded.get("width"),
            height=uploaded.get("height"),
        )
        logger.info("Attached Telegram video to movie %s", movie_slug)

    return TelegramUploadResult(
        file_id=uploaded["file_id"],
        file_unique_id=uploaded.get("file_unique_id"),
        duration=uploaded.get("duration"),
        width=uploaded.get("width"),
        height=uploaded.get("height"),
        file_size=uploaded.get("file_size"),
        movie_slug=movie_slug,
    )


@router.post("/telegram/webhook", status_code=HTTPStatus.OK)
async def telegram_webhook(
    update: TelegramUpdate,
    settings: Annotated[Any, Depends(get_app_settings)],
    token: str | None = Query(None, description="Webhook secret for verification."),
) -> dict:
    """Reply with the file id of videos sent to the storage bot."""
    expected_token = settings.telegram.webhook_secret
    if expected_token and not (token and hmac.compare_digest(token, expected_token)):
        raise HTTPException(status_code=HTTPStatus.FORBIDDEN, detail="Invalid token")

    message = update.message or update.channel_post
    if not message:
        return {"status": "ignored"}

    video = message.video
    document = message.document or {}
    if not video and str(document.get("mime_type", "")).startswith("video/"):
        video = document
    if not video:
        return {"status": "ignored"}

    size_mb = round((video.get("file_size") or 0) / 1024 / 1024)
    return {
        "method": "sendMessage",
        "chat_id": message.chat.get("id"),
        "text": (
            "Video received!\n"
            f"File ID: {video['file_id']}\n"
            f"Duration: {video.get('duration', 0)}s\n"
            f"Size: {size_mb}MB"
        ),
    }


def _client_identity(request: Request) -> str:
    forwarded = request.headers.get("cf-connecting-ip") or request.headers.get(
        "x-forwarded-for"
    )
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _http_error(exc: VideoAccessError) -> HTTPException:
    for error_type, status_code, detail in _ERROR_RESPONSES:
        if isinstance(exc, error_type):
            if status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
                logger.warning("Video access failed: %s", exc)
            return HTTPException(status_code=status_code, detail=detail)
    logger.error("Unhandled video access error: %s", exc)
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Video access failed."
    )


def _public_movie(movie: Movie) -> PublicMovie:
    return PublicMovie(
        id=movie.id,
        slug=movie.slug,
        title=movie.title,
        summary=movie.summary,
        poster_url=movie.poster_url,
        video_embed_url=movie.video_embed_url,
        video_type=movie.video_type,
        video_duration=movie.video_duration,
        has_hosted_video=bool(movie.telegram_file_id),
    )


__all__ = ["router"]
