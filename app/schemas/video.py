"""
Pydantic models for movie listing, video access and analytics requests.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class VideoAccessRequest(BaseModel):
    """Request for a temporary stream URL."""

    resource_slug: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("resourceSlug", "resource_slug", "movie_slug"),
        description="Slug of the published movie to play.",
    )
    file_reference: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("fileReference", "file_reference", "file_id"),
        description="Optional Telegram file id; must match the movie's stored file.",
    )


class VideoAccessResponse(BaseModel):
    """Stream URL and expiry returned to the player."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    stream_url: str = Field(..., description="Relative URL of the proxied stream.")
    direct_url_fallback: Optional[str] = Field(
        None, description="Upstream URL, only when explicitly enabled."
    )
    expires_at: datetime
    file_size: Optional[int] = Field(None, description="Upstream-reported size in bytes.")


class StreamCompletionRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    duration_seconds: int = Field(..., ge=0, description="Seconds watched.")


class AnalyticsEventRequest(BaseModel):
    """Client-side analytics event."""

    event_type: str = Field(..., min_length=1)
    page_url: Optional[str] = None
    blog_id: Optional[int] = None
    movie_id: Optional[int] = None
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class PublicMovie(BaseModel):
    """Movie fields that are safe to show to site visitors."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    summary: Optional[str] = None
    poster_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    video_type: Optional[str] = None
    video_duration: Optional[int] = None
    has_hosted_video: bool = False


class VideoSource(BaseModel):
    type: str = Field(..., description="youtube, telegram, archive or drive.")
    quality: str
    url: Optional[str] = None
    file_id: Optional[str] = None
    primary: bool = False
    requires_unlock: bool = False


class VideoSourcesResponse(BaseModel):
    movie: PublicMovie
    sources: List[VideoSource] = Field(default_factory=list)


class AnalyticsBatchRequest(BaseModel):
    """Several client-side events recorded in one call."""

    events: List[AnalyticsEventRequest] = Field(..., min_length=1, max_length=100)


class AnalyticsBatchResult(BaseModel):
    processed: int
    accepted: int
    rejected: int
    errors: List[str] = Field(default_factory=list, description="First few rejections.")


class MovieCreateRequest(BaseModel):
    """Catalogue entry submitted by an administrator."""

    slug: str = Field(..., min_length=1, max_length=200, pattern=_SLUG_PATTERN)
    title: str = Field(..., min_length=1, max_length=300)
    summary: Optional[str] = None
    poster_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    video_type: str = Field("youtube", description="youtube, telegram, archive or drive.")
    published: bool = False
    telegram_file_id: Optional[str] = None


class MovieUpdateRequest(BaseModel):
    """Partial update; only the fields sent are changed."""

    slug: Optional[str] = Field(
        None, min_length=1, max_length=200, pattern=_SLUG_PATTERN
    )
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    summary: Optional[str] = None
    poster_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    video_type: Optional[str] = None
    published: Optional[bool] = None
    telegram_file_id: Optional[str] = None


class BulkImportRequest(BaseModel):
    movies: List[MovieCreateRequest] = Field(..., min_length=1, max_length=100)


class BulkImportResult(BaseModel):
    imported: int
    errors: List[str] = Field(default_factory=list)


__all__ = [
    "AnalyticsBatchRequest",
    "AnalyticsBatchResult",
    "AnalyticsEventRequest",
    "BulkImportRequest",
    "BulkImportResult",
    "MovieCreateRequest",
    "MovieUpdateRequest",
    "PublicMovie",
    "StreamCompletionRequest",
    "VideoAccessRequest",
    "VideoAccessResponse",
    "VideoSource",
    "VideoSourcesResponse",
]
