"""
Domain models persisted by the content and token stores.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

StreamSource = Literal["youtube", "telegram", "archive", "drive"]


class Movie(BaseModel):
    """A movie row as stored in the ``movies`` table."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    summary: Optional[str] = None
    poster_url: Optional[str] = None
    video_embed_url: Optional[str] = None
    video_type: Optional[str] = None
    published: bool = False
    telegram_file_id: Optional[str] = None
    telegram_file_unique_id: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    video_duration: Optional[int] = Field(None, description="Length in seconds.")
    video_file_size: Optional[int] = Field(None, description="Size in bytes.")
    video_width: Optional[int] = None
    video_height: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AccessTokenRecord(BaseModel):
    """Persisted companion of an issued access token."""

    token_hash: str = Field(..., description="SHA-256 hex digest of the wire token.")
    file_id: str
    movie_id: Optional[int] = None
    user_ip: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime
    expires_at_ms: int
    used_count: int = 0
    max_uses: int = 5


class StreamEvent(BaseModel):
    """One playback attempt, completed at most once."""

    id: int
    movie_id: Optional[int] = None
    file_id: Optional[str] = None
    user_ip: Optional[str] = None
    user_agent: Optional[str] = None
    stream_source: StreamSource
    quality_requested: Optional[str] = None
    stream_duration: Optional[int] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


__all__ = ["AccessTokenRecord", "Movie", "StreamEvent", "StreamSource"]
