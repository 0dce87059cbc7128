"""
Pydantic models for Telegram webhook updates and admin upload results.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramMessage(BaseModel):
    """Subset of Telegram message fields used by the webhook."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message_id: int
    date: int
    text: Optional[str] = None
    caption: Optional[str] = None
    document: Optional[Dict[str, Any]] = None
    video: Optional[Dict[str, Any]] = None
    photo: Optional[List[Dict[str, Any]]] = None
    chat: Dict[str, Any]
    from_: Optional[Dict[str, Any]] = Field(None, alias="from")


class TelegramUpdate(BaseModel):
    """Minimal Telegram update payload we care about."""

    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: Optional[TelegramMessage] = None
    channel_post: Optional[TelegramMessage] = None


class TelegramUploadResult(BaseModel):
    """Video metadata returned after an admin upload."""

    file_id: str
    file_unique_id: Optional[str] = None
    duration: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_size: Optional[int] = None
    movie_slug: Optional[str] = Field(
        None, description="Movie the upload was attached to, when requested."
    )


__all__ = ["TelegramMessage", "TelegramUpdate", "TelegramUploadResult"]
