"""
Analytics event recording.

Recording is never allowed to fail a primary operation: the ``*_best_effort``
helpers log and swallow storage errors.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from app.clients.sqlite_store import ContentStore
from app.models.video import StreamSource

logger = logging.getLogger(__name__)

VALID_EVENT_TYPES = frozenset(
    {
        "page_view",
        "blog_view",
        "video_view",
        "watch_button_click",
        "ad_click",
        "video_play",
        "video_pause",
        "video_error",
        "video_loaded",
        "unlock_timer_start",
        "unlock_timer_complete",
        "unlock_button_click",
        "telegram_stream_start",
        "standard_stream_start",
        "ad_view",
        "monetization_ad_view",
        "monetization_unlock_timer_start",
        "monetization_unlock_timer_complete",
        "video_access_request",
    }
)

VIDEO_ACCESS_REQUEST = "video_access_request"


class AnalyticsService:
    """Validate and persist analytics and stream events."""

    def __init__(self, store: ContentStore) -> None:
        self._store = store

    def record_event(self, event_type: str, **fields: Any) -> int:
        """Persist an event, raising ``ValueError`` for unknown event types."""
        if event_type not in VALID_EVENT_TYPES:
            raise ValueError(f"Invalid event type: {event_type}")
        return self._store.record_event(event_type, **fields)

    def record_event_best_effort(self, event_type: str, **fields: Any) -> Optional[int]:
        try:
            return self.record_event(event_type, **fields)
        except (sqlite3.Error, ValueError) as exc:
            logger.warning("Failed to record %s analytics event: %s", event_type, exc)
            return None

    def start_stream_best_effort(
        self,
        *,
        stream_source: StreamSource,
        movie_id: Optional[int] = None,
        file_id: Optional[str] = None,
        user_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[int]:
        try:
            return self._store.record_stream_start(
                stream_source=stream_source,
                movie_id=movie_id,
                file_id=file_id,
                user_ip=user_ip,
                user_agent=user_agent,
            )
        except sqlite3.Error as exc:
            logger.warning("Failed to record stream start: %s", exc)
            return None

    def complete_stream(self, stream_id: int, *, duration_seconds: int) -> bool:
        """Mark a stream completed; ``False`` if it was already completed."""
        return self._store.complete_stream(stream_id, duration_seconds=duration_seconds)

    def movie_id_for_file(self, file_id: str) -> Optional[int]:
        try:
            movie = self._store.find_by_telegram_file_id(file_id)
        except sqlite3.Error as exc:
            logger.warning("Failed to look up movie for stream event: %s", exc)
            return None
        return movie.id if movie else None


__all__ = ["AnalyticsService", "VALID_EVENT_TYPES", "VIDEO_ACCESS_REQUEST"]
