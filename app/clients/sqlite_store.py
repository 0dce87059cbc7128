"""SQLite-backed content store for movies, analytics events and stream events."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.models.video import Movie, StreamEvent, StreamSource

_MOVIE_COLUMNS = (
    "slug",
    "title",
    "summary",
    "poster_url",
    "video_embed_url",
    "video_type",
    "published",
    "telegram_file_id",
    "telegram_file_unique_id",
    "telegram_chat_id",
    "video_duration",
    "video_file_size",
    "video_width",
    "video_height",
)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ContentStore:
    """Authoritative movie catalogue plus the append-only analytics tables."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS movies (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    slug TEXT UNIQUE NOT NULL,
                    title TEXT NOT NULL,
                    summary TEXT,
                    poster_url TEXT,
                    video_embed_url TEXT,
                    video_type TEXT,
                    published INTEGER NOT NULL DEFAULT 0,
                    telegram_file_id TEXT,
                    telegram_file_unique_id TEXT,
                    telegram_chat_id TEXT,
                    video_duration INTEGER,
                    video_file_size INTEGER,
                    video_width INTEGER,
                    video_height INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS analytics (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_type TEXT NOT NULL,
                    page_url TEXT,
                    blog_id INTEGER,
                    movie_id INTEGER,
                    user_ip TEXT,
                    user_agent TEXT,
                    referrer TEXT,
                    session_id TEXT,
                    metadata TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS video_streams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    movie_id INTEGER,
                    file_id TEXT,
                    user_ip TEXT,
                    user_agent TEXT,
                    stream_duration INTEGER,
                    quality_requested TEXT,
                    stream_source TEXT CHECK(
                        stream_source IN ('youtube', 'telegram', 'archive', 'drive')
                    ),
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    FOREIGN KEY (movie_id) REFERENCES movies(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_movies_telegram_file_id
                    ON movies(telegram_file_id);
                CREATE INDEX IF NOT EXISTS idx_analytics_created_at
                    ON analytics(created_at);
                CREATE INDEX IF NOT EXISTS idx_video_streams_movie_id
                    ON video_streams(movie_id);
                CREATE INDEX IF NOT EXISTS idx_video_streams_created_at
                    ON video_streams(created_at);
                """
            )

    def ping(self) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 AS ok").fetchone()
        return bool(row and row["ok"] == 1)

    def stats(self) -> Dict[str, int]:
        """Counts surfaced by the health endpoint."""
        since = (datetime.now(timezone.utc) - timedelta(hours=24)).isoformat(
            timespec="microseconds"
        )
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM movies WHERE published = 1) AS published_movies,
                    (SELECT COUNT(*) FROM analytics WHERE created_at >= ?) AS daily_analytics,
                    (SELECT COUNT(*) FROM video_streams WHERE created_at >= ?) AS daily_streams
                """,
                (since, since),
            ).fetchone()
        return dict(row)

    # Movies

    @staticmethod
    def _movie_values(fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - set(_MOVIE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown movie fields: {sorted(unknown)}")
        values = dict(fields)
        if "published" in values:
            values["published"] = int(bool(values["published"]))
        return values

    def create_movie(self, *, slug: str, title: str, **fields: Any) -> Movie:
        """Insert a movie; a duplicate slug raises ``sqlite3.IntegrityError``."""
        values = self._movie_values({"slug": slug, "title": title, **fields})
        column_list = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        now = _utcnow_iso()
        with self._connect() as conn:
            cursor = conn.execute(
                f"""
                INSERT INTO movies ({column_list}, created_at, updated_at)
                VALUES ({placeholders}, ?, ?)
                """,
                (*values.values(), now, now),
            )
            row = conn.execute(
                "SELECT * FROM movies WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
        return Movie.model_validate(dict(row))

    def update_movie(self, movie_id: int, **fields: Any) -> Optional[Movie]:
        """Change the given columns; ``None`` if the movie does not exist."""
        values = self._movie_values(fields)
        if not values:
            return self.get_movie(movie_id)
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE movies SET {assignments}, updated_at = ? WHERE id = ?",
                (*values.values(), _utcnow_iso(), movie_id),
            )
        if cursor.rowcount == 0:
            return None
        return self.get_movie(movie_id)

    def delete_movie(self, movie_id: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM movies WHERE id = ?", (movie_id,))
        return cursor.rowcount == 1

    def get_movie(self, movie_id: int) -> Optional[Movie]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM movies WHERE id = ?", (movie_id,)).fetchone()
        return Movie.model_validate(dict(row)) if row else None

    def list_movies(self) -> List[Movie]:
        """Every movie, drafts included, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM movies ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [Movie.model_validate(dict(row)) for row in rows]

    def find_by_slug(self, slug: str) -> Optional[Movie]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM movies WHERE slug = ?", (slug,)).fetchone()
        return Movie.model_validate(dict(row)) if row else None

    def find_published_by_slug(self, slug: str) -> Optional[Movie]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM movies WHERE slug = ? AND published = 1",
                (slug,),
            ).fetchone()
        return Movie.model_validate(dict(row)) if row else None

    def find_by_telegram_file_id(self, file_id: str) -> Optional[Movie]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM movies WHERE telegram_file_id = ? ORDER BY id LIMIT 1",
                (file_id,),
            ).fetchone()
        return Movie.model_validate(dict(row)) if row else None

    def list_published_movies(self) -> List[Movie]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM movies WHERE published = 1 ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [Movie.model_validate(dict(row)) for row in rows]

    def attach_telegram_video(
        self,
        slug: str,
        *,
        file_id: str,
        file_unique_id: Optional[str] = None,
        chat_id: Optional[str] = None,
        duration: Optional[int] = None,
        file_size: Optional[int] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Optional[Movie]:
        """Point a movie at an uploaded Telegram file; ``None`` if the slug is unknown."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE movies SET
                    telegram_file_id = ?,
                    telegram_file_unique_id = ?,
                    telegram_chat_id = ?,
                    video_duration = ?,
                    video_file_size = ?,
                    video_width = ?,
                    video_height = ?,
                    updated_at = ?
                WHERE slug = ?
                """,
                (
                    file_id,
                    file_unique_id,
                    chat_id,
                    duration,
                    file_size,
                    width,
                    height,
                    _utcnow_iso(),
                    slug,
                ),
            )
        if cursor.rowcount == 0:
            return None
        return self.find_by_slug(slug)

    # Analytics

    def record_event(
        self,
        event_type: str,
        *,
        page_url: Optional[str] = None,
        movie_id: Optional[int] = None,
        blog_id: Optional[int] = None,
        user_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
        session_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO analytics (
                    event_type, page_url, blog_id, movie_id, user_ip, user_agent,
                    referrer, session_id, metadata, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_type,
                    page_url,
                    blog_id,
                    movie_id,
                    user_ip,
                    user_agent,
                    referrer,
                    session_id,
                    json.dumps(metadata) if metadata else None,
                    _utcnow_iso(),
                ),
            )
        return int(cursor.lastrowid)

    def list_events(self, *, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM analytics"
        params: tuple[Any, ...] = ()
        if event_type:
            query += " WHERE event_type = ?"
            params = (event_type,)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        events = []
        for row in rows:
            event = dict(row)
            event["metadata"] = json.loads(event["metadata"]) if event["metadata"] else None
            events.append(event)
        return events

    def record_stream_start(
        self,
        *,
        stream_source: StreamSource,
        movie_id: Optional[int] = None,
        file_id: Optional[str] = None,
        user_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        quality_requested: Optional[str] = None,
    ) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO video_streams (
                    movie_id, file_id, user_ip, user_agent, quality_requested,
                    stream_source, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    movie_id,
                    file_id,
                    user_ip,
                    user_agent,
                    quality_requested,
                    stream_source,
                    _utcnow_iso(),
                ),
            )
        return int(cursor.lastrowid)

    def get_stream_event(self, stream_id: int) -> Optional[StreamEvent]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM video_streams WHERE id = ?", (stream_id,)
            ).fetchone()
        return StreamEvent.model_validate(dict(row)) if row else None

    def complete_stream(self, stream_id: int, *, duration_seconds: int) -> bool:
        """Set the completion fields once.

        Returns ``False`` when the event was already completed and raises
        ``LookupError`` when it does not exist.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE video_streams
                SET completed_at = ?, stream_duration = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (_utcnow_iso(), duration_seconds, stream_id),
            )
            if cursor.rowcount == 1:
                return True
            exists = conn.execute(
                "SELECT 1 FROM video_streams WHERE id = ?", (stream_id,)
            ).fetchone()
        if not exists:
            raise LookupError(f"Stream event {stream_id} does not exist.")
        return False


__all__ = ["ContentStore"]
