"""SQLite-backed persistence for issued video access tokens."""

from __future__ import annotations

import hashlib
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from app.models.video import AccessTokenRecord


def hash_token(token: str) -> str:
    """Return the digest used to key a token record."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AccessTokenStore:
    """Token records with an atomic use counter."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS video_access_tokens (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_hash TEXT UNIQUE NOT NULL,
                    file_id TEXT NOT NULL,
                    movie_id INTEGER,
                    user_ip TEXT,
                    user_agent TEXT,
                    created_at TEXT NOT NULL,
                    expires_at_ms INTEGER NOT NULL,
                    used_count INTEGER NOT NULL DEFAULT 0,
                    max_uses INTEGER NOT NULL DEFAULT 5,
                    CHECK (used_count <= max_uses)
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_video_access_tokens_expires_at
                ON video_access_tokens(expires_at_ms)
                """
            )

    def create(self, record: AccessTokenRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO video_access_tokens (
                    token_hash, file_id, movie_id, user_ip, user_agent,
                    created_at, expires_at_ms, used_count, max_uses
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(token_hash) DO NOTHING
                """,
                (
                    record.token_hash,
                    record.file_id,
                    record.movie_id,
                    record.user_ip,
                    record.user_agent,
                    record.created_at.isoformat(),
                    record.expires_at_ms,
                    record.used_count,
                    record.max_uses,
                ),
            )

    def get(self, token_hash: str) -> Optional[AccessTokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM video_access_tokens WHERE token_hash = ?",
                (token_hash,),
            ).fetchone()
        if not row:
            return None
        data = dict(row)
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        return AccessTokenRecord.model_validate(data)

    def is_live(self, token_hash: str, *, now_ms: int) -> bool:
        """Whether a record exists and has not expired; spends nothing."""
        record = self.get(token_hash)
        return record is not None and record.expires_at_ms >= now_ms

    def consume(self, token_hash: str, *, now_ms: int) -> bool:
        """Spend one use of a live token.

        The check and the increment are one statement, so concurrent callers
        cannot both take the last remaining use.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE video_access_tokens
                SET used_count = used_count + 1
                WHERE token_hash = ?
                  AND used_count < max_uses
                  AND expires_at_ms >= ?
                """,
                (token_hash, now_ms),
            )
        return cursor.rowcount == 1

    def purge_expired(self, *, before_ms: int) -> int:
        """Delete records that expired before ``before_ms``; returns the count."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM video_access_tokens WHERE expires_at_ms < ?",
                (before_ms,),
            )
        return cursor.rowcount


__all__ = ["AccessTokenStore", "hash_token"]
