#!/usr/bin/env python
"""Delete expired video access token records.

Intended to run from cron::

    python -m scripts.purge_access_tokens --grace-seconds 3600
"""

from __future__ import annotations

import argparse
import sqlite3
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.clients.token_store import AccessTokenStore  # noqa: E402
from app.core.config import get_settings  # noqa: E402


def purge(database: str, grace_seconds: int, now_ms: int | None = None) -> int:
    """Remove records that expired more than ``grace_seconds`` ago."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    store = AccessTokenStore(database)
    return store.purge_expired(before_ms=now_ms - grace_seconds * 1000)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--database",
        default=None,
        help="SQLite database path (default: DATABASE_PATH from settings).",
    )
    parser.add_argument(
        "--grace-seconds",
        type=int,
        default=0,
        help="Keep records for this long after they expire.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.grace_seconds < 0:
        print("--grace-seconds must not be negative.", file=sys.stderr)
        return 2

    database = args.database or get_settings().database_path
    try:
        removed = purge(database, args.grace_seconds)
    except sqlite3.Error as exc:
        print(f"Failed to purge access tokens: {exc}", file=sys.stderr)
        return 1
    print(f"Removed {removed} expired access token record(s) from {database}.")
    return 0


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
