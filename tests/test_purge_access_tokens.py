try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timezone

from app.clients.token_store import AccessTokenStore
from app.models.video import AccessTokenRecord
from scripts import purge_access_tokens

NOW_MS = 1_700_000_000_000


def _record(token_hash: str, expires_at_ms: int) -> AccessTokenRecord:
    return AccessTokenRecord(
        token_hash=token_hash,
        file_id="FILE123",
        created_at=datetime.now(timezone.utc),
        expires_at_ms=expires_at_ms,
    )


def test_purge_respects_grace_period(tmp_path) -> None:
    db_path = str(tmp_path / "tokens.db")
    store = AccessTokenStore(db_path)
    store.create(_record("long-gone", NOW_MS - 7_200_000))
    store.create(_record("recent", NOW_MS - 60_000))
    store.create(_record("live", NOW_MS + 60_000))

    removed = purge_access_tokens.purge(db_path, grace_seconds=3600, now_ms=NOW_MS)

    assert removed == 1
    assert store.get("long-gone") is None
    assert store.get("recent") is not None
    assert store.get("live") is not None


def test_main_purges_configured_database(tmp_path, capsys) -> None:
    db_path = str(tmp_path / "tokens.db")
    store = AccessTokenStore(db_path)
    store.create(_record("expired", 1))

    exit_code = purge_access_tokens.main(["--database", db_path])

    assert exit_code == 0
    assert store.get("expired") is None
    assert "Removed 1" in capsys.readouterr().out


def test_main_rejects_negative_grace(tmp_path) -> None:
    exit_code = purge_access_tokens.main(
        ["--database", str(tmp_path / "tokens.db"), "--grace-seconds", "-5"]
    )

    assert exit_code == 2
