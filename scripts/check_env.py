"""Verify that the ReelPress environment configuration is intact.

The tool performs two main checks:

1. It instantiates ``AppSettings`` from the provided ``.env`` file, surfacing
   malformed values (a non-numeric token expiry, an unknown identity binding
   policy) before the API starts failing requests. Optional integrations that
   are left unconfigured are reported as warnings.
2. It can record and verify a checksum for the ``.env`` file so unexpected
   edits are detected.

Example usages::

    python -m scripts.check_env record --env-file /srv/reelpress/.env \
        --hash-file /srv/reelpress/.env.sha256

    python -m scripts.check_env verify --env-file /srv/reelpress/.env \
        --hash-file /srv/reelpress/.env.sha256
"""

from __future__ import annotations

import argparse
import hashlib
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from app.core.config import AppSettings, _load_env_file

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_CHECKSUM_ERROR = 3
EXIT_RUNTIME_ERROR = 5


def _compute_hash(env_file: Path) -> str:
    return hashlib.sha256(env_file.read_bytes()).hexdigest()


def _load_settings(env_file: Path) -> AppSettings:
    """Load settings with the supplied env file taking part."""
    _load_env_file(str(env_file))
    return AppSettings(_env_file=str(env_file))  # type: ignore[call-arg]


def _configuration_warnings(settings: AppSettings) -> list[str]:
    """Describe optional features that will be disabled at runtime."""
    warnings: list[str] = []
    if not settings.telegram.bot_token:
        warnings.append("TELEGRAM_BOT_TOKEN is not set; video access will return 503.")
    if not settings.telegram.chat_id:
        warnings.append("TELEGRAM_CHAT_ID is not set; admin uploads are disabled.")
    if not settings.admin_api_key:
        warnings.append("ADMIN_API_KEY is not set; admin endpoints return 503.")
    if settings.stream.expose_direct_url:
        warnings.append(
            "VIDEO_EXPOSE_DIRECT_URL is enabled; responses will reveal the bot token."
        )
    if settings.stream.max_uses == 0:
        warnings.append("VIDEO_TOKEN_MAX_USES is 0; stream tokens are not use-limited.")
    return warnings


def _record_checksum(env_file: Path, hash_file: Path) -> int:
    checksum = _compute_hash(env_file)
    hash_file.write_text(f"{checksum}\n", encoding="utf-8")
    print(f"Recorded checksum to {hash_file} ({checksum})")
    return EXIT_OK


def _verify_checksum(env_file: Path, hash_file: Path) -> int:
    """Compare the current checksum to the recorded baseline."""
    if not hash_file.exists():
        print(
            f"Expected checksum file {hash_file} is missing. "
            "Re-run with the 'record' command to establish a baseline.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    expected = hash_file.read_text(encoding="utf-8").strip()
    actual = _compute_hash(env_file)
    if expected == actual:
        print("Environment checksum OK.")
        return EXIT_OK

    print(
        "Environment checksum mismatch!\n"
        f"  expected: {expected}\n"
        f"  actual:   {actual}\n"
        "Investigate recent changes before restarting the API.",
        file=sys.stderr,
    )
    return EXIT_CHECKSUM_ERROR


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate ReelPress settings and detect .env drift."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common_arguments(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )
        subparser.add_argument(
            "--strict",
            action="store_true",
            help="Treat configuration warnings as validation errors.",
        )

    for name, help_text in (
        ("record", "Validate settings and store the checksum baseline."),
        ("verify", "Validate settings and compare the checksum with the baseline."),
    ):
        subparser = subparsers.add_parser(name, help=help_text)
        add_common_arguments(subparser)
        subparser.add_argument(
            "--hash-file",
            required=True,
            type=Path,
            help="Location of the checksum baseline.",
        )

    check_parser = subparsers.add_parser(
        "check",
        help="Validate settings without touching any checksum files.",
    )
    add_common_arguments(check_parser)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    env_file: Path = args.env_file
    if not env_file.exists():
        print(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool.",
            file=sys.stderr,
        )
        return EXIT_RUNTIME_ERROR

    try:
        settings = _load_settings(env_file)
    except ValidationError as exc:
        print(
            "Settings validation failed. Invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except Exception as exc:  # pylint: disable=broad-except
        print(f"Unexpected error during validation: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    warnings = _configuration_warnings(settings)
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)
    if warnings and args.strict:
        return EXIT_VALIDATION_ERROR

    handlers: dict[str, Callable[[], int]] = {
        "record": lambda: _record_checksum(env_file, args.hash_file),
        "verify": lambda: _verify_checksum(env_file, args.hash_file),
        "check": lambda: EXIT_OK,
    }
    return handlers[args.command]()


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
