"""
Logging utilities for the FastAPI application and maintenance scripts.

Provides a consistent logging format and keeps HTTP client request logs,
which include bot credentials in their URLs, out of INFO output.
"""

import logging
import sys

_CREDENTIAL_BEARING_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in _CREDENTIAL_BEARING_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging"]
