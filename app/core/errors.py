"""
Error taxonomy for video access issuance and streaming.

Route handlers translate these into HTTP statuses with generic messages; the
exception text is for logs only and is never returned to callers.
"""


class VideoAccessError(Exception):
    """Base class for failures in the token and stream proxy flow."""


class MalformedTokenError(VideoAccessError):
    """Raised when a token string cannot be decoded into its three fields."""


class ExpiredTokenError(VideoAccessError):
    """Raised when a decoded token is past its expiry instant."""


class UnauthorizedError(VideoAccessError):
    """Raised when a presented token fails verification for any reason."""


class ResourceNotFoundError(VideoAccessError):
    """Raised when a movie is missing, unpublished, or has no hosted video."""


class UpstreamLookupError(VideoAccessError):
    """Raised when the file host reports a file identifier as invalid."""


class ResourceGoneError(VideoAccessError):
    """Raised when a previously valid file is no longer served upstream."""


class UpstreamFetchError(VideoAccessError):
    """Raised when a request to the file host fails or returns a non-success status."""


class ConfigurationError(VideoAccessError):
    """Raised when required credentials are not configured."""


__all__ = [
    "ConfigurationError",
    "ExpiredTokenError",
    "MalformedTokenError",
    "ResourceGoneError",
    "ResourceNotFoundError",
    "UnauthorizedError",
    "UpstreamFetchError",
    "UpstreamLookupError",
    "VideoAccessError",
]
