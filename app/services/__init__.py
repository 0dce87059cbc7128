"""Service layer exports."""

from .analytics import VALID_EVENT_TYPES, AnalyticsService
from .stream_proxy import ProxiedStream, StreamProxy
from .token_codec import AccessToken, decode_token, encode_token
from .video_access import IssuedAccess, TokenVerifier, VerifiedAccess, VideoAccessIssuer

__all__ = [
    "AccessToken",
    "AnalyticsService",
    "IssuedAccess",
    "ProxiedStream",
    "StreamProxy",
    "TokenVerifier",
    "VALID_EVENT_TYPES",
    "VerifiedAccess",
    "VideoAccessIssuer",
    "decode_token",
    "encode_token",
]
