"""Public schema exports."""

from .telegram import TelegramMessage, TelegramUpdate, TelegramUploadResult
from .video import (
    AnalyticsBatchRequest,
    AnalyticsBatchResult,
    AnalyticsEventRequest,
    BulkImportRequest,
    BulkImportResult,
    MovieCreateRequest,
    MovieUpdateRequest,
    PublicMovie,
    StreamCompletionRequest,
    VideoAccessRequest,
    VideoAccessResponse,
    VideoSource,
    VideoSourcesResponse,
)

__all__ = [
    "AnalyticsBatchRequest",
    "AnalyticsBatchResult",
    "AnalyticsEventRequest",
    "BulkImportRequest",
    "BulkImportResult",
    "MovieCreateRequest",
    "MovieUpdateRequest",
    "PublicMovie",
    "StreamCompletionRequest",
    "TelegramMessage",
    "TelegramUpdate",
    "TelegramUploadResult",
    "VideoAccessRequest",
    "VideoAccessResponse",
    "VideoSource",
    "VideoSourcesResponse",
]
