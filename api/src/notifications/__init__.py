"""Notification records and the backend REST client.

Provides:
- Normalized notification record and pagination metadata
- Wire schemas for the backend response envelope
- Async HTTP client for listing, counting and marking notifications
"""

from src.notifications.client import (
    BackendConnectionError,
    BackendError,
    BackendResponseError,
    MalformedResponseError,
    NotificationBackendClient,
)
from src.notifications.models import (
    FilterKind,
    IconKind,
    MergedPage,
    NotificationCategory,
    NotificationRecord,
    PageMetadata,
    SourcePage,
)


__all__ = [
    "BackendConnectionError",
    "BackendError",
    "BackendResponseError",
    "FilterKind",
    "IconKind",
    "MalformedResponseError",
    "MergedPage",
    "NotificationBackendClient",
    "NotificationCategory",
    "NotificationRecord",
    "PageMetadata",
    "SourcePage",
]
