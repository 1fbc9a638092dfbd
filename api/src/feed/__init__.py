"""Notification feed aggregation engine.

Provides:
- Concurrent per-source page fetching merged into one newest-first feed
- Infinite-scroll cursor with stale-response discarding
- Optimistic read-state overlay with rollback
- Polled authoritative unread count

Note: Routers are imported directly in main.py to avoid circular imports.
"""

from .cursor import CursorState, GenerationToken, InfiniteCursor
from .exceptions import (
    FeedError,
    FeedNotFoundError,
    MutationError,
    NetworkError,
    StaleResponseError,
)
from .fetcher import SourceFetcher
from .merger import PageMerger, merge_source_pages
from .mutations import MutationCoordinator
from .overlay import LocalOverlay, OverlayEntry, OverlayStatus
from .registry import FeedSessionRegistry
from .session import NotificationFeed
from .state import FeedKey, FeedState, FeedStore
from .unread import UnreadCounter


__all__ = [
    "CursorState",
    "FeedError",
    "FeedKey",
    "FeedNotFoundError",
    "FeedSessionRegistry",
    "FeedState",
    "FeedStore",
    "GenerationToken",
    "InfiniteCursor",
    "LocalOverlay",
    "MutationCoordinator",
    "MutationError",
    "NetworkError",
    "NotificationFeed",
    "OverlayEntry",
    "OverlayStatus",
    "PageMerger",
    "SourceFetcher",
    "StaleResponseError",
    "UnreadCounter",
    "merge_source_pages",
]
