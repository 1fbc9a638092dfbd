"""Per-user notification feed exposed to UI clients.

Wires the cursor, mutation coordinator and unread counter around one
FeedStore and publishes a snapshot to subscribers whenever displayed state
changes.
"""

import asyncio
import contextlib
import time
from collections.abc import Callable, Iterable

import structlog

from src.config.settings import Settings
from src.feed.cursor import InfiniteCursor
from src.feed.exceptions import NetworkError
from src.feed.fetcher import SourceFetcher
from src.feed.merger import PageMerger
from src.feed.mutations import MutationCoordinator
from src.feed.state import FeedState, FeedStore
from src.feed.unread import UnreadCounter
from src.notifications.client import NotificationBackendClient
from src.notifications.models import FilterKind, NotificationCategory
from src.notifications.schemas import (
    FeedStateResponse,
    FilterCountsResponse,
    NotificationItemResponse,
    UnreadCountResponse,
)


logger = structlog.get_logger(__name__)

FeedListener = Callable[[FeedStateResponse], None]


class NotificationFeed:
    """Infinite-scroll notification feed for one user."""

    def __init__(
        self,
        client: NotificationBackendClient,
        user_id: int,
        store: FeedStore | None = None,
        page_size: int = 10,
        sources: Iterable[NotificationCategory] = (
            NotificationCategory.SYSTEM,
            NotificationCategory.SOCIAL,
        ),
        filter_kind: FilterKind = FilterKind.ALL,
        poll_interval_seconds: float = 30.0,
    ) -> None:
        self.client = client
        self.user_id = user_id
        self.sources = tuple(sources)
        self._store = store or FeedStore()
        self._listeners: list[FeedListener] = []
        self._refresh_task: asyncio.Task | None = None
        self.last_access = time.monotonic()

        self.cursor = InfiniteCursor(
            user_id=user_id,
            store=self._store,
            merger_factory=self._build_merger,
            page_size=page_size,
            filter_kind=filter_kind,
            on_change=self._emit,
        )
        self.mutations = MutationCoordinator(
            client, invalidate=self.invalidate, on_change=self._emit
        )
        self.unread = UnreadCounter(
            client,
            user_id,
            interval_seconds=poll_interval_seconds,
            on_change=self._emit,
        )

    @classmethod
    def from_settings(
        cls,
        client: NotificationBackendClient,
        user_id: int,
        settings: Settings,
        store: FeedStore | None = None,
    ) -> "NotificationFeed":
        return cls(
            client=client,
            user_id=user_id,
            store=store,
            page_size=settings.feed_page_size,
            sources=[NotificationCategory(name) for name in settings.feed_sources],
            poll_interval_seconds=settings.unread_poll_interval_seconds,
        )

    def _build_merger(self, filter_kind: FilterKind) -> PageMerger:
        return PageMerger(
            [
                SourceFetcher(self.client, category)
                for category in filter_kind.categories(self.sources)
            ]
        )

    @property
    def feed(self) -> FeedState:
        return self.cursor.feed

    @property
    def filter_kind(self) -> FilterKind:
        return self.cursor.filter_kind

    @property
    def unread_count(self) -> int:
        return self.unread.displayed(self.feed)

    # ==========================================================================
    # Subscription
    # ==========================================================================

    def subscribe(self, listener: FeedListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def touch(self) -> None:
        """Record use of the feed; idle feeds are closed by the registry."""
        self.last_access = time.monotonic()

    def idle_for(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_access

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def snapshot(self) -> FeedStateResponse:
        feed = self.feed
        overlay = feed.overlay
        return FeedStateResponse(
            user_id=self.user_id,
            filter=self.filter_kind,
            items=[
                NotificationItemResponse.from_record(
                    record,
                    is_read=overlay.displayed_is_read(record),
                    read_at=overlay.displayed_read_at(record),
                )
                for record in feed.visible_records()
            ],
            state=self.cursor.state.value,
            is_loading=self.cursor.is_loading,
            error=str(self.cursor.error) if self.cursor.error else None,
            has_more=self.cursor.has_more,
            pages_loaded=len(feed.pages),
            total_count=feed.total_count,
            unread_count=self.unread_count,
            stale=feed.stale,
        )

    def unread_snapshot(self) -> UnreadCountResponse:
        return UnreadCountResponse(
            count=self.unread_count,
            authoritative=self.unread.authoritative is not None,
        )

    def filter_counts(self) -> FilterCountsResponse:
        return FilterCountsResponse(**self.feed.filter_counts())

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self, poll: bool = True) -> None:
        if poll:
            await self.unread.start()

    async def close(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None
        await self.unread.stop()
        self._listeners.clear()
        self._store.discard(self.user_id)

    # ==========================================================================
    # Pagination
    # ==========================================================================

    async def request_next_page(self) -> bool:
        return await self.cursor.request_next_page()

    async def retry(self) -> bool:
        return await self.cursor.retry()

    async def refresh(self) -> bool:
        return await self.cursor.refresh()

    async def change_filter(self, filter_kind: FilterKind, fetch: bool = True) -> bool:
        return await self.cursor.change_filter(filter_kind, fetch=fetch)

    async def invalidate(self) -> None:
        """Mark the feed stale and refresh the authoritative unread count.

        With a live subscriber the loaded pages are refetched in the
        background; otherwise the feed stays stale until the next refresh.
        """
        self._store.invalidate(self.user_id)
        await self.unread.refresh()
        self._emit()
        self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if not self._listeners or not self.feed.pages:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(
            self._background_refresh(), name=f"feed_refresh_{self.user_id}"
        )

    async def _background_refresh(self) -> None:
        try:
            await self.cursor.refresh()
        except NetworkError as exc:
            # the cursor already published the error; the feed stays stale
            logger.warning(
                "feed_background_refresh_failed", user_id=self.user_id, error=str(exc)
            )

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def mark_as_read(self, notification_id: int) -> None:
        await self.mutations.mark_as_read(self.feed, notification_id)

    async def mark_all_as_read(self) -> list[int]:
        return await self.mutations.mark_all_as_read(self.feed)

    def delete_notification(self, notification_id: int) -> bool:
        return self.mutations.delete_notification(self.feed, notification_id)

    def delete_notifications(self, notification_ids: Iterable[int]) -> list[int]:
        return self.mutations.delete_notifications(self.feed, notification_ids)

    async def get_notification(self, notification_id: int) -> NotificationItemResponse:
        """Notification detail, with the displayed read state if it is loaded."""
        record = self.feed.find(notification_id)
        if record is None:
            record = await self.client.get_notification_detail(notification_id)
        overlay = self.feed.overlay
        return NotificationItemResponse.from_record(
            record,
            is_read=overlay.displayed_is_read(record),
            read_at=overlay.displayed_read_at(record),
        )
