"""Tests for the per-user NotificationFeed, its registry and realtime hooks.

Tests cover:
- Fan-out to every configured source and filter fan-out
- Snapshots published to subscribers
- Invalidation, refresh and detail lookup
- Registry lifecycle and Redis channel invalidation
"""

import asyncio
from unittest.mock import Mock

import pytest
from factories import make_backend_list, make_backend_notification, make_record

from src.config.settings import Settings
from src.feed.exceptions import FeedNotFoundError
from src.feed.realtime import RealtimeInvalidationListener, user_id_from_channel
from src.feed.registry import FeedSessionRegistry
from src.feed.session import NotificationFeed
from src.notifications.client import BackendConnectionError
from src.notifications.models import FilterKind, NotificationCategory


SYSTEM = NotificationCategory.SYSTEM
SOCIAL = NotificationCategory.SOCIAL


def by_category(system_items, social_items, system_next=False, social_next=False):
    """side_effect answering get_notifications per requested category."""

    async def get_notifications(user_id, category, page, page_size):
        if category is SYSTEM:
            return make_backend_list(system_items, has_next=system_next)
        return make_backend_list(social_items, has_next=social_next)

    return get_notifications


@pytest.fixture
def feed(mock_client) -> NotificationFeed:
    mock_client.get_notifications.side_effect = by_category(
        [
            make_backend_notification(1, "SYSTEM", minutes_ago=1),
            make_backend_notification(3, "SYSTEM", minutes_ago=30, is_read=True),
        ],
        [make_backend_notification(2, "USER", minutes_ago=10)],
        system_next=True,
    )
    return NotificationFeed(mock_client, user_id=42)


class TestNotificationFeed:
    """Tests for NotificationFeed."""

    @pytest.mark.asyncio
    async def test_first_page_merges_sources(self, feed, mock_client):
        await feed.request_next_page()

        snapshot = feed.snapshot()
        assert [item.id for item in snapshot.items] == [1, 2, 3]
        assert snapshot.state == "has_more"
        assert snapshot.has_more is True
        assert snapshot.total_count == 3
        assert snapshot.unread_count == 2
        assert mock_client.get_notifications.await_count == 2

    @pytest.mark.asyncio
    async def test_single_category_filter_fans_out_to_one_source(
        self, feed, mock_client
    ):
        await feed.change_filter(FilterKind.SOCIAL)

        mock_client.get_notifications.assert_awaited_once()
        assert mock_client.get_notifications.await_args.kwargs["category"] is SOCIAL
        assert [item.id for item in feed.snapshot().items] == [2]

    @pytest.mark.asyncio
    async def test_unread_filter_hides_read_records(self, feed):
        await feed.change_filter(FilterKind.UNREAD)

        assert [item.id for item in feed.snapshot().items] == [1, 2]

    @pytest.mark.asyncio
    async def test_subscribers_receive_snapshots(self, feed):
        snapshots = []
        unsubscribe = feed.subscribe(snapshots.append)

        await feed.request_next_page()

        assert snapshots[0].is_loading is True
        assert snapshots[-1].is_loading is False
        assert len(snapshots[-1].items) == 3

        unsubscribe()
        count = len(snapshots)
        feed.delete_notification(1)
        assert len(snapshots) == count

    @pytest.mark.asyncio
    async def test_mark_as_read_updates_snapshot(self, feed, mock_client):
        await feed.request_next_page()
        mock_client.get_unread_count.return_value = 1

        await feed.mark_as_read(1)

        item = next(i for i in feed.snapshot().items if i.id == 1)
        assert item.is_read is True
        assert item.read_at is not None
        assert feed.unread_count == 1
        assert feed.snapshot().stale is True

    @pytest.mark.asyncio
    async def test_invalidate_then_refresh(self, feed, mock_client):
        await feed.request_next_page()
        mock_client.get_unread_count.return_value = 9

        await feed.invalidate()
        assert feed.snapshot().stale is True
        assert feed.unread_snapshot().count == 9
        assert feed.unread_snapshot().authoritative is True

        mock_client.get_notifications.side_effect = by_category(
            [make_backend_notification(5, "SYSTEM", minutes_ago=0)], []
        )
        assert await feed.refresh() is True

        snapshot = feed.snapshot()
        assert [item.id for item in snapshot.items] == [5]
        assert snapshot.stale is False
        assert snapshot.has_more is False

    @pytest.mark.asyncio
    async def test_invalidate_refetches_for_live_subscriber(self, feed, mock_client):
        """With someone watching, an invalidation reconciles without a manual refresh."""
        await feed.request_next_page()
        snapshots = []
        feed.subscribe(snapshots.append)
        mock_client.get_notifications.side_effect = by_category(
            [make_backend_notification(5, "SYSTEM", minutes_ago=0)], []
        )

        await feed.invalidate()
        await feed._refresh_task

        assert [item.id for item in snapshots[-1].items] == [5]
        assert snapshots[-1].stale is False
        await feed.close()

    @pytest.mark.asyncio
    async def test_failed_background_refetch_keeps_loaded_pages(
        self, feed, mock_client
    ):
        await feed.request_next_page()
        feed.subscribe(Mock())
        mock_client.get_notifications.side_effect = BackendConnectionError("down")

        await feed.invalidate()
        await feed._refresh_task

        snapshot = feed.snapshot()
        assert [item.id for item in snapshot.items] == [1, 2, 3]
        assert snapshot.stale is True
        assert snapshot.error is not None
        await feed.close()

    @pytest.mark.asyncio
    async def test_filter_counts(self, feed):
        await feed.request_next_page()

        counts = feed.filter_counts()

        assert (counts.all, counts.unread, counts.system, counts.social) == (3, 2, 2, 1)

    @pytest.mark.asyncio
    async def test_get_notification_prefers_loaded_record(self, feed, mock_client):
        await feed.request_next_page()
        feed.feed.overlay.apply(2, True)

        item = await feed.get_notification(2)

        assert item.is_read is True
        mock_client.get_notification_detail.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_notification_falls_back_to_backend(self, feed, mock_client):
        mock_client.get_notification_detail.return_value = make_record(77, SOCIAL)

        item = await feed.get_notification(77)

        assert item.id == 77
        assert item.category is SOCIAL
        mock_client.get_notification_detail.assert_awaited_once_with(77)

    def test_from_settings(self, mock_client):
        settings = Settings(feed_page_size=5, feed_sources=["SOCIAL"])

        feed = NotificationFeed.from_settings(mock_client, 42, settings)

        assert feed.cursor.page_size == 5
        assert feed.sources == (SOCIAL,)


# ==============================================================================
# Registry and realtime invalidation
# ==============================================================================


@pytest.fixture
def registry(mock_client) -> FeedSessionRegistry:
    return FeedSessionRegistry(mock_client, Settings(unread_poll_enabled=False))


class TestFeedSessionRegistry:
    """Tests for FeedSessionRegistry."""

    @pytest.mark.asyncio
    async def test_get_or_create_reuses_session(self, registry):
        first = await registry.get_or_create(42)
        second = await registry.get_or_create(42)

        assert first is second
        assert 42 in registry
        assert len(registry) == 1

    def test_get_unknown_user(self, registry):
        with pytest.raises(FeedNotFoundError):
            registry.get(42)

    @pytest.mark.asyncio
    async def test_close_all(self, registry):
        await registry.get_or_create(1)
        await registry.get_or_create(2)

        await registry.close_all()

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_release_closes_feed_without_subscribers(self, registry):
        await registry.get_or_create(42)

        assert await registry.release(42) is True
        assert 42 not in registry

    @pytest.mark.asyncio
    async def test_release_keeps_feed_while_subscribed(self, registry):
        feed = await registry.get_or_create(42)
        unsubscribe = feed.subscribe(Mock())

        assert await registry.release(42) is False
        assert 42 in registry

        unsubscribe()
        assert await registry.release(42) is True
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_evict_idle_skips_subscribed_and_recent_feeds(self, registry):
        idle = await registry.get_or_create(1)
        watched = await registry.get_or_create(2)
        watched.subscribe(Mock())
        recent = await registry.get_or_create(3)

        timeout = registry.settings.feed_idle_timeout_seconds
        idle.last_access = watched.last_access = recent.last_access - timeout - 1

        assert await registry.evict_idle(now=recent.last_access) == [1]
        assert 1 not in registry
        assert 2 in registry
        assert 3 in registry

    @pytest.mark.asyncio
    async def test_get_or_create_defers_eviction(self, registry):
        feed = await registry.get_or_create(42)
        feed.last_access -= registry.settings.feed_idle_timeout_seconds + 1

        await registry.get_or_create(42)

        assert await registry.evict_idle() == []

    @pytest.mark.asyncio
    async def test_sweeper_closes_idle_feeds(self, mock_client):
        registry = FeedSessionRegistry(
            mock_client,
            Settings(
                unread_poll_enabled=False,
                feed_idle_timeout_seconds=0.01,
                feed_sweep_interval_seconds=0.01,
            ),
        )
        for user_id in range(1, 6):
            await registry.get_or_create(user_id)

        await registry.start()
        await asyncio.sleep(0.1)

        assert len(registry) == 0
        await registry.close_all()


class TestRealtimeInvalidation:
    """Tests for the Redis invalidation listener."""

    def test_user_id_from_channel(self):
        assert user_id_from_channel("notifications:user:42") == 42
        assert user_id_from_channel("notifications:user:abc") is None
        assert user_id_from_channel("comments:lesson:1") is None

    @pytest.mark.asyncio
    async def test_message_invalidates_open_feed(self, registry, mock_client):
        feed = await registry.get_or_create(42)
        mock_client.get_unread_count.return_value = 3
        listener = RealtimeInvalidationListener(Mock(), registry)

        assert await listener.handle_message("notifications:user:42") is True

        assert feed.feed.stale is True
        assert feed.unread_count == 3

    @pytest.mark.asyncio
    async def test_message_for_closed_feed_is_ignored(self, registry, mock_client):
        listener = RealtimeInvalidationListener(Mock(), registry)

        assert await listener.handle_message("notifications:user:42") is False
        mock_client.get_unread_count.assert_not_awaited()
