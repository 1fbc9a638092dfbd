"""Tests for optimistic read-state mutations.

TDD implementation of:
- mark_as_read (confirm and rollback)
- mark_all_as_read (atomic rollback)
- delete_notification(s) (local only)
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
import respx
from factories import make_merged_page, make_record

from src.feed.exceptions import MutationError
from src.feed.mutations import MutationCoordinator
from src.feed.overlay import OverlayStatus
from src.feed.state import FeedKey, FeedState
from src.notifications.client import (
    BackendConnectionError,
    BackendResponseError,
    NotificationBackendClient,
)
from src.notifications.models import FilterKind


BASE_URL = "https://backend.test/api/v1"


@pytest.fixture
def feed() -> FeedState:
    """Feed with three loaded records, one of them already read."""
    state = FeedState(FeedKey(1, FilterKind.ALL))
    state.append_page(
        make_merged_page(
            1,
            [
                make_record(1, minutes_ago=1),
                make_record(2, minutes_ago=2, is_read=True),
                make_record(3, minutes_ago=3),
            ],
            has_next=True,
        )
    )
    return state


@pytest.fixture
def invalidate() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def coordinator(mock_client, invalidate) -> MutationCoordinator:
    return MutationCoordinator(mock_client, invalidate=invalidate, on_change=Mock())


class TestMarkAsRead:
    """Tests for mark_as_read."""

    @pytest.mark.asyncio
    async def test_success_confirms_overlay(self, coordinator, feed, mock_client, invalidate):
        await coordinator.mark_as_read(feed, 1)

        mock_client.mark_as_read.assert_awaited_once_with(1)
        assert feed.is_read(feed.find(1)) is True
        assert feed.overlay.get(1).status is OverlayStatus.CONFIRMED
        assert feed.count_unread() == 1
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_displayed_as_read_before_backend_answers(
        self, coordinator, feed, mock_client
    ):
        gate = asyncio.Event()

        async def slow_mark(notification_id):
            await gate.wait()

        mock_client.mark_as_read.side_effect = slow_mark

        task = asyncio.create_task(coordinator.mark_as_read(feed, 1))
        await asyncio.sleep(0)

        assert feed.is_read(feed.find(1)) is True
        assert feed.overlay.get(1).status is OverlayStatus.PENDING

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_failure_rolls_back(self, coordinator, feed, mock_client, invalidate):
        mock_client.mark_as_read.side_effect = BackendResponseError("boom", 500)

        with pytest.raises(MutationError) as exc_info:
            await coordinator.mark_as_read(feed, 1)

        assert exc_info.value.notification_ids == [1]
        assert feed.is_read(feed.find(1)) is False
        assert 1 not in feed.overlay
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_restores_earlier_confirmed_state(
        self, coordinator, feed, mock_client
    ):
        await coordinator.mark_as_read(feed, 3)
        mock_client.mark_as_read.side_effect = BackendConnectionError("down")

        with pytest.raises(MutationError):
            await coordinator.mark_as_read(feed, 3)

        assert feed.is_read(feed.find(3)) is True
        assert feed.overlay.get(3).status is OverlayStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_unexpected_error_still_rolls_back(
        self, coordinator, feed, mock_client, invalidate
    ):
        mock_client.mark_as_read.side_effect = RuntimeError("unexpected")

        with pytest.raises(MutationError):
            await coordinator.mark_as_read(feed, 1)

        assert feed.is_read(feed.find(1)) is False
        assert 1 not in feed.overlay
        invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    @respx.mock
    async def test_undecodable_response_rolls_back(self, feed, invalidate):
        """A broken content-encoding from the backend is a failed mutation."""
        respx.put(f"{BASE_URL}/notifications/1/read").mock(
            side_effect=httpx.DecodingError("bad gzip")
        )
        client = NotificationBackendClient(base_url=BASE_URL)
        coordinator = MutationCoordinator(client, invalidate=invalidate)

        with pytest.raises(MutationError) as exc_info:
            await coordinator.mark_as_read(feed, 1)
        await client.aclose()

        assert isinstance(exc_info.value.__cause__, BackendConnectionError)
        assert feed.is_read(feed.find(1)) is False
        assert 1 not in feed.overlay


class TestMarkAllAsRead:
    """Tests for mark_all_as_read."""

    @pytest.mark.asyncio
    async def test_success(self, coordinator, feed, mock_client, invalidate):
        marked = await coordinator.mark_all_as_read(feed)

        assert marked == [1, 2, 3]
        mock_client.mark_all_as_read.assert_awaited_once_with(1)
        assert feed.count_unread() == 0
        invalidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_rolls_back_every_entry(self, coordinator, feed, mock_client):
        before = {r.id: feed.is_read(r) for r in feed.records}
        mock_client.mark_all_as_read.side_effect = BackendResponseError("boom", 503)

        with pytest.raises(MutationError) as exc_info:
            await coordinator.mark_all_as_read(feed)

        assert exc_info.value.notification_ids == [1, 2, 3]
        assert {r.id: feed.is_read(r) for r in feed.records} == before
        assert len(feed.overlay) == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_undecodable_response_rolls_back_every_entry(self, feed, invalidate):
        respx.put(f"{BASE_URL}/notifications/user/1/read-all").mock(
            side_effect=httpx.DecodingError("bad gzip")
        )
        client = NotificationBackendClient(base_url=BASE_URL)
        coordinator = MutationCoordinator(client, invalidate=invalidate)
        before = {r.id: feed.is_read(r) for r in feed.records}

        with pytest.raises(MutationError):
            await coordinator.mark_all_as_read(feed)
        await client.aclose()

        assert {r.id: feed.is_read(r) for r in feed.records} == before
        assert len(feed.overlay) == 0
        invalidate.assert_not_awaited()


class TestDelete:
    """Tests for local-only deletes."""

    def test_delete_hides_record_without_backend_call(
        self, coordinator, feed, mock_client
    ):
        assert coordinator.delete_notification(feed, 1) is True

        assert [r.id for r in feed.records] == [2, 3]
        assert feed.count_unread() == 1
        assert feed.total_count == 2
        mock_client.mark_as_read.assert_not_awaited()
        mock_client.mark_all_as_read.assert_not_awaited()

    def test_delete_unknown_record(self, coordinator, feed):
        assert coordinator.delete_notification(feed, 99) is False
        assert len(feed.records) == 3

    def test_bulk_delete_returns_removed_ids(self, coordinator, feed):
        assert coordinator.delete_notifications(feed, [3, 99, 1]) == [1, 3]
        assert [r.id for r in feed.records] == [2]

    def test_deleted_record_stays_hidden_after_next_page(self, coordinator, feed):
        coordinator.delete_notification(feed, 1)
        feed.append_page(make_merged_page(2, [make_record(1), make_record(4)], False))

        assert [r.id for r in feed.records] == [2, 3, 4]
