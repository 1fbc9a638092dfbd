"""Optimistic read-state mutations with rollback.

- mark_as_read: overlay one record, call the backend, confirm or roll back
- mark_all_as_read: overlay every loaded record, one bulk call, atomic rollback
- delete_notification(s): local-only hide, no backend call
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime

import structlog

from src.feed.exceptions import MutationError
from src.feed.state import FeedState
from src.notifications.client import NotificationBackendClient


logger = structlog.get_logger(__name__)


class MutationCoordinator:
    """Applies read-state mutations against a FeedState's overlay."""

    def __init__(
        self,
        client: NotificationBackendClient,
        invalidate: Callable[[], Awaitable[None]],
        on_change: Callable[[], None] | None = None,
    ) -> None:
        """Initialize coordinator.

        Args:
            client: Backend client used for the mutation calls
            invalidate: Called after a confirmed mutation so the feed and the
                        unread count eventually reconcile with the backend
            on_change: Called whenever displayed state changes
        """
        self.client = client
        self._invalidate = invalidate
        self._on_change = on_change

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    async def mark_as_read(self, feed: FeedState, notification_id: int) -> None:
        """Mark one notification as read.

        Raises:
            MutationError: If the backend call failed; the overlay is rolled back.
        """
        entry = feed.overlay.apply(notification_id, True, read_at=datetime.now(UTC))
        self._notify()

        try:
            await self.client.mark_as_read(notification_id)
        except Exception as exc:
            feed.overlay.roll_back(entry)
            logger.warning(
                "mark_as_read_rolled_back",
                notification_id=notification_id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._notify()
            raise MutationError(
                f"Failed to mark notification as read: {exc}", [notification_id]
            ) from exc

        feed.overlay.confirm(entry)
        logger.info("mark_as_read_confirmed", notification_id=notification_id)
        self._notify()
        await self._invalidate()

    async def mark_all_as_read(self, feed: FeedState) -> list[int]:
        """Mark every loaded notification as read with one bulk call.

        Returns:
            IDs of the records that were overlaid.

        Raises:
            MutationError: If the backend call failed; every touched entry is
                           rolled back together.
        """
        notification_ids = [record.id for record in feed.records]
        entries = feed.overlay.apply_many(
            notification_ids, True, read_at=datetime.now(UTC)
        )
        self._notify()

        try:
            await self.client.mark_all_as_read(feed.key.user_id)
        except Exception as exc:
            feed.overlay.roll_back_many(entries)
            logger.warning(
                "mark_all_as_read_rolled_back",
                touched=len(entries),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self._notify()
            raise MutationError(
                f"Failed to mark all notifications as read: {exc}", notification_ids
            ) from exc

        feed.overlay.confirm_many(entries)
        logger.info("mark_all_as_read_confirmed", touched=len(entries))
        self._notify()
        await self._invalidate()
        return notification_ids

    def delete_notification(self, feed: FeedState, notification_id: int) -> bool:
        """Hide one notification locally. Returns False if it was not loaded."""
        return bool(self.delete_notifications(feed, [notification_id]))

    def delete_notifications(
        self, feed: FeedState, notification_ids: Iterable[int]
    ) -> list[int]:
        """Hide notifications locally; the backend is not called.

        Returns:
            IDs that were removed from the feed.
        """
        removed = feed.remove(notification_ids)
        if removed:
            logger.info(
                "notifications_hidden",
                removed_ids=[record.id for record in removed],
                removed_unread=sum(1 for r in removed if not feed.is_read(r)),
            )
            self._notify()
        return [record.id for record in removed]
