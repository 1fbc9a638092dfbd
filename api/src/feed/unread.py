"""Polled unread count with local fallback.

displayed = authoritative if one has been received, otherwise the number of
unread records loaded locally. The two are never combined: the loaded subset
is only a lower bound.
"""

import asyncio
import contextlib
from collections.abc import Callable

import structlog

from src.feed.state import FeedState
from src.notifications.client import BackendError, NotificationBackendClient


logger = structlog.get_logger(__name__)


class UnreadCounter:
    """Background poller for one user's authoritative unread count."""

    def __init__(
        self,
        client: NotificationBackendClient,
        user_id: int,
        interval_seconds: float = 30.0,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.client = client
        self.user_id = user_id
        self.interval_seconds = interval_seconds
        self.authoritative: int | None = None
        self._on_change = on_change
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    def displayed(self, feed: FeedState) -> int:
        if self.authoritative is not None:
            return self.authoritative
        return feed.count_unread()

    async def refresh(self) -> int | None:
        """Poll once. A failed poll keeps the last authoritative value."""
        try:
            count = await self.client.get_unread_count(self.user_id)
        except BackendError as exc:
            logger.warning(
                "unread_count_poll_failed", user_id=self.user_id, error=str(exc)
            )
            return self.authoritative

        if count != self.authoritative:
            logger.debug(
                "unread_count_updated",
                user_id=self.user_id,
                previous=self.authoritative,
                count=count,
            )
            self.authoritative = count
            if self._on_change is not None:
                self._on_change()
        return count

    async def start(self) -> None:
        """Start the background poll loop."""
        if self._running:
            logger.warning("unread_counter_already_running", user_id=self.user_id)
            return

        self._running = True
        self._task = asyncio.create_task(
            self._poll_loop(), name=f"unread_counter_{self.user_id}"
        )
        logger.info(
            "unread_counter_started",
            user_id=self.user_id,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the background poll loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        logger.info("unread_counter_stopped", user_id=self.user_id)

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("unread_counter_error", user_id=self.user_id)

            await asyncio.sleep(self.interval_seconds)
