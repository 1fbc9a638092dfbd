"""One NotificationFeed per connected user."""

import asyncio
import contextlib
import time

import structlog

from src.config.settings import Settings
from src.feed.exceptions import FeedNotFoundError
from src.feed.session import NotificationFeed
from src.feed.state import FeedStore
from src.notifications.client import NotificationBackendClient


logger = structlog.get_logger(__name__)


class FeedSessionRegistry:
    """Creates, looks up and closes per-user feeds sharing one FeedStore.

    A feed is closed when its last WebSocket subscriber leaves. Feeds used
    only over HTTP are closed by the idle sweeper once they have gone
    ``feed_idle_timeout_seconds`` without a request.
    """

    def __init__(self, client: NotificationBackendClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings
        self.store = FeedStore()
        self._sessions: dict[int, NotificationFeed] = {}
        self._running = False
        self._task: asyncio.Task | None = None

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: int) -> NotificationFeed:
        try:
            return self._sessions[user_id]
        except KeyError:
            raise FeedNotFoundError(f"No feed open for user {user_id}") from None

    async def get_or_create(self, user_id: int) -> NotificationFeed:
        session = self._sessions.get(user_id)
        if session is not None:
            session.touch()
            return session

        session = NotificationFeed.from_settings(
            self.client, user_id, self.settings, store=self.store
        )
        self._sessions[user_id] = session
        await session.start(poll=self.settings.unread_poll_enabled)
        logger.info("feed_session_opened", user_id=user_id)
        return session

    async def release(self, user_id: int) -> bool:
        """Close the user's feed if nobody is subscribed to it any more."""
        session = self._sessions.get(user_id)
        if session is None or session.subscriber_count:
            return False
        await self.close(user_id)
        return True

    async def close(self, user_id: int) -> None:
        session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.close()
            logger.info("feed_session_closed", user_id=user_id)

    async def close_all(self) -> None:
        await self.stop()
        for user_id in list(self._sessions):
            await self.close(user_id)

    # ==========================================================================
    # Idle eviction
    # ==========================================================================

    async def evict_idle(self, now: float | None = None) -> list[int]:
        """Close unsubscribed feeds idle longer than the configured timeout."""
        now = time.monotonic() if now is None else now
        timeout = self.settings.feed_idle_timeout_seconds
        idle = [
            user_id
            for user_id, session in self._sessions.items()
            if not session.subscriber_count and session.idle_for(now) >= timeout
        ]
        for user_id in idle:
            await self.close(user_id)
        if idle:
            logger.info("feed_sessions_evicted", user_ids=idle, open=len(self))
        return idle

    async def start(self) -> None:
        """Start the background idle sweeper."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(
            self._sweep_loop(), name="feed_session_sweeper"
        )
        logger.info(
            "feed_session_sweeper_started",
            interval_seconds=self.settings.feed_sweep_interval_seconds,
            idle_timeout_seconds=self.settings.feed_idle_timeout_seconds,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("feed_session_sweeper_stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.feed_sweep_interval_seconds)
            try:
                await self.evict_idle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("feed_session_sweeper_error")
