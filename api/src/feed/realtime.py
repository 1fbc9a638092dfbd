"""Realtime feed invalidation over Redis Pub/Sub.

Any message on ``notifications:user:{user_id}`` marks that user's feed stale
and refreshes the authoritative unread count.
"""

import asyncio
import contextlib

import structlog
from redis.asyncio import Redis

from src.core.redis import CHANNEL_PREFIX, notification_channel
from src.feed.registry import FeedSessionRegistry


logger = structlog.get_logger(__name__)

CHANNEL_PATTERN = notification_channel("*")


def user_id_from_channel(channel: str) -> int | None:
    """Extract the user id from a per-user notification channel name."""
    if not channel.startswith(CHANNEL_PREFIX):
        return None
    try:
        return int(channel[len(CHANNEL_PREFIX) :])
    except ValueError:
        return None


class RealtimeInvalidationListener:
    """Background Pub/Sub subscriber that invalidates open feeds."""

    def __init__(self, redis: Redis, registry: FeedSessionRegistry) -> None:
        self.redis = redis
        self.registry = registry
        self._running = False
        self._task: asyncio.Task | None = None

    async def handle_message(self, channel: str) -> bool:
        """Invalidate the feed addressed by ``channel``, if one is open."""
        user_id = user_id_from_channel(channel)
        if user_id is None or user_id not in self.registry:
            return False

        logger.debug("realtime_invalidation", user_id=user_id)
        await self.registry.get(user_id).invalidate()
        return True

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._listen(), name="feed_realtime_listener")
        logger.info("realtime_listener_started", pattern=CHANNEL_PATTERN)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("realtime_listener_stopped")

    async def _listen(self) -> None:
        pubsub = self.redis.pubsub()
        try:
            await pubsub.psubscribe(CHANNEL_PATTERN)
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "pmessage":
                    await self.handle_message(message["channel"])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("realtime_listener_error", error=str(e))
        finally:
            await pubsub.punsubscribe(CHANNEL_PATTERN)
            await pubsub.aclose()
