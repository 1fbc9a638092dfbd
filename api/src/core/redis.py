# ruff: noqa: PLW0603
"""Redis client for realtime feed invalidation.

Producers publish on ``notifications:user:{user_id}`` whenever a user gets a
new notification or one changes server-side; this service only subscribes.
"""

import redis.asyncio as redis

from src.config import get_settings
from src.core.logging import get_logger


logger = get_logger(__name__)

CHANNEL_PREFIX = "notifications:user:"

_client: redis.Redis | None = None


def notification_channel(user_id: str | int) -> str:
    """Per-user channel name; ``"*"`` gives the pattern matching every user."""
    return f"{CHANNEL_PREFIX}{user_id}"


async def init_redis(url: str | None = None) -> redis.Redis:
    """Connect and verify with PING. Raises redis.ConnectionError if unreachable."""
    global _client

    settings = get_settings()
    url = url or settings.redis_url
    client = redis.from_url(
        url,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        decode_responses=True,
    )
    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        raise

    _client = client
    logger.info("redis_connected")
    return client


async def shutdown_redis() -> None:
    global _client

    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("redis_disconnected")
