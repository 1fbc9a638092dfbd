"""Dependencies for feed routes."""

from collections.abc import Callable

from fastapi import HTTPException, Request, status
from starlette.requests import HTTPConnection

from src.core.context import set_user_id
from src.feed.registry import FeedSessionRegistry
from src.feed.session import NotificationFeed


# Registry getter function (set by main.py)
_registry_getter: Callable[[], FeedSessionRegistry] | None = None


def set_feed_registry_getter(getter: Callable[[], FeedSessionRegistry]) -> None:
    """Set the feed registry getter function."""
    global _registry_getter  # noqa: PLW0603 - Required for DI pattern
    _registry_getter = getter


def get_feed_registry(connection: HTTPConnection) -> FeedSessionRegistry:
    """Get the FeedSessionRegistry for an HTTP request or WebSocket.

    Tries app.state first, then falls back to the getter function.
    """
    registry = getattr(connection.app.state, "feed_registry", None)
    if registry is not None:
        return registry

    if _registry_getter is not None:
        return _registry_getter()

    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Feed registry not configured",
    )


async def get_feed(user_id: int, request: Request) -> NotificationFeed:
    """Get (opening on first use) the feed of the user in the path."""
    set_user_id(user_id)
    registry = get_feed_registry(request)
    return await registry.get_or_create(user_id)
