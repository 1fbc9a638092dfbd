"""Request and feed context management using contextvars.

Each request gets a unique ID; feed operations additionally bind the user
and active filter so that every log line emitted while merging pages or
applying mutations can be correlated without passing parameters explicitly.
"""

from contextvars import ContextVar
from typing import Any
from uuid import uuid4


# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
feed_filter_var: ContextVar[str | None] = ContextVar("feed_filter", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_trace_id() -> str | None:
    """Get the current trace ID."""
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID from distributed tracing headers."""
    trace_id_var.set(trace_id)


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | int | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_feed_filter() -> str | None:
    """Get the feed filter bound to the current context."""
    return feed_filter_var.get()


def set_feed_filter(filter_kind: str | None) -> None:
    """Bind the active feed filter to the current context."""
    feed_filter_var.set(filter_kind)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    trace_id = get_trace_id()
    if trace_id:
        context["trace_id"] = trace_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    feed_filter = get_feed_filter()
    if feed_filter:
        context["feed_filter"] = feed_filter

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent context leakage.
    """
    request_id_var.set("")
    trace_id_var.set(None)
    user_id_var.set(None)
    feed_filter_var.set(None)


class FeedContext:
    """Context manager binding a user and filter for the duration of a feed call.

    Usage:
        with FeedContext(user_id=42, feed_filter="unread"):
            logger.info("feed_page_merged")  # includes user_id and feed_filter
    """

    def __init__(self, user_id: str | int | None, feed_filter: str | None) -> None:
        self.user_id = user_id
        self.feed_filter = feed_filter
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "FeedContext":
        """Enter context and set variables."""
        if self.user_id is not None:
            self._tokens.append((user_id_var, user_id_var.set(str(self.user_id))))
        if self.feed_filter is not None:
            self._tokens.append(
                (feed_filter_var, feed_filter_var.set(self.feed_filter))
            )
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
