# Core infrastructure
from src.core.context import (
    FeedContext,
    clear_context,
    get_context,
    get_feed_filter,
    get_request_id,
    get_trace_id,
    get_user_id,
    set_feed_filter,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "FeedContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_feed_filter",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "get_user_id",
    "set_feed_filter",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
