"""HTTP middleware binding request and feed context for logging."""

import re
import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import clear_context, set_request_id, set_trace_id, set_user_id


logger = structlog.get_logger(__name__)

_FEED_PATH_RE = re.compile(r"^/(?:v1/users|ws/feed)/(?P<user_id>\d+)")


def trace_id_from_headers(trace_id: str | None, traceparent: str | None) -> str | None:
    """Explicit trace id, else the trace-id field of a W3C traceparent."""
    if trace_id:
        return trace_id
    if traceparent:
        parts = traceparent.split("-")
        if len(parts) == 4 and parts[1]:
            return parts[1]
    return None


def feed_user_from_path(path: str) -> int | None:
    """User id addressed by a feed route, if the path is one."""
    match = _FEED_PATH_RE.match(path)
    return int(match["user_id"]) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id, trace id and feed user, and logs each request once done.

    The request id is echoed back in the ``X-Request-ID`` response header.
    """

    REQUEST_ID_HEADER = "X-Request-ID"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        path = request.url.path

        request.state.request_id = set_request_id(
            request.headers.get(self.REQUEST_ID_HEADER)
        )
        trace_id = trace_id_from_headers(
            request.headers.get("X-Trace-ID"), request.headers.get("traceparent")
        )
        if trace_id:
            set_trace_id(trace_id)
        user_id = feed_user_from_path(path)
        if user_id is not None:
            set_user_id(user_id)

        log = self.log_requests and not path.startswith(self.exclude_paths)
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=self._elapsed_ms(started),
            )
            raise
        finally:
            clear_context()

        if log:
            (logger.warning if response.status_code >= 400 else logger.info)(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=self._elapsed_ms(started),
                request_id=request.state.request_id,
            )
        response.headers[self.REQUEST_ID_HEADER] = request.state.request_id
        return response

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 2)


__all__ = ["RequestContextMiddleware", "feed_user_from_path", "trace_id_from_headers"]
