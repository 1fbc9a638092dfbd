"""Notification Feed API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import Settings, get_settings
from src.core.context import get_request_id
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.feed.dependencies import set_feed_registry_getter
from src.feed.exceptions import FeedNotFoundError
from src.feed.realtime import RealtimeInvalidationListener
from src.feed.registry import FeedSessionRegistry
from src.feed.router import router as feed_router
from src.feed.websocket_router import router as feed_ws_router
from src.health import router as health_router
from src.notifications.client import NotificationBackendClient


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(
    settings, log_dir=None if settings.is_testing else Path(settings.log_dir)
)

logger = get_logger(__name__)


class AppState:
    """Long-lived services shared by every request."""

    backend_client: NotificationBackendClient | None = None
    feed_registry: FeedSessionRegistry | None = None
    realtime_listener: RealtimeInvalidationListener | None = None


app_state = AppState()


def get_feed_registry() -> FeedSessionRegistry:
    """Get FeedSessionRegistry instance from app state."""
    if app_state.feed_registry is None:
        msg = "FeedSessionRegistry not initialized"
        raise RuntimeError(msg)
    return app_state.feed_registry


async def _start_realtime(
    settings: Settings, registry: FeedSessionRegistry
) -> RealtimeInvalidationListener | None:
    """Subscribe to invalidation events. Optional; the feed still polls without it."""
    if not settings.redis_enabled:
        return None
    try:
        listener = RealtimeInvalidationListener(await init_redis(), registry)
        await listener.start()
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - realtime invalidation disabled",
        )
        return None
    return listener


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        backend_base_url=settings.backend_base_url,
        feed_sources=settings.feed_sources,
    )

    client = NotificationBackendClient.from_settings(settings)
    registry = FeedSessionRegistry(client, settings)
    await registry.start()
    listener = await _start_realtime(settings, registry)

    app_state.backend_client = client
    app_state.feed_registry = app.state.feed_registry = registry
    app_state.realtime_listener = app.state.realtime_listener = listener

    yield

    logger.info("shutting_down_application", open_feeds=len(registry))
    if listener is not None:
        await listener.stop()
    await registry.close_all()
    await client.aclose()
    await shutdown_redis()
    app_state.backend_client = None
    app_state.feed_registry = app.state.feed_registry = None
    app_state.realtime_listener = app.state.realtime_listener = None


def _error_response(
    request: Request, status_code: int, message: str, **extra: Any
) -> ORJSONResponse:
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
            **extra,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API in the same envelope; 5xx details stay in the logs."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
        )
        # 502 details describe the backend failure, not this service
        expose = exc.status_code < 500 or exc.status_code == status.HTTP_502_BAD_GATEWAY
        return _error_response(
            request,
            exc.status_code,
            str(exc.detail) if expose else "Internal server error",
        )

    @app.exception_handler(FeedNotFoundError)
    async def feed_not_found_handler(
        request: Request, exc: FeedNotFoundError
    ) -> ORJSONResponse:
        return _error_response(request, status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        errors = exc.errors()
        logger.warning("validation_error", errors=errors, path=request.url.path)
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in errors
            ],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # debug stays off so Starlette never renders tracebacks into responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Infinite-scroll notification feed",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(feed_router)
    app.include_router(feed_ws_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        return {
            "message": "Notification Feed API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


set_feed_registry_getter(get_feed_registry)


app = create_app()
