"""Health check endpoints."""

from fastapi import APIRouter, Request

from src.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """The process is up."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool | int]:
    """Ready once the feed registry exists; reports open feeds and realtime status."""
    settings = get_settings()
    registry = getattr(request.app.state, "feed_registry", None)
    return {
        "status": "ready" if registry is not None else "starting",
        "environment": settings.environment,
        "debug": settings.debug,
        "open_feeds": len(registry) if registry is not None else 0,
        "realtime": getattr(request.app.state, "realtime_listener", None) is not None,
    }


@router.get("")
async def health() -> dict[str, str | list[str]]:
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "feed_sources": list(settings.feed_sources),
    }
