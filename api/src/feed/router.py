"""Feed API routes.

Endpoints (prefix /v1/users/{user_id}/feed):
- GET    ""             - Current feed snapshot
- POST   /next          - Request the next page
- POST   /retry         - Retry the page that failed
- POST   /refresh       - Refetch loaded pages after invalidation
- PUT    /filter        - Change the active filter (resets pagination)
- PUT    /read-all      - Mark every loaded notification as read
- PUT    /{id}/read     - Mark one notification as read
- DELETE /{id}          - Hide one notification locally
- POST   /delete        - Hide several notifications locally
- GET    /unread-count  - Displayed unread count
- GET    /counts        - Loaded record counts per view
- GET    /{id}          - Notification detail
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import ORJSONResponse

from src.feed.dependencies import get_feed
from src.feed.exceptions import MutationError, NetworkError
from src.feed.session import NotificationFeed
from src.notifications.client import BackendError, BackendResponseError
from src.notifications.schemas import (
    ChangeFilterRequest,
    DeleteNotificationsRequest,
    FeedStateResponse,
    FilterCountsResponse,
    MutationResultResponse,
    NotificationItemResponse,
    UnreadCountResponse,
)


router = APIRouter(
    prefix="/v1/users/{user_id}/feed",
    tags=["feed"],
)

FeedDep = Annotated[NotificationFeed, Depends(get_feed)]


def _page_failed(feed: NotificationFeed) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=feed.snapshot().model_dump(mode="json"),
    )


def _mutation_failed(feed: NotificationFeed, exc: MutationError) -> ORJSONResponse:
    result = MutationResultResponse(
        success=False,
        message=str(exc),
        affected_ids=exc.notification_ids,
        unread_count=feed.unread_count,
    )
    return ORJSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=result.model_dump(mode="json"),
    )


@router.get("", response_model=FeedStateResponse, summary="Get feed snapshot")
async def get_feed_state(feed: FeedDep) -> FeedStateResponse:
    """Return the current feed without fetching."""
    return feed.snapshot()


@router.post(
    "/next",
    response_model=FeedStateResponse,
    summary="Load next page",
    responses={502: {"model": FeedStateResponse}},
)
async def request_next_page(feed: FeedDep):
    """Request the next page; no-op while fetching, exhausted or errored."""
    try:
        await feed.request_next_page()
    except NetworkError:
        return _page_failed(feed)
    return feed.snapshot()


@router.post(
    "/retry",
    response_model=FeedStateResponse,
    summary="Retry failed page",
    responses={502: {"model": FeedStateResponse}},
)
async def retry_page(feed: FeedDep):
    try:
        await feed.retry()
    except NetworkError:
        return _page_failed(feed)
    return feed.snapshot()


@router.post(
    "/refresh",
    response_model=FeedStateResponse,
    summary="Refetch loaded pages",
    responses={502: {"model": FeedStateResponse}},
)
async def refresh_feed(feed: FeedDep):
    try:
        await feed.refresh()
    except NetworkError:
        return _page_failed(feed)
    return feed.snapshot()


@router.put(
    "/filter",
    response_model=FeedStateResponse,
    summary="Change filter",
    responses={502: {"model": FeedStateResponse}},
)
async def change_filter(body: ChangeFilterRequest, feed: FeedDep):
    """Switch filter; clears loaded pages and loads page 1 of the new view."""
    try:
        await feed.change_filter(body.filter)
    except NetworkError:
        return _page_failed(feed)
    return feed.snapshot()


@router.put(
    "/read-all",
    response_model=MutationResultResponse,
    summary="Mark all as read",
    responses={502: {"model": MutationResultResponse}},
)
async def mark_all_as_read(feed: FeedDep):
    try:
        marked = await feed.mark_all_as_read()
    except MutationError as exc:
        return _mutation_failed(feed, exc)
    return MutationResultResponse(
        success=True, affected_ids=marked, unread_count=feed.unread_count
    )


@router.put(
    "/{notification_id}/read",
    response_model=MutationResultResponse,
    summary="Mark as read",
    responses={502: {"model": MutationResultResponse}},
)
async def mark_as_read(notification_id: int, feed: FeedDep):
    try:
        await feed.mark_as_read(notification_id)
    except MutationError as exc:
        return _mutation_failed(feed, exc)
    return MutationResultResponse(
        success=True, affected_ids=[notification_id], unread_count=feed.unread_count
    )


@router.delete(
    "/{notification_id}",
    response_model=MutationResultResponse,
    summary="Hide notification locally",
)
async def delete_notification(
    notification_id: int, feed: FeedDep
) -> MutationResultResponse:
    removed = feed.delete_notification(notification_id)
    return MutationResultResponse(
        success=removed,
        message=None if removed else "Notification is not loaded",
        affected_ids=[notification_id] if removed else [],
        unread_count=feed.unread_count,
    )


@router.post(
    "/delete",
    response_model=MutationResultResponse,
    summary="Hide notifications locally",
)
async def delete_notifications(
    body: DeleteNotificationsRequest, feed: FeedDep
) -> MutationResultResponse:
    removed = feed.delete_notifications(body.ids)
    return MutationResultResponse(
        success=bool(removed),
        message=None if removed else "None of the notifications are loaded",
        affected_ids=removed,
        unread_count=feed.unread_count,
    )


@router.get(
    "/unread-count", response_model=UnreadCountResponse, summary="Unread count"
)
async def get_unread_count(feed: FeedDep) -> UnreadCountResponse:
    return feed.unread_snapshot()


@router.get(
    "/counts", response_model=FilterCountsResponse, summary="Counts per view"
)
async def get_filter_counts(feed: FeedDep) -> FilterCountsResponse:
    return feed.filter_counts()


@router.get(
    "/{notification_id}",
    response_model=NotificationItemResponse,
    summary="Notification detail",
)
async def get_notification(
    notification_id: int, feed: FeedDep
) -> NotificationItemResponse:
    try:
        return await feed.get_notification(notification_id)
    except BackendResponseError as exc:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)
            ) from exc
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
    except BackendError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)
        ) from exc
