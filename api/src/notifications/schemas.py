"""Pydantic schemas for notifications.

Wire schemas validate backend responses at the fetch boundary; response
schemas describe what the feed exposes to UI clients.
"""

from datetime import UTC, datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.notifications.models import (
    FilterKind,
    IconKind,
    NotificationCategory,
    NotificationRecord,
    PageMetadata,
)


T = TypeVar("T")


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive backend timestamps are UTC; mixing naive and aware breaks sorting
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ==============================================================================
# Backend (wire) Schemas
# ==============================================================================


class BackendModel(BaseModel):
    """Base for camelCase backend payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ApiEnvelope(BackendModel, Generic[T]):
    """Backend response wrapper: ``{statusCode, message, data}``."""

    status_code: int | None = None
    message: str | None = None
    data: T | None = None


class BackendNotification(BackendModel):
    """Single notification as returned by the backend."""

    id: int
    title: str
    message: str = ""
    href: str | None = None
    type: str
    image_url: str | None = None
    actor_user_id: int | None = None
    actor_display_name: str | None = None
    actor_avatar_url: str | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime

    @field_validator("created_at", "read_at")
    @classmethod
    def ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def to_record(self, category: NotificationCategory) -> NotificationRecord:
        """Create a domain record tagged with its source category."""
        return NotificationRecord(
            id=self.id,
            category=category,
            title=self.title,
            body=self.message,
            created_at=self.created_at,
            is_read=self.is_read,
            link_target=self.href or None,
            read_at=self.read_at,
            notification_type=self.type,
            image_url=self.image_url,
            actor_user_id=self.actor_user_id,
            actor_display_name=self.actor_display_name,
            actor_avatar_url=self.actor_avatar_url,
        )


class BackendPaginationMetaData(BackendModel):
    """Pagination metadata as returned by the backend."""

    total_count: int = Field(ge=0)
    page_size: int = Field(ge=0)
    current_page: int = Field(ge=0)
    total_pages: int = Field(ge=0)
    has_next: bool
    has_previous: bool

    def to_metadata(self) -> PageMetadata:
        return PageMetadata(
            total_count=self.total_count,
            page_size=self.page_size,
            current_page=self.current_page,
            total_pages=self.total_pages,
            has_next=self.has_next,
            has_previous=self.has_previous,
        )


class BackendNotificationsList(BackendModel):
    """Paginated notification list payload."""

    data: list[BackendNotification] = Field(default_factory=list)
    meta_data: BackendPaginationMetaData


# ==============================================================================
# Response Schemas
# ==============================================================================


class NotificationItemResponse(BaseModel):
    """Single feed item with the displayed (overlay-adjusted) read state."""

    id: int = Field(description="Notification ID")
    category: NotificationCategory = Field(description="Source category")
    title: str = Field(description="Notification title")
    body: str = Field(description="Notification message")
    created_at: datetime = Field(description="When the notification was created")
    is_read: bool = Field(description="Displayed read state")
    read_at: datetime | None = Field(None, description="When it was read")
    link_target: str | None = Field(None, description="Link opened on click")
    icon_kind: IconKind = Field(description="Icon shown next to the item")
    image_url: str | None = Field(None, description="Optional image")
    actor_display_name: str | None = Field(None, description="Triggering user")
    actor_avatar_url: str | None = Field(None, description="Triggering user avatar")

    @classmethod
    def from_record(
        cls,
        record: NotificationRecord,
        is_read: bool,
        read_at: datetime | None = None,
    ) -> "NotificationItemResponse":
        """Create response from a record and its displayed read state."""
        return cls(
            id=record.id,
            category=record.category,
            title=record.title,
            body=record.body,
            created_at=record.created_at,
            is_read=is_read,
            read_at=read_at,
            link_target=record.link_target,
            icon_kind=record.icon_kind,
            image_url=record.image_url,
            actor_display_name=record.actor_display_name,
            actor_avatar_url=record.actor_avatar_url,
        )


class FeedStateResponse(BaseModel):
    """Flat, ordered feed plus loading/error flags."""

    user_id: int = Field(description="Feed owner")
    filter: FilterKind = Field(description="Active filter")
    items: list[NotificationItemResponse] = Field(description="Ordered feed items")
    state: str = Field(description="Cursor state")
    is_loading: bool = Field(description="Whether a page fetch is in flight")
    error: str | None = Field(None, description="Last page fetch error")
    has_more: bool = Field(description="Whether more pages can be requested")
    pages_loaded: int = Field(description="Number of merged pages loaded")
    total_count: int = Field(description="Aggregate total across sources")
    unread_count: int = Field(description="Displayed unread count")
    stale: bool = Field(description="Whether the feed was invalidated")


class UnreadCountResponse(BaseModel):
    """Displayed unread notification count."""

    count: int = Field(description="Number of unread notifications")
    authoritative: bool = Field(description="Whether the count came from the backend")


class FilterCountsResponse(BaseModel):
    """Counts of loaded records per feed view."""

    all: int
    unread: int
    system: int
    social: int


class MutationResultResponse(BaseModel):
    """Outcome of a read-state mutation or local delete."""

    success: bool = Field(description="Whether the operation succeeded")
    message: str | None = Field(None, description="Failure reason")
    affected_ids: list[int] = Field(default_factory=list)
    unread_count: int = Field(description="Displayed unread count afterwards")


# ==============================================================================
# Request Schemas
# ==============================================================================


class ChangeFilterRequest(BaseModel):
    """Request to switch the active feed filter."""

    filter: FilterKind = Field(description="Filter to activate")


class DeleteNotificationsRequest(BaseModel):
    """Request to hide notifications from the local feed."""

    ids: list[int] = Field(min_length=1, description="Notification IDs to hide")
