"""Domain models for the notification feed.

Entities:
- NotificationRecord: one notification as fetched from the backend (immutable)
- PageMetadata: pagination metadata, per source or aggregated
- SourcePage: one page of one category, tagged with its kind
- MergedPage: one logical feed page combining a page from every source

Categories:
- SYSTEM: system-wide announcements (backend type filter 0)
- SOCIAL: activity from other users (backend type filter 1, "USER" on the wire)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class NotificationCategory(str, Enum):
    """Independently paginated notification sources."""

    SYSTEM = "SYSTEM"
    SOCIAL = "SOCIAL"

    @property
    def type_param(self) -> int:
        """Numeric category filter understood by the backend."""
        return _CATEGORY_TYPE_PARAM[self]


_CATEGORY_TYPE_PARAM = {
    NotificationCategory.SYSTEM: 0,
    NotificationCategory.SOCIAL: 1,
}

# Wire types that belong unambiguously to one category. Other wire types
# (AI, CALENDAR, ...) are accepted under whichever source returned them.
_WIRE_TYPE_CATEGORY = {
    "SYSTEM": NotificationCategory.SYSTEM,
    "USER": NotificationCategory.SOCIAL,
    "SOCIAL": NotificationCategory.SOCIAL,
}


def category_for_wire_type(wire_type: str) -> NotificationCategory | None:
    """Map a backend notification type to its category, if it has one."""
    return _WIRE_TYPE_CATEGORY.get(wire_type.upper())


class FilterKind(str, Enum):
    """Feed views selectable by the UI."""

    ALL = "all"
    UNREAD = "unread"
    SYSTEM = "system"
    SOCIAL = "social"

    def categories(
        self, available: tuple[NotificationCategory, ...]
    ) -> tuple[NotificationCategory, ...]:
        """Sources to fan out to for this view, in tie-break order."""
        if self is FilterKind.SYSTEM:
            return tuple(c for c in available if c is NotificationCategory.SYSTEM)
        if self is FilterKind.SOCIAL:
            return tuple(c for c in available if c is NotificationCategory.SOCIAL)
        return available


class IconKind(str, Enum):
    """Icon shown next to a notification."""

    BELL = "bell"
    USERS = "users"
    HEART = "heart"
    COMMENT = "comment"
    POST = "post"
    COLLECTION = "collection"
    FOLLOW = "follow"
    SUBSCRIPTION = "subscription"


def derive_icon_kind(
    category: NotificationCategory,
    link_target: str | None,
    title: str,
) -> IconKind:
    """Pick an icon from category, link target and title."""
    lowered = title.lower()

    if category is NotificationCategory.SYSTEM:
        return IconKind.SUBSCRIPTION if "subscription" in lowered else IconKind.BELL

    if link_target:
        if "/posts/" in link_target or "/collections/" in link_target:
            if "like" in lowered:
                return IconKind.HEART
            if "comment" in lowered:
                return IconKind.COMMENT
            return IconKind.POST if "/posts/" in link_target else IconKind.COLLECTION
        if "/profile/" in link_target or "/users/" in link_target:
            return IconKind.FOLLOW

    return IconKind.USERS


@dataclass(frozen=True)
class NotificationRecord:
    """A fetched notification. Only ``is_read`` may be shadowed by an overlay."""

    id: int
    category: NotificationCategory
    title: str
    body: str
    created_at: datetime
    is_read: bool
    link_target: str | None = None
    read_at: datetime | None = None
    notification_type: str = ""
    image_url: str | None = None
    actor_user_id: int | None = None
    actor_display_name: str | None = None
    actor_avatar_url: str | None = None

    @property
    def icon_kind(self) -> IconKind:
        return derive_icon_kind(self.category, self.link_target, self.title)


@dataclass(frozen=True)
class PageMetadata:
    """Pagination metadata for one source page or an aggregated page."""

    total_count: int
    page_size: int
    current_page: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def empty(cls, page_size: int = 0) -> "PageMetadata":
        return cls(
            total_count=0,
            page_size=page_size,
            current_page=0,
            total_pages=0,
            has_next=False,
            has_previous=False,
        )


@dataclass(frozen=True)
class SourcePage:
    """One page of one category, tagged with the category it was fetched for."""

    kind: NotificationCategory
    items: tuple[NotificationRecord, ...]
    metadata: PageMetadata


@dataclass(frozen=True)
class MergedPage:
    """Newest-first, id-unique page combining one page from every source."""

    page_index: int
    items: tuple[NotificationRecord, ...]
    metadata: PageMetadata
    sources: tuple[NotificationCategory, ...] = field(default=())
