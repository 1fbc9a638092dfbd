"""Feed state keyed by (user, filter).

A FeedState is the concatenation, in fetch order, of every merged page
loaded under one filter context, deduplicated by id, with the overlay applied
at read time. Changing filter replaces it with a fresh one; further pages
under a stable filter only ever append.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from src.feed.merger import dedupe_by_id
from src.feed.overlay import LocalOverlay
from src.notifications.models import (
    FilterKind,
    MergedPage,
    NotificationCategory,
    NotificationRecord,
)


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FeedKey:
    """Identity of a feed: whose notifications, under which view."""

    user_id: int
    filter_kind: FilterKind


class FeedState:
    """Loaded pages, local overlay and hidden ids for one FeedKey."""

    def __init__(self, key: FeedKey) -> None:
        self.key = key
        self.pages: list[MergedPage] = []
        self.overlay = LocalOverlay()
        self.removed_ids: set[int] = set()
        self.stale = False

    @property
    def last_page(self) -> MergedPage | None:
        return self.pages[-1] if self.pages else None

    @property
    def records(self) -> list[NotificationRecord]:
        """All loaded records in fetch order, without locally removed ones."""
        concatenated = [record for page in self.pages for record in page.items]
        return [
            record
            for record in dedupe_by_id(concatenated)
            if record.id not in self.removed_ids
        ]

    def append_page(self, page: MergedPage) -> None:
        self.pages.append(page)

    def replace_pages(self, pages: Iterable[MergedPage]) -> None:
        """Swap in refetched pages and let confirmed overlay entries settle."""
        self.pages = list(pages)
        self.stale = False
        self.overlay.reconcile(self.records)

    def is_read(self, record: NotificationRecord) -> bool:
        return self.overlay.displayed_is_read(record)

    def find(self, notification_id: int) -> NotificationRecord | None:
        for record in self.records:
            if record.id == notification_id:
                return record
        return None

    def visible_records(self) -> list[NotificationRecord]:
        """Records shown under the active filter, using displayed read state."""
        filter_kind = self.key.filter_kind
        if filter_kind is FilterKind.UNREAD:
            return [r for r in self.records if not self.is_read(r)]
        if filter_kind is FilterKind.SYSTEM:
            return [r for r in self.records if r.category is NotificationCategory.SYSTEM]
        if filter_kind is FilterKind.SOCIAL:
            return [r for r in self.records if r.category is NotificationCategory.SOCIAL]
        return self.records

    def count_unread(self) -> int:
        return sum(1 for record in self.records if not self.is_read(record))

    def filter_counts(self) -> dict[str, int]:
        records = self.records
        return {
            "all": len(records),
            "unread": sum(1 for r in records if not self.is_read(r)),
            "system": sum(1 for r in records if r.category is NotificationCategory.SYSTEM),
            "social": sum(1 for r in records if r.category is NotificationCategory.SOCIAL),
        }

    @property
    def total_count(self) -> int:
        """Aggregate total reported by the backend, less locally removed records."""
        if self.last_page is None:
            return 0
        return max(0, self.last_page.metadata.total_count - len(self.removed_ids))

    def remove(self, notification_ids: Iterable[int]) -> list[NotificationRecord]:
        """Hide records locally. Returns the records that were actually removed."""
        wanted = set(notification_ids)
        removed = [record for record in self.records if record.id in wanted]
        self.removed_ids.update(record.id for record in removed)
        return removed


class FeedStore:
    """Explicit feed cache keyed by FeedKey."""

    def __init__(self) -> None:
        self._states: dict[FeedKey, FeedState] = {}

    def get(self, key: FeedKey) -> FeedState | None:
        return self._states.get(key)

    def reset(self, key: FeedKey) -> FeedState:
        """Start a fresh state for ``key``, dropping every other state of the user."""
        for existing in [k for k in self._states if k.user_id == key.user_id]:
            del self._states[existing]
        state = FeedState(key)
        self._states[key] = state
        logger.debug(
            "feed_state_reset", user_id=key.user_id, filter=key.filter_kind.value
        )
        return state

    def invalidate(self, user_id: int) -> None:
        """Mark a user's states stale so the next refresh refetches them."""
        for key, state in self._states.items():
            if key.user_id == user_id:
                state.stale = True

    def discard(self, user_id: int) -> None:
        for existing in [k for k in self._states if k.user_id == user_id]:
            del self._states[existing]
