"""Client-local read-state overrides layered onto fetched records.

Render-time rule::

    displayed_is_read(id) = overlay[id].is_read if id in overlay else record.is_read

Entries stack per id: a newer mutation on the same record keeps the entry it
shadows as ``previous``, so rolling back any one entry restores exactly the
state that preceded it. Entries are not time-limited. A confirmed entry is
dropped only once a refetch shows the authoritative record has caught up.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import structlog

from src.notifications.models import NotificationRecord


logger = structlog.get_logger(__name__)


class OverlayStatus(str, Enum):
    """Lifecycle of an overlay entry."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolledBack"


@dataclass(eq=False)
class OverlayEntry:
    """A local override of one record's read state."""

    id: int
    is_read: bool
    status: OverlayStatus = OverlayStatus.PENDING
    read_at: datetime | None = None
    previous: "OverlayEntry | None" = None


class LocalOverlay:
    """Overlay entries keyed by record id."""

    def __init__(self) -> None:
        self._entries: dict[int, OverlayEntry] = {}

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, notification_id: int) -> OverlayEntry | None:
        return self._entries.get(notification_id)

    def displayed_is_read(self, record: NotificationRecord) -> bool:
        entry = self._entries.get(record.id)
        return entry.is_read if entry is not None else record.is_read

    def displayed_read_at(self, record: NotificationRecord) -> datetime | None:
        entry = self._entries.get(record.id)
        if entry is None:
            return record.read_at
        if not entry.is_read:
            return None
        return record.read_at or entry.read_at

    # ==========================================================================
    # State transitions
    # ==========================================================================

    def apply(
        self,
        notification_id: int,
        is_read: bool,
        read_at: datetime | None = None,
    ) -> OverlayEntry:
        """Create a pending entry shadowing whatever is currently displayed."""
        entry = OverlayEntry(
            id=notification_id,
            is_read=is_read,
            read_at=read_at,
            previous=self._entries.get(notification_id),
        )
        self._entries[notification_id] = entry
        return entry

    def apply_many(
        self,
        notification_ids: Iterable[int],
        is_read: bool,
        read_at: datetime | None = None,
    ) -> list[OverlayEntry]:
        return [self.apply(nid, is_read, read_at) for nid in notification_ids]

    def confirm(self, entry: OverlayEntry) -> None:
        if entry.status is OverlayStatus.PENDING:
            entry.status = OverlayStatus.CONFIRMED

    def confirm_many(self, entries: Iterable[OverlayEntry]) -> None:
        for entry in entries:
            self.confirm(entry)

    def roll_back(self, entry: OverlayEntry) -> None:
        """Remove ``entry``, restoring the state it shadowed."""
        if entry.status is OverlayStatus.ROLLED_BACK:
            return
        entry.status = OverlayStatus.ROLLED_BACK

        current = self._entries.get(entry.id)
        if current is entry:
            if entry.previous is None:
                del self._entries[entry.id]
            else:
                self._entries[entry.id] = entry.previous
            return

        # A newer entry shadows this one; unlink it from the chain
        while current is not None:
            if current.previous is entry:
                current.previous = entry.previous
                return
            current = current.previous

    def roll_back_many(self, entries: Iterable[OverlayEntry]) -> None:
        """Roll back a batch. Runs without suspension, so it is all-or-nothing."""
        for entry in entries:
            self.roll_back(entry)

    def reconcile(self, records: Iterable[NotificationRecord]) -> int:
        """Drop confirmed entries whose authoritative record has caught up.

        Pending entries always survive a refetch.

        Returns:
            Number of entries dropped.
        """
        dropped = 0
        for record in records:
            entry = self._entries.get(record.id)
            if (
                entry is not None
                and entry.status is OverlayStatus.CONFIRMED
                and entry.is_read == record.is_read
            ):
                del self._entries[record.id]
                dropped += 1
        if dropped:
            logger.debug("overlay_reconciled", dropped=dropped)
        return dropped

    def clear(self) -> None:
        self._entries.clear()
