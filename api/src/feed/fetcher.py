"""Single-category page fetcher.

Validates the backend payload at the fetch boundary and tags it with the
category it was requested for, so the merger only ever sees SourcePage values.
"""

import structlog

from src.notifications.client import MalformedResponseError, NotificationBackendClient
from src.notifications.models import (
    NotificationCategory,
    SourcePage,
    category_for_wire_type,
)


logger = structlog.get_logger(__name__)


class SourceFetcher:
    """Fetches one page of one notification category for one user.

    Backend failures propagate unmodified; there is no local retry.
    """

    def __init__(
        self, client: NotificationBackendClient, category: NotificationCategory
    ) -> None:
        self.client = client
        self.category = category

    async def fetch(self, user_id: int, page_index: int, page_size: int) -> SourcePage:
        payload = await self.client.get_notifications(
            user_id=user_id,
            category=self.category,
            page=page_index,
            page_size=page_size,
        )

        records = []
        for notification in payload.data:
            wire_category = category_for_wire_type(notification.type)
            if wire_category is not None and wire_category is not self.category:
                raise MalformedResponseError(
                    f"Notification {notification.id} of type {notification.type} "
                    f"returned by the {self.category.value} source"
                )
            records.append(notification.to_record(self.category))

        logger.debug(
            "source_page_fetched",
            category=self.category.value,
            page_index=page_index,
            item_count=len(records),
            has_next=payload.meta_data.has_next,
        )
        return SourcePage(
            kind=self.category,
            items=tuple(records),
            metadata=payload.meta_data.to_metadata(),
        )
