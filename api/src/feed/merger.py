"""Fan-out/fan-in merge of per-category pages into one logical feed page.

Merge rules:
- Items from all sources are concatenated in source order
- Stable sort by created_at, newest first (ties keep source order)
- Deduplicated by id, first occurrence wins
- Aggregate metadata: total_count and page_size summed, has_next and
  has_previous OR-ed, current_page and total_pages take the max

If any source fails the whole page fails. A partial merge would carry
inconsistent aggregate counts.
"""

import asyncio
from collections.abc import Sequence

import structlog

from src.feed.exceptions import NetworkError
from src.feed.fetcher import SourceFetcher
from src.notifications.models import (
    MergedPage,
    NotificationRecord,
    PageMetadata,
    SourcePage,
)


logger = structlog.get_logger(__name__)


def sort_newest_first(
    records: Sequence[NotificationRecord],
) -> list[NotificationRecord]:
    """Stable sort by created_at descending; equal timestamps keep input order."""
    return sorted(records, key=lambda record: record.created_at, reverse=True)


def dedupe_by_id(records: Sequence[NotificationRecord]) -> list[NotificationRecord]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[int] = set()
    unique = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def aggregate_metadata(pages: Sequence[SourcePage]) -> PageMetadata:
    """Combine per-source metadata into the merged page's metadata."""
    if not pages:
        return PageMetadata.empty()

    metadata = [page.metadata for page in pages]
    return PageMetadata(
        total_count=sum(m.total_count for m in metadata),
        page_size=sum(m.page_size for m in metadata),
        current_page=max(m.current_page for m in metadata),
        total_pages=max(m.total_pages for m in metadata),
        has_next=any(m.has_next for m in metadata),
        has_previous=any(m.has_previous for m in metadata),
    )


def merge_source_pages(page_index: int, pages: Sequence[SourcePage]) -> MergedPage:
    """Merge K source pages fetched for the same logical page index."""
    concatenated = [record for page in pages for record in page.items]
    items = dedupe_by_id(sort_newest_first(concatenated))

    return MergedPage(
        page_index=page_index,
        items=tuple(items),
        metadata=aggregate_metadata(pages),
        sources=tuple(page.kind for page in pages),
    )


class PageMerger:
    """Fans out to one SourceFetcher per category and merges the results."""

    def __init__(self, fetchers: Sequence[SourceFetcher]) -> None:
        self.fetchers = tuple(fetchers)

    async def fetch_page(
        self, user_id: int, page_index: int, page_size: int
    ) -> MergedPage:
        """Fetch and merge one logical page.

        Raises:
            NetworkError: If any source call fails.
        """
        try:
            pages = await asyncio.gather(
                *(
                    fetcher.fetch(user_id, page_index, page_size)
                    for fetcher in self.fetchers
                )
            )
        except Exception as exc:
            logger.warning(
                "feed_page_failed",
                page_index=page_index,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise NetworkError(
                f"Failed to load page {page_index}: {exc}", page_index
            ) from exc

        merged = merge_source_pages(page_index, pages)
        logger.debug(
            "feed_page_merged",
            page_index=page_index,
            item_count=len(merged.items),
            total_count=merged.metadata.total_count,
            has_next=merged.metadata.has_next,
        )
        return merged
