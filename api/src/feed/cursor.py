"""Sequential page cursor for the infinite-scroll feed.

States::

    IDLE -> FETCHING -> HAS_MORE | EXHAUSTED | ERRORED
    ERRORED -> FETCHING            (explicit retry)
    any     -> FETCHING            (filter change: state cleared, page 1)

At most one page fetch is live at a time. Every fetch carries a generation
token for the cursor's (generation, filter, page) context. When it resolves
the token must still match the live context, otherwise the result is
discarded. Filter changes do not cancel the in-flight network call.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from src.core.context import FeedContext
from src.feed.exceptions import FeedError, NetworkError, StaleResponseError
from src.feed.merger import PageMerger
from src.feed.state import FeedKey, FeedState, FeedStore
from src.notifications.models import FilterKind, MergedPage


logger = structlog.get_logger(__name__)


class CursorState(str, Enum):
    """Pagination states."""

    IDLE = "idle"
    FETCHING = "fetching"
    HAS_MORE = "has_more"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"


@dataclass(frozen=True)
class GenerationToken:
    """Context a fetch was issued under."""

    generation: int
    filter_kind: FilterKind
    page_index: int


class InfiniteCursor:
    """Owns pagination state and the FeedState it appends to."""

    def __init__(
        self,
        user_id: int,
        store: FeedStore,
        merger_factory: Callable[[FilterKind], PageMerger],
        page_size: int,
        filter_kind: FilterKind = FilterKind.ALL,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.user_id = user_id
        self.page_size = page_size
        self._store = store
        self._merger_factory = merger_factory
        self._on_change = on_change

        self._generation = 0
        self._in_flight: GenerationToken | None = None
        self.filter_kind = filter_kind
        self.next_page_index = 1
        self.state = CursorState.IDLE
        self.error: FeedError | None = None
        self._merger = merger_factory(filter_kind)
        self.feed: FeedState = store.reset(FeedKey(user_id, filter_kind))

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_loading(self) -> bool:
        return self.state is CursorState.FETCHING

    @property
    def has_more(self) -> bool:
        return self.state is not CursorState.EXHAUSTED

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _token(self, page_index: int) -> GenerationToken:
        return GenerationToken(self._generation, self.filter_kind, page_index)

    def _ensure_live(self, token: GenerationToken) -> None:
        if token != self._in_flight:
            raise StaleResponseError(
                f"Discarding page {token.page_index} of generation {token.generation}"
            )

    # ==========================================================================
    # Operations
    # ==========================================================================

    async def request_next_page(self) -> bool:
        """Fetch the next page if allowed.

        No-op while a fetch is in flight, after exhaustion, or while errored
        (use ``retry``).

        Returns:
            True if a page was appended.

        Raises:
            NetworkError: If the live fetch failed; the cursor is ERRORED.
        """
        if self.state in (
            CursorState.FETCHING,
            CursorState.EXHAUSTED,
            CursorState.ERRORED,
        ):
            return False
        return await self._fetch(self._token(self.next_page_index))

    async def retry(self) -> bool:
        """Re-request the page that failed."""
        if self.state is not CursorState.ERRORED:
            return False
        return await self._fetch(self._token(self.next_page_index))

    async def change_filter(self, filter_kind: FilterKind, fetch: bool = True) -> bool:
        """Switch filter: new generation, fresh FeedState, back to page 1.

        Any fetch still in flight for the previous context is left to resolve
        and is then discarded.
        """
        self._generation += 1
        self._in_flight = None
        self.filter_kind = filter_kind
        self.next_page_index = 1
        self.error = None
        self.state = CursorState.IDLE
        self._merger = self._merger_factory(filter_kind)
        self.feed = self._store.reset(FeedKey(self.user_id, filter_kind))

        with FeedContext(self.user_id, filter_kind.value):
            logger.info("feed_filter_changed", generation=self._generation)
        self._notify()

        if fetch:
            return await self.request_next_page()
        return False

    async def _fetch(self, token: GenerationToken) -> bool:
        self._in_flight = token
        self.state = CursorState.FETCHING
        self.error = None
        self._notify()

        merger = self._merger
        with FeedContext(self.user_id, token.filter_kind.value):
            try:
                try:
                    page = await merger.fetch_page(
                        self.user_id, token.page_index, self.page_size
                    )
                except NetworkError as exc:
                    self._ensure_live(token)
                    self._fail(exc)
                    raise

                self._ensure_live(token)
            except StaleResponseError as exc:
                logger.debug(
                    "feed_stale_response_discarded",
                    page_index=token.page_index,
                    token_generation=token.generation,
                    live_generation=self._generation,
                    reason=str(exc),
                )
                return False

            self._append(page)
            return True

    def _append(self, page: MergedPage) -> None:
        self._in_flight = None
        self.feed.append_page(page)
        self.next_page_index = page.page_index + 1
        self.state = (
            CursorState.HAS_MORE if page.metadata.has_next else CursorState.EXHAUSTED
        )
        logger.info(
            "feed_page_appended",
            page_index=page.page_index,
            item_count=len(page.items),
            state=self.state.value,
        )
        self._notify()

    def _fail(self, exc: NetworkError) -> None:
        self._in_flight = None
        self.state = CursorState.ERRORED
        self.error = exc
        logger.warning("feed_page_errored", page_index=exc.page_index, error=str(exc))
        self._notify()

    async def refresh(self) -> bool:
        """Refetch every loaded page of the current filter and swap them in.

        Overlay entries are reconciled against the fresh records. On failure
        the loaded pages stay in place and the feed remains stale.

        Returns:
            True if the pages were replaced.

        Raises:
            NetworkError: If any page of the refresh failed.
        """
        loaded = len(self.feed.pages)
        if self.state is CursorState.FETCHING or loaded == 0:
            return False

        previous_state = self.state
        token = self._token(loaded)
        self._in_flight = token
        self.state = CursorState.FETCHING
        self._notify()

        merger = self._merger
        feed = self.feed
        with FeedContext(self.user_id, token.filter_kind.value):
            pages: list[MergedPage] = []
            try:
                try:
                    for page_index in range(1, loaded + 1):
                        pages.append(
                            await merger.fetch_page(
                                self.user_id, page_index, self.page_size
                            )
                        )
                except NetworkError as exc:
                    self._ensure_live(token)
                    self._in_flight = None
                    self.state = previous_state
                    self.error = exc
                    logger.warning("feed_refresh_failed", error=str(exc))
                    self._notify()
                    raise

                self._ensure_live(token)
            except StaleResponseError:
                logger.debug("feed_stale_refresh_discarded", pages=loaded)
                return False

            self._in_flight = None
            self.error = None
            feed.replace_pages(pages)
            self.next_page_index = loaded + 1
            self.state = (
                CursorState.HAS_MORE
                if pages[-1].metadata.has_next
                else CursorState.EXHAUSTED
            )
            logger.info("feed_refreshed", pages=loaded, state=self.state.value)
            self._notify()
            return True
