"""Feed engine errors."""


class FeedError(Exception):
    """Base exception for feed engine errors."""


class NetworkError(FeedError):
    """Raised when any source of a merged page fails; the page is not rendered."""

    def __init__(self, message: str, page_index: int) -> None:
        super().__init__(message)
        self.page_index = page_index


class MutationError(FeedError):
    """Raised when a read-state mutation fails and has been rolled back."""

    def __init__(self, message: str, notification_ids: list[int]) -> None:
        super().__init__(message)
        self.notification_ids = notification_ids


class StaleResponseError(FeedError):
    """Internal: a page resolved after its generation token went stale."""


class FeedNotFoundError(FeedError):
    """Raised when no feed session exists for a user."""
