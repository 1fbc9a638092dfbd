"""HTTP client for the notifications backend.

Endpoints consumed:
- GET  /notifications/user/{userId}?type=&page-index=&page-size=
- GET  /notifications/user/{userId}/unread-count
- PUT  /notifications/{notificationId}/read
- PUT  /notifications/user/{userId}/read-all
- GET  /notifications/user-notification/{notificationId}

Every response is wrapped in ``{statusCode, message, data}``. Errors are
surfaced unmodified to callers; retry policy belongs to the caller.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from src.config.settings import Settings
from src.notifications.models import (
    NotificationCategory,
    NotificationRecord,
    category_for_wire_type,
)
from src.notifications.schemas import (
    ApiEnvelope,
    BackendNotification,
    BackendNotificationsList,
)


logger = structlog.get_logger(__name__)


class BackendError(Exception):
    """Base error for backend request failures."""


class BackendConnectionError(BackendError):
    """Raised when the backend cannot be reached or times out."""


class BackendResponseError(BackendError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(BackendError):
    """Raised when a backend payload fails validation at the fetch boundary."""


class NotificationBackendClient:
    """Async client for the notifications REST backend."""

    NOTIFICATIONS_PATH = "/notifications"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        access_token: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "*/*", "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=headers,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NotificationBackendClient":
        return cls(
            base_url=settings.backend_base_url,
            timeout=settings.backend_timeout_seconds,
            access_token=settings.backend_access_token,
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body."""
        try:
            response = await self.http.request(method, path, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("backend_timeout", method=method, path=path)
            raise BackendConnectionError(f"Backend timed out: {method} {path}") from exc
        except httpx.TransportError as exc:
            logger.warning(
                "backend_unreachable", method=method, path=path, error=str(exc)
            )
            raise BackendConnectionError(
                "Network error. Please check your internet connection."
            ) from exc
        except httpx.RequestError as exc:
            # decoding failures, redirect loops and other non-transport errors
            logger.warning(
                "backend_request_failed",
                method=method,
                path=path,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise BackendConnectionError(
                f"Backend request failed: {method} {path}"
            ) from exc

        if response.is_error:
            message = self._error_message(response)
            logger.warning(
                "backend_error_response",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message,
            )
            raise BackendResponseError(message, response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Invalid JSON from {path}") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or "An unexpected error occurred"

        if isinstance(body, dict):
            data = body.get("data")
            errors = body.get("errors") or (
                data.get("errors") if isinstance(data, dict) else None
            )
            if isinstance(errors, dict) and errors:
                return "; ".join(
                    f"{field_name}: {', '.join(msgs if isinstance(msgs, list) else [msgs])}"
                    for field_name, msgs in errors.items()
                )
            if body.get("message"):
                return str(body["message"])
        elif isinstance(body, str) and body:
            return body
        return "An unexpected error occurred"

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get_notifications(
        self,
        user_id: int,
        category: NotificationCategory,
        page: int,
        page_size: int,
    ) -> BackendNotificationsList:
        """Fetch one page of one category."""
        body = await self._request(
            "GET",
            f"{self.NOTIFICATIONS_PATH}/user/{user_id}",
            params={
                "type": category.type_param,
                "page-index": page,
                "page-size": page_size,
            },
        )
        try:
            envelope = ApiEnvelope[BackendNotificationsList].model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError(
                f"Invalid notifications payload for {category.value}"
            ) from exc
        if envelope.data is None:
            raise MalformedResponseError(
                f"Missing notifications payload for {category.value}"
            )
        return envelope.data

    async def get_unread_count(self, user_id: int) -> int:
        """Fetch the authoritative unread count."""
        body = await self._request(
            "GET", f"{self.NOTIFICATIONS_PATH}/user/{user_id}/unread-count"
        )
        try:
            envelope = ApiEnvelope[int].model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError("Invalid unread count payload") from exc
        return envelope.data or 0

    async def get_notification_detail(self, notification_id: int) -> NotificationRecord:
        """Fetch a single notification."""
        body = await self._request(
            "GET", f"{self.NOTIFICATIONS_PATH}/user-notification/{notification_id}"
        )
        try:
            envelope = ApiEnvelope[BackendNotification].model_validate(body)
        except ValidationError as exc:
            raise MalformedResponseError("Invalid notification payload") from exc
        if envelope.data is None:
            raise MalformedResponseError(f"Notification {notification_id} missing")

        notification = envelope.data
        category = (
            category_for_wire_type(notification.type) or NotificationCategory.SYSTEM
        )
        return notification.to_record(category)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def mark_as_read(self, notification_id: int) -> None:
        await self._request("PUT", f"{self.NOTIFICATIONS_PATH}/{notification_id}/read")

    async def mark_all_as_read(self, user_id: int) -> None:
        await self._request("PUT", f"{self.NOTIFICATIONS_PATH}/user/{user_id}/read-all")
