"""Tests for notification domain models.

Tests cover:
- Wire type to category mapping
- Filter fan-out categories
- Icon derivation
- Backend schema conversion
"""

from datetime import UTC, datetime

from factories import make_record

from src.notifications.models import (
    FilterKind,
    IconKind,
    NotificationCategory,
    category_for_wire_type,
    derive_icon_kind,
)
from src.notifications.schemas import BackendNotification, NotificationItemResponse


BOTH = (NotificationCategory.SYSTEM, NotificationCategory.SOCIAL)


class TestCategoryMapping:
    """Tests for category_for_wire_type and type params."""

    def test_user_maps_to_social(self):
        assert category_for_wire_type("USER") is NotificationCategory.SOCIAL

    def test_mapping_is_case_insensitive(self):
        assert category_for_wire_type("system") is NotificationCategory.SYSTEM

    def test_other_types_have_no_category(self):
        """AI or CALENDAR notifications belong to whichever source returned them."""
        assert category_for_wire_type("AI") is None
        assert category_for_wire_type("CALENDAR") is None

    def test_type_params(self):
        assert NotificationCategory.SYSTEM.type_param == 0
        assert NotificationCategory.SOCIAL.type_param == 1


class TestFilterKind:
    """Tests for FilterKind.categories."""

    def test_all_and_unread_fan_out_to_every_source(self):
        assert FilterKind.ALL.categories(BOTH) == BOTH
        assert FilterKind.UNREAD.categories(BOTH) == BOTH

    def test_single_category_filters(self):
        assert FilterKind.SYSTEM.categories(BOTH) == (NotificationCategory.SYSTEM,)
        assert FilterKind.SOCIAL.categories(BOTH) == (NotificationCategory.SOCIAL,)

    def test_unavailable_source_is_empty(self):
        assert FilterKind.SOCIAL.categories((NotificationCategory.SYSTEM,)) == ()


class TestDeriveIconKind:
    """Tests for derive_icon_kind."""

    def test_system_defaults_to_bell(self):
        assert (
            derive_icon_kind(NotificationCategory.SYSTEM, None, "Maintenance window")
            is IconKind.BELL
        )

    def test_system_subscription(self):
        assert (
            derive_icon_kind(NotificationCategory.SYSTEM, None, "Subscription renewed")
            is IconKind.SUBSCRIPTION
        )

    def test_social_post_like(self):
        assert (
            derive_icon_kind(NotificationCategory.SOCIAL, "/posts/12", "Ana liked your post")
            is IconKind.HEART
        )

    def test_social_collection_comment(self):
        assert (
            derive_icon_kind(
                NotificationCategory.SOCIAL, "/collections/3", "New comment on Trips"
            )
            is IconKind.COMMENT
        )

    def test_social_post_without_keyword(self):
        assert (
            derive_icon_kind(NotificationCategory.SOCIAL, "/posts/12", "Ana shared")
            is IconKind.POST
        )
        assert (
            derive_icon_kind(NotificationCategory.SOCIAL, "/collections/3", "Ana shared")
            is IconKind.COLLECTION
        )

    def test_social_profile_link(self):
        assert (
            derive_icon_kind(NotificationCategory.SOCIAL, "/profile/7", "Ana follows you")
            is IconKind.FOLLOW
        )

    def test_social_without_link(self):
        assert (
            derive_icon_kind(NotificationCategory.SOCIAL, None, "Hello")
            is IconKind.USERS
        )


class TestBackendNotification:
    """Tests for wire schema conversion."""

    def test_parses_camel_case_payload(self):
        notification = BackendNotification.model_validate(
            {
                "id": 5,
                "title": "Ana liked your post",
                "message": "Nice shot",
                "href": "/posts/9",
                "type": "USER",
                "actorDisplayName": "Ana",
                "isRead": True,
                "readAt": "2024-01-10T10:00:00Z",
                "createdAt": "2024-01-10T09:00:00Z",
            }
        )

        record = notification.to_record(NotificationCategory.SOCIAL)

        assert record.id == 5
        assert record.body == "Nice shot"
        assert record.link_target == "/posts/9"
        assert record.actor_display_name == "Ana"
        assert record.is_read is True
        assert record.icon_kind is IconKind.HEART

    def test_naive_timestamp_is_utc(self):
        notification = BackendNotification.model_validate(
            {"id": 1, "title": "t", "type": "SYSTEM", "createdAt": "2024-01-10T09:00:00"}
        )
        assert notification.created_at == datetime(2024, 1, 10, 9, 0, tzinfo=UTC)

    def test_empty_href_has_no_link(self):
        notification = BackendNotification.model_validate(
            {
                "id": 1,
                "title": "t",
                "type": "SYSTEM",
                "href": "",
                "createdAt": "2024-01-10T09:00:00Z",
            }
        )
        assert notification.to_record(NotificationCategory.SYSTEM).link_target is None


class TestNotificationItemResponse:
    """Tests for NotificationItemResponse.from_record."""

    def test_uses_displayed_read_state(self):
        record = make_record(3, is_read=False)
        response = NotificationItemResponse.from_record(record, is_read=True)

        assert response.is_read is True
        assert response.icon_kind is IconKind.BELL
        assert response.category is NotificationCategory.SYSTEM
