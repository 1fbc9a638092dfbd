"""Shared fixtures for the notification feed tests."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("UNREAD_POLL_ENABLED", "false")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOG_REQUESTS", "false")

from collections.abc import Iterator  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from src.notifications.client import NotificationBackendClient  # noqa: E402


@pytest.fixture
def mock_client() -> AsyncMock:
    """Mock notifications backend client."""
    client = AsyncMock(spec=NotificationBackendClient)
    client.get_unread_count.return_value = 0
    return client


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
