"""
Test configuration and fixtures for the storehouse real-time test suite.
"""

import os

# Set required environment variables before any storehouse module loads config
os.environ.setdefault("AUTH_JWT_SECRET", "test-jwt-secret-key-for-testing-only")
os.environ.setdefault("AUTH_SERVICE_KEY", "test-service-key-for-testing-only")
os.environ.setdefault("SERVER_PORT", "54731")
os.environ.setdefault("SERVER_HOST", "127.0.0.1")
os.environ.setdefault("LOGGING_ENVIRONMENT", "unit_test")
os.environ.setdefault("LOGGING_LEVEL", "DEBUG")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402

from storehouse.config import get_config, reset_config  # noqa: E402
from storehouse.realtime.chat_channel import ChatChannel  # noqa: E402
from storehouse.realtime.connection_directory import ConnectionDirectory  # noqa: E402
from storehouse.realtime.connection_models import Identity  # noqa: E402
from storehouse.realtime.message_broadcaster import MessageBroadcaster  # noqa: E402
from storehouse.realtime.notification_channel import NotificationChannel  # noqa: E402
from storehouse.tests.fixtures.senders import RecordingSender  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_config() -> Generator[None, None, None]:
    """Each test sees configuration freshly read from the environment."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def app_config():
    return get_config()


@pytest.fixture
def directory() -> ConnectionDirectory:
    return ConnectionDirectory()


@pytest.fixture
def broadcaster(directory: ConnectionDirectory) -> MessageBroadcaster:
    return MessageBroadcaster(directory)


@pytest.fixture
def chat_channel(directory: ConnectionDirectory, broadcaster: MessageBroadcaster) -> ChatChannel:
    return ChatChannel(directory, broadcaster)


@pytest.fixture
def notification_channel(directory: ConnectionDirectory, broadcaster: MessageBroadcaster) -> NotificationChannel:
    return NotificationChannel(directory, broadcaster)


@pytest.fixture
def make_identity():
    """Factory for identities: make_identity("u1", "T1", "Alice")."""

    def _make(user_id: str, tenant_id: str, display_name: str = "", roles: tuple[str, ...] = ()) -> Identity:
        return Identity(user_id=user_id, tenant_id=tenant_id, display_name=display_name, roles=roles)

    return _make


@pytest.fixture
def make_sender():
    """Factory for RecordingSender instances."""

    def _make(connection_id: str = "", fail: bool = False, delay: float = 0.0) -> RecordingSender:
        return RecordingSender(connection_id, fail=fail, delay=delay)

    return _make
