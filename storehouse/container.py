"""
Dependency injection container for the storehouse real-time service.

The container owns the single ConnectionDirectory of the process and the
hubs built on top of it. It is created once in the application lifespan
and stored on ``app.state.container``; request handlers reach it through
storehouse.dependencies.

USAGE:
    # In application startup (lifespan.py):
    container = ApplicationContainer()
    await container.initialize()
    app.state.container = container

    # In tests:
    container = ApplicationContainer(config=test_config)
    await container.initialize()
    chat = container.chat_channel
"""

import asyncio
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config.models import AppConfig
    from .realtime.chat_channel import ChatChannel
    from .realtime.connection_directory import ConnectionDirectory
    from .realtime.message_broadcaster import MessageBroadcaster
    from .realtime.message_validator import WebSocketMessageValidator
    from .realtime.notification_channel import NotificationChannel

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class ApplicationContainer:
    """
    Holds the service instances of one application.

    Services are plain instances owned by the container, not module-level
    globals, so tests can build as many isolated containers as they need.
    """

    def __init__(self, config: "AppConfig | None" = None):
        """
        Initialize the container.

        Services are not built here - use initialize().

        Args:
            config: Configuration to use instead of get_config()
        """
        self.config: AppConfig | None = config

        self.connection_directory: ConnectionDirectory | None = None
        self.message_broadcaster: MessageBroadcaster | None = None
        self.message_validator: WebSocketMessageValidator | None = None
        self.chat_channel: ChatChannel | None = None
        self.notification_channel: NotificationChannel | None = None

        self._initialized: bool = False
        self._initialization_lock = asyncio.Lock()

        logger.info("ApplicationContainer created (not yet initialized)")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Build all services in dependency order.

        1. Configuration
        2. Connection directory (registry + group routers)
        3. Broadcaster and frame validator
        4. Chat and notification hubs
        """
        async with self._initialization_lock:
            if self._initialized:
                logger.warning("Container already initialized - skipping re-initialization")
                return

            logger.info("Initializing ApplicationContainer...")

            if self.config is None:
                from .config import get_config

                self.config = get_config()
            logger.info("Configuration loaded", environment=self.config.logging.environment)

            from .realtime.chat_channel import ChatChannel
            from .realtime.connection_directory import ConnectionDirectory
            from .realtime.message_broadcaster import MessageBroadcaster
            from .realtime.message_validator import WebSocketMessageValidator
            from .realtime.notification_channel import NotificationChannel

            self.connection_directory = ConnectionDirectory()
            self.message_broadcaster = MessageBroadcaster(self.connection_directory)
            self.message_validator = WebSocketMessageValidator(
                max_frame_size=self.config.realtime.max_frame_size,
                max_json_depth=self.config.realtime.max_json_depth,
            )
            self.chat_channel = ChatChannel(
                self.connection_directory,
                self.message_broadcaster,
                max_message_length=self.config.chat.max_message_length,
                warn_on_truncation=self.config.chat.warn_on_truncation,
            )
            self.notification_channel = NotificationChannel(
                self.connection_directory,
                self.message_broadcaster,
                group_name_max_length=self.config.realtime.group_name_max_length,
            )

            self._initialized = True
            logger.info("ApplicationContainer initialized")

    async def shutdown(self) -> None:
        """Drop every remaining connection record."""
        if not self._initialized or self.connection_directory is None:
            return

        connections, _users = self.connection_directory.registry.snapshot()
        for connection_id in connections:
            self.connection_directory.handle_disconnect(connection_id)
        logger.info("ApplicationContainer shut down", dropped_connections=len(connections))
        self._initialized = False

    def get_service_status(self) -> dict[str, Any]:
        """Which services have been built."""
        return {
            "initialized": self._initialized,
            "connection_directory": self.connection_directory is not None,
            "chat_channel": self.chat_channel is not None,
            "notification_channel": self.notification_channel is not None,
        }
