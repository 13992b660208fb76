"""
Client call routing for the storehouse hubs.

Maps the ``type`` of an inbound frame to a handler. Each hub gets its own
factory so that, for example, ``JoinGroup`` is only understood by the
notification hub.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..structured_logging.enhanced_logging_config import get_logger
from .envelope import PONG, build_error_event, build_event

if TYPE_CHECKING:
    from .chat_channel import ChatChannel
    from .notification_channel import NotificationChannel

logger = get_logger(__name__)


@dataclass
class CallContext:
    """The hub and connection a client call arrived on."""

    hub: "ChatChannel | NotificationChannel"
    connection_id: str


class MessageHandler(ABC):
    """Abstract base class for client call handlers."""

    @abstractmethod
    async def handle(self, context: CallContext, data: dict[str, Any]) -> None:
        """
        Handle one client call.

        Args:
            context: Hub and connection of the caller
            data: Call arguments
        """


class SendMessageHandler(MessageHandler):
    """Handler for chat SendMessage calls."""

    async def handle(self, context: CallContext, data: dict[str, Any]) -> None:
        body = data.get("message", data.get("body"))
        await context.hub.send_message(context.connection_id, body)  # type: ignore[union-attr]


class JoinGroupHandler(MessageHandler):
    """Handler for notification JoinGroup calls."""

    async def handle(self, context: CallContext, data: dict[str, Any]) -> None:
        await context.hub.join_group(context.connection_id, data.get("name", data.get("group")))  # type: ignore[union-attr]


class LeaveGroupHandler(MessageHandler):
    """Handler for notification LeaveGroup calls."""

    async def handle(self, context: CallContext, data: dict[str, Any]) -> None:
        await context.hub.leave_group(context.connection_id, data.get("name", data.get("group")))  # type: ignore[union-attr]


class PingHandler(MessageHandler):
    """Handler for keep-alive Ping calls."""

    async def handle(self, context: CallContext, data: dict[str, Any]) -> None:
        await context.hub.broadcaster.send_to_connection(context.connection_id, build_event(PONG, {}))


class MessageHandlerFactory:
    """
    Registry of client call handlers for one hub.

    Lookup is a dict access; unknown calls are answered with a
    caller-only ReceiveError and never close the connection.
    """

    def __init__(self, handlers: dict[str, MessageHandler] | None = None):
        """Initialize the factory, always including the Ping handler."""
        self._handlers: dict[str, MessageHandler] = {"Ping": PingHandler()}
        self._handlers.update(handlers or {})

    def register_handler(self, message_type: str, handler: MessageHandler) -> None:
        """
        Register a handler for a call name.

        Args:
            message_type: The call name
            handler: The handler instance
        """
        self._handlers[message_type] = handler
        logger.debug("Registered handler for message type", message_type=message_type)

    def get_handler(self, message_type: str) -> MessageHandler | None:
        """Handler for a call name, if any."""
        return self._handlers.get(message_type)

    async def handle_message(self, context: CallContext, message_type: str, data: dict[str, Any]) -> None:
        """
        Dispatch one client call.

        Args:
            context: Hub and connection of the caller
            message_type: Call name from the frame
            data: Call arguments
        """
        handler = self.get_handler(message_type)
        if handler is None:
            logger.warning("Unknown client call", message_type=message_type, connection_id=context.connection_id)
            await context.hub.broadcaster.send_to_connection(
                context.connection_id,
                build_error_event(
                    create_websocket_error_response(
                        ErrorType.UNKNOWN_CALL,
                        f"Unknown call: {message_type}",
                        ErrorMessages.UNKNOWN_CALL,
                        {"message_type": message_type},
                    )
                ),
            )
            return

        await handler.handle(context, data)

    def get_supported_message_types(self) -> list[str]:
        """Supported call names."""
        return list(self._handlers.keys())


def create_chat_handler_factory() -> MessageHandlerFactory:
    """Handlers understood by the chat hub."""
    return MessageHandlerFactory({"SendMessage": SendMessageHandler()})


def create_notification_handler_factory() -> MessageHandlerFactory:
    """Handlers understood by the notification hub."""
    return MessageHandlerFactory({"JoinGroup": JoinGroupHandler(), "LeaveGroup": LeaveGroupHandler()})
