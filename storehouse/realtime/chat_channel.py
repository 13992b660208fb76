"""
Per-company chat hub.

Every chat connection joins its company's group on connect; a message
sent by one connection is stamped with the server-resolved sender and
fanned out to every connection of the same company, the sender included.
"""

from typing import TYPE_CHECKING, Any

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..exceptions import ErrorContext, HandshakeRejectedError, ValidationError
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Channel, Connection, Identity, tenant_group
from .connection_state_machine import ConnectionSession
from .envelope import (
    CONNECTION_CONFIRMED,
    RECEIVE_MESSAGE,
    RECEIVE_WARNING,
    build_error_event,
    build_event,
    utc_now_z,
)
from .message_broadcaster import BroadcastResult, MessageBroadcaster

if TYPE_CHECKING:
    from .connection_directory import ConnectionDirectory, Sender

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGE_LENGTH = 500


class ChatChannel:
    """
    Company-scoped chat broadcast.

    The channel never trusts a client-supplied sender: the sender's
    identity is always looked up from the directory by connection id.
    """

    channel = Channel.CHAT

    def __init__(
        self,
        directory: "ConnectionDirectory",
        broadcaster: MessageBroadcaster | None = None,
        max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
        warn_on_truncation: bool = True,
    ) -> None:
        """
        Initialize the chat channel.

        Args:
            directory: Shared connection directory
            broadcaster: Fan-out helper (built from the directory when omitted)
            max_message_length: Longer bodies are truncated to this many UTF-16 code units
            warn_on_truncation: Send the sender a ReceiveWarning when truncating
        """
        self.directory = directory
        self.broadcaster = broadcaster or MessageBroadcaster(directory)
        self.max_message_length = max_message_length
        self.warn_on_truncation = warn_on_truncation

    async def connect(
        self,
        identity: Identity,
        connection_id: str,
        sender: "Sender",
        session: ConnectionSession | None = None,
    ) -> Connection:
        """
        Register a chat connection and confirm it to the caller.

        Args:
            identity: Identity resolved from verified claims
            connection_id: Transport-assigned identifier
            sender: Coroutine function delivering one event to the connection
            session: Lifecycle session in the connecting state (created when omitted)

        Returns:
            Connection: The registered connection

        Raises:
            HandshakeRejectedError: If the identity lacks a user or company id
        """
        session = session or ConnectionSession(connection_id, channel=self.channel.value)
        missing = _missing_claim(identity)
        if missing is not None:
            session.abort(reason=f"missing {missing}")
            raise HandshakeRejectedError(
                f"Chat handshake rejected: {missing} claim missing",
                context=ErrorContext(connection_id=connection_id, user_id=identity.user_id or None, operation="connect"),
                missing_claim=missing,
                user_friendly=ErrorMessages.IDENTITY_UNRESOLVED,
            )

        connection = self.directory.register(
            identity,
            connection_id,
            self.channel,
            sender,
            groups=[tenant_group(identity.tenant_id)],
            session=session,
        )

        await self.broadcaster.send_to_connection(
            connection_id,
            build_event(
                CONNECTION_CONFIRMED,
                {
                    "message": f"Welcome {identity.name}!",
                    "connection_id": connection_id,
                    "user_id": identity.user_id,
                    "user_name": identity.name,
                },
            ),
        )
        logger.info(
            "Chat user connected",
            user_id=identity.user_id,
            tenant_id=identity.tenant_id,
            user_name=identity.name,
            connection_id=connection_id,
        )
        return connection

    async def send_message(self, connection_id: str, body: Any) -> BroadcastResult | None:
        """
        Validate, stamp and broadcast one chat message.

        Args:
            connection_id: Sending connection
            body: Message text as received from the client

        Returns:
            BroadcastResult | None: Delivery statistics, or None when nothing was broadcast
        """
        connection = self.directory.get_connection(connection_id)
        if connection is None or connection.channel != self.channel:
            logger.error("SendMessage from unregistered connection", connection_id=connection_id)
            return None

        identity = connection.identity
        try:
            body = validate_message_body(body, connection)
        except ValidationError:
            await self._send_error(connection_id, ErrorType.EMPTY_MESSAGE, ErrorMessages.EMPTY_MESSAGE)
            return None

        original_length = utf16_length(body)
        if original_length > self.max_message_length:
            body = truncate_utf16(body, self.max_message_length)
            logger.warning(
                "Chat message truncated",
                user_id=identity.user_id,
                connection_id=connection_id,
                original_length=original_length,
                max_length=self.max_message_length,
            )
            if self.warn_on_truncation:
                await self.broadcaster.send_to_connection(
                    connection_id,
                    build_event(
                        RECEIVE_WARNING,
                        {
                            "message": f"Your message was too long and truncated to {self.max_message_length} characters.",
                            "original_length": original_length,
                        },
                    ),
                )

        group = tenant_group(identity.tenant_id)
        event = build_event(
            RECEIVE_MESSAGE,
            {
                "sender_user_id": identity.user_id,
                "sender_name": identity.name,
                "body": body,
                "timestamp": utc_now_z(),
            },
        )

        try:
            result = await self.broadcaster.broadcast_to_group(self.channel, group, event)
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: a failing broadcast must not tear down the sender's session
            logger.error(
                "Error broadcasting chat message",
                user_id=identity.user_id,
                group=group,
                connection_id=connection_id,
                error=str(e),
                exc_info=True,
            )
            await self._send_error(connection_id, ErrorType.BROADCAST_FAILED, ErrorMessages.SEND_FAILED)
            return None

        logger.debug(
            "Chat message broadcast",
            user_id=identity.user_id,
            group=group,
            total_targets=result.total_targets,
            failed_deliveries=result.failed_deliveries,
        )
        return result

    def handle_disconnect(self, connection_id: str) -> Connection | None:
        """Run the atomic disconnect routine for a chat connection."""
        return self.directory.handle_disconnect(connection_id)

    async def _send_error(self, connection_id: str, error_type: ErrorType, message: str) -> None:
        await self.broadcaster.send_to_connection(
            connection_id,
            build_error_event(create_websocket_error_response(error_type, message)),
        )


def validate_message_body(body: Any, connection: Connection) -> str:
    """
    Reject empty, whitespace-only and non-text chat bodies.

    Raises:
        ValidationError: If the body cannot be broadcast
    """
    if isinstance(body, str) and body.strip():
        return body
    raise ValidationError(
        "Empty chat message blocked",
        context=ErrorContext(
            user_id=connection.user_id,
            tenant_id=connection.tenant_id,
            connection_id=connection.connection_id,
            operation="send_message",
        ),
        field="body",
        user_friendly=ErrorMessages.EMPTY_MESSAGE,
    )


def utf16_length(text: str) -> int:
    """Length in UTF-16 code units, the unit browser clients count in."""
    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def truncate_utf16(text: str, max_units: int) -> str:
    """
    Cut text to at most max_units UTF-16 code units.

    The cut always falls on a code point boundary, so an astral character
    (two code units) that does not fit is dropped whole rather than split.
    """
    units = 0
    for index, char in enumerate(text):
        units += 2 if ord(char) > 0xFFFF else 1
        if units > max_units:
            return text[:index]
    return text


def _missing_claim(identity: Identity) -> str | None:
    """Name of the first identity claim that did not resolve, if any."""
    if not identity.user_id:
        return "user_id"
    if not identity.tenant_id:
        return "tenant_id"
    return None
