"""
WebSocket session handling for the storehouse hubs.

Turns verified token claims into an Identity, registers the socket with
the right hub, runs the receive loop and always runs the atomic
disconnect routine when the socket goes away.
"""

import uuid
from collections.abc import Mapping
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..exceptions import ErrorContext, HandshakeRejectedError
from ..structured_logging.enhanced_logging_config import (
    bind_connection_context,
    get_logger,
    unbind_connection_context,
)
from .chat_channel import ChatChannel
from .connection_models import Identity
from .connection_state_machine import ConnectionSession
from .envelope import build_error_event
from .message_handler_factory import (
    CallContext,
    MessageHandlerFactory,
    create_chat_handler_factory,
    create_notification_handler_factory,
)
from .message_validator import MessageValidationError, WebSocketMessageValidator
from .notification_channel import NotificationChannel

logger = get_logger(__name__)

# Close code for a rejected handshake. The socket is never accepted, so ASGI
# servers answer the upgrade with HTTP 403; only in-process test clients
# surface this code as a WebSocketDisconnect.
HANDSHAKE_REJECTED_CLOSE_CODE = 4401

_USER_ID_CLAIMS = ("sub", "nameid", "user_id")
_TENANT_CLAIMS = ("company_id", "tenant_id", "companyId")
_NAME_CLAIMS = ("name", "unique_name", "username")
_ROLE_CLAIMS = ("role", "roles")


def _first_claim(claims: Mapping[str, Any], names: tuple[str, ...]) -> str:
    for name in names:
        value = claims.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return ""


def resolve_identity(claims: Mapping[str, Any]) -> Identity:
    """
    Build an Identity from already-verified token claims.

    Args:
        claims: Decoded token claims

    Returns:
        Identity: The caller's identity

    Raises:
        HandshakeRejectedError: If the user or company claim is missing
    """
    user_id = _first_claim(claims, _USER_ID_CLAIMS)
    if not user_id:
        raise HandshakeRejectedError(
            "User identifier claim missing",
            context=ErrorContext(operation="resolve_identity"),
            missing_claim="sub",
            user_friendly=ErrorMessages.AUTHENTICATION_REQUIRED,
        )

    tenant_id = _first_claim(claims, _TENANT_CLAIMS)
    if not tenant_id:
        raise HandshakeRejectedError(
            "Company claim missing",
            context=ErrorContext(user_id=user_id, operation="resolve_identity"),
            missing_claim="company_id",
            user_friendly=ErrorMessages.AUTHENTICATION_REQUIRED,
        )

    roles: tuple[str, ...] = ()
    for name in _ROLE_CLAIMS:
        value = claims.get(name)
        if isinstance(value, str) and value:
            roles = (value,)
            break
        if isinstance(value, list | tuple):
            roles = tuple(str(role) for role in value if role)
            break

    return Identity(
        user_id=user_id,
        tenant_id=tenant_id,
        display_name=_first_claim(claims, _NAME_CLAIMS),
        roles=roles,
    )


async def reject_handshake(websocket: WebSocket, reason: str) -> None:
    """Refuse the upgrade of a socket that never got registered."""
    logger.warning("WebSocket handshake rejected", reason=reason)
    await websocket.close(code=HANDSHAKE_REJECTED_CLOSE_CODE, reason=reason)


async def _handle_message_loop(
    websocket: WebSocket,
    context: CallContext,
    factory: MessageHandlerFactory,
    validator: WebSocketMessageValidator,
    session: ConnectionSession,
) -> None:
    """Receive and dispatch client calls until the socket closes."""
    connection_id = context.connection_id

    while True:
        try:
            data = await websocket.receive_text()
            session.mark_activity()

            try:
                frame = validator.parse_and_validate(data, connection_id=connection_id)
            except MessageValidationError as e:
                logger.warning(
                    "Frame validation failed",
                    connection_id=connection_id,
                    error_type=e.error_type.value,
                    error_message=e.message,
                )
                await websocket.send_json(
                    build_error_event(
                        create_websocket_error_response(
                            e.error_type,
                            f"Message validation failed: {e.message}",
                            ErrorMessages.INVALID_FORMAT,
                        )
                    )
                )
                continue

            await factory.handle_message(context, frame.type, frame.data)

        except WebSocketDisconnect:
            logger.info("WebSocket disconnected", connection_id=connection_id)
            break

        except RuntimeError as e:
            error_message = str(e)
            if "WebSocket is not connected" in error_message or 'Need to call "accept" first' in error_message:
                logger.warning("WebSocket connection lost", connection_id=connection_id, error=error_message)
                break
            raise

        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: one bad call must not end the session
            logger.error(
                "Error handling client call",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            try:
                await websocket.send_json(
                    build_error_event(
                        create_websocket_error_response(
                            ErrorType.MESSAGE_PROCESSING_ERROR,
                            ErrorMessages.MESSAGE_PROCESSING_ERROR,
                            details={"error_type": type(e).__name__},
                        )
                    )
                )
            except (RuntimeError, WebSocketDisconnect) as send_error:
                logger.warning(
                    "WebSocket closed while reporting error, ending session",
                    connection_id=connection_id,
                    original_error=str(e),
                    send_error=str(send_error),
                )
                break


async def _serve_connection(
    websocket: WebSocket,
    claims: Mapping[str, Any] | None,
    hub: ChatChannel | NotificationChannel,
    factory: MessageHandlerFactory,
    validator: WebSocketMessageValidator | None,
) -> None:
    connection_id = uuid.uuid4().hex
    session = ConnectionSession(connection_id, channel=hub.channel.value)

    if claims is None:
        session.abort(reason="missing or invalid token")
        await reject_handshake(websocket, "missing or invalid token")
        return

    try:
        identity = resolve_identity(claims)
    except HandshakeRejectedError as e:
        session.abort(reason=e.message)
        await reject_handshake(websocket, e.message)
        return

    await websocket.accept()
    bind_connection_context(connection_id=connection_id, user_id=identity.user_id, tenant_id=identity.tenant_id)
    try:
        await hub.connect(identity, connection_id, websocket.send_json, session=session)
        await _handle_message_loop(
            websocket,
            CallContext(hub=hub, connection_id=connection_id),
            factory,
            validator or WebSocketMessageValidator(),
            session,
        )
    finally:
        hub.handle_disconnect(connection_id)
        unbind_connection_context()


async def handle_chat_connection(
    websocket: WebSocket,
    claims: Mapping[str, Any] | None,
    channel: ChatChannel,
    validator: WebSocketMessageValidator | None = None,
) -> None:
    """
    Serve one chat hub connection.

    Args:
        websocket: The not yet accepted WebSocket
        claims: Verified token claims, None when the token was missing or invalid
        channel: The chat hub
        validator: Inbound frame validator
    """
    await _serve_connection(websocket, claims, channel, create_chat_handler_factory(), validator)


async def handle_notification_connection(
    websocket: WebSocket,
    claims: Mapping[str, Any] | None,
    channel: NotificationChannel,
    validator: WebSocketMessageValidator | None = None,
) -> None:
    """
    Serve one notification hub connection.

    Args:
        websocket: The not yet accepted WebSocket
        claims: Verified token claims, None when the token was missing or invalid
        channel: The notification hub
        validator: Inbound frame validator
    """
    await _serve_connection(websocket, claims, channel, create_notification_handler_factory(), validator)
