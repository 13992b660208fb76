"""
Real-time hub endpoints for the storehouse service.

Browser clients cannot set headers on a WebSocket upgrade, so the bearer
token is accepted from the Authorization header or from a query
parameter. The token is verified once, before the socket is accepted.
"""

from typing import Any

from fastapi import APIRouter, WebSocket

from ..auth_utils import decode_access_token, extract_bearer_token
from ..dependencies import get_app_config, get_chat_channel, get_message_validator, get_notification_channel
from ..realtime.websocket_handler import handle_chat_connection, handle_notification_connection
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

hubs_router = APIRouter(prefix="/hubs", tags=["realtime"])


def _verified_claims(websocket: WebSocket) -> dict[str, Any] | None:
    """Claims of the handshake's bearer token, or None if it is missing or invalid."""
    auth_config = get_app_config(websocket).auth
    token = extract_bearer_token(websocket.headers.get("authorization"))
    if token is None:
        token = websocket.query_params.get(auth_config.query_token_param)

    if not token:
        logger.warning("WebSocket handshake without token", path=websocket.url.path)
        return None
    return decode_access_token(token, auth_config)


@hubs_router.websocket("/chat")
async def chat_hub(websocket: WebSocket) -> None:
    """Company chat hub."""
    await handle_chat_connection(
        websocket,
        _verified_claims(websocket),
        get_chat_channel(websocket),
        validator=get_message_validator(websocket),
    )


@hubs_router.websocket("/notifications")
async def notification_hub(websocket: WebSocket) -> None:
    """Order notification hub."""
    await handle_notification_connection(
        websocket,
        _verified_claims(websocket),
        get_notification_channel(websocket),
        validator=get_message_validator(websocket),
    )
