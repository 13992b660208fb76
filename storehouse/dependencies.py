"""
Dependency injection providers for the storehouse real-time service.

Every provider reads from the ApplicationContainer stored on
``app.state.container``. Providers take a Starlette HTTPConnection so they
serve HTTP and WebSocket routes alike.
"""

from typing import Any

from starlette.requests import HTTPConnection

from .auth_utils import Publisher, decode_access_token, extract_bearer_token, service_key_matches
from .config.models import AppConfig
from .container import ApplicationContainer
from .error_types import ErrorMessages
from .exceptions import AuthenticationError, AuthorizationError, ErrorContext
from .realtime.chat_channel import ChatChannel
from .realtime.connection_directory import ConnectionDirectory
from .realtime.message_validator import WebSocketMessageValidator
from .realtime.notification_channel import NotificationChannel
from .realtime.websocket_handler import resolve_identity
from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

SERVICE_KEY_HEADER = "X-Service-Key"


def get_container(connection: HTTPConnection) -> ApplicationContainer:
    """
    Get the application container from app state.

    This is the base dependency that all other dependencies use.

    Raises:
        RuntimeError: If the lifespan did not install a container
    """
    container = getattr(connection.app.state, "container", None)
    if container is None:
        raise RuntimeError(
            "ApplicationContainer not found in app.state - ensure container is initialized in lifespan context"
        )
    return container


def _require(service: Any, name: str) -> Any:
    if service is None:
        raise RuntimeError(f"{name} not initialized in container")
    return service


def get_app_config(connection: HTTPConnection) -> AppConfig:
    return _require(get_container(connection).config, "AppConfig")


def get_connection_directory(connection: HTTPConnection) -> ConnectionDirectory:
    return _require(get_container(connection).connection_directory, "ConnectionDirectory")


def get_chat_channel(connection: HTTPConnection) -> ChatChannel:
    return _require(get_container(connection).chat_channel, "ChatChannel")


def get_notification_channel(connection: HTTPConnection) -> NotificationChannel:
    return _require(get_container(connection).notification_channel, "NotificationChannel")


def get_message_validator(connection: HTTPConnection) -> WebSocketMessageValidator:
    return _require(get_container(connection).message_validator, "WebSocketMessageValidator")


def get_publisher(connection: HTTPConnection) -> Publisher:
    """
    Authenticate the caller of an HTTP route.

    A valid X-Service-Key identifies the order-management service.
    Otherwise a bearer token with user and company claims is required.

    Raises:
        AuthenticationError: If no valid credentials were presented
        HandshakeRejectedError: If the token lacks a user or company claim
    """
    auth_config = get_app_config(connection).auth
    context = ErrorContext(operation=connection.url.path)

    presented_key = connection.headers.get(SERVICE_KEY_HEADER)
    if presented_key is not None:
        if service_key_matches(presented_key, auth_config):
            return Publisher()
        raise AuthenticationError(
            "Invalid service key",
            context=context,
            auth_type="service_key",
            user_friendly=ErrorMessages.AUTHENTICATION_REQUIRED,
        )

    claims = decode_access_token(extract_bearer_token(connection.headers.get("authorization")), auth_config)
    if claims is None:
        raise AuthenticationError(
            "Missing or invalid bearer token",
            context=context,
            auth_type="bearer",
            user_friendly=ErrorMessages.AUTHENTICATION_REQUIRED,
        )
    return Publisher(identity=resolve_identity(claims))


def authorize_tenant(publisher: Publisher, tenant_id: str) -> None:
    """
    Refuse a user token acting for a company other than its own.

    Raises:
        AuthorizationError: On a company mismatch
    """
    if publisher.may_act_for(tenant_id):
        return
    raise AuthorizationError(
        "Token company does not match event company",
        context=ErrorContext(user_id=publisher.identity.user_id, tenant_id=publisher.identity.tenant_id),
        tenant_id=tenant_id,
        user_friendly=ErrorMessages.FOREIGN_TENANT,
    )


def require_service(connection: HTTPConnection) -> Publisher:
    """
    Admit only the service key; cross-company data is not for dashboard users.

    Raises:
        AuthenticationError: If no valid credentials were presented
        AuthorizationError: If a user token was presented
    """
    publisher = get_publisher(connection)
    if publisher.is_service:
        return publisher
    raise AuthorizationError(
        "Service-only endpoint called with a user token",
        context=ErrorContext(user_id=publisher.identity.user_id, tenant_id=publisher.identity.tenant_id),
        user_friendly=ErrorMessages.SERVICE_ONLY,
    )
