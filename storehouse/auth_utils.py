"""
Bearer token helpers for the storehouse hubs.

Tokens are issued by the main storehouse API; this service only verifies
them, once per WebSocket handshake and on every HTTP publish.
create_access_token exists for local development and tests.
"""

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from .config.models import AuthConfig
from .realtime.connection_models import Identity
from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 60


def create_access_token(
    data: dict[str, Any],
    auth_config: AuthConfig,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token."""
    logger.debug("Creating access token", expires_delta=expires_delta)

    to_encode = data.copy()
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    if auth_config.jwt_audience and "aud" not in to_encode:
        to_encode["aud"] = auth_config.jwt_audience
    if auth_config.jwt_issuer and "iss" not in to_encode:
        to_encode["iss"] = auth_config.jwt_issuer

    token = jwt.encode(to_encode, auth_config.jwt_secret, algorithm=auth_config.jwt_algorithm)
    assert isinstance(token, str)
    return token


def decode_access_token(token: str | None, auth_config: AuthConfig) -> dict[str, Any] | None:
    """
    Decode and validate a JWT access token.

    Returns:
        dict | None: The verified claims, or None for a missing or invalid token
    """
    if not token:
        logger.debug("No token provided for decoding")
        return None

    options = {"verify_aud": auth_config.jwt_audience is not None}
    try:
        payload = jwt.decode(
            token,
            auth_config.jwt_secret,
            algorithms=[auth_config.jwt_algorithm],
            audience=auth_config.jwt_audience,
            issuer=auth_config.jwt_issuer,
            options=options,
        )
    except JWTError as e:
        logger.warning("JWT decode error", error=str(e))
        return None

    assert isinstance(payload, dict)
    logger.debug("Access token decoded successfully", subject=payload.get("sub"))
    return payload


def extract_bearer_token(authorization: str | None) -> str | None:
    """Token part of an ``Authorization: Bearer <token>`` header value."""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def service_key_matches(presented: str | None, auth_config: AuthConfig) -> bool:
    """Constant-time check of an X-Service-Key value; always False when no key is configured."""
    if not presented or not auth_config.service_key:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), auth_config.service_key.encode("utf-8"))


@dataclass(frozen=True)
class Publisher:
    """
    Authenticated caller of an HTTP route.

    Either the order-management service (service key, any company) or a
    dashboard user whose identity pins it to one company.
    """

    identity: Identity | None = None

    @property
    def is_service(self) -> bool:
        return self.identity is None

    def may_act_for(self, tenant_id: str) -> bool:
        return self.is_service or self.identity.tenant_id == tenant_id
