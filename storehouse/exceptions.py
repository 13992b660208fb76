"""
Exception hierarchy for the storehouse real-time service.

The error taxonomy of the real-time hubs maps onto these classes:
HandshakeRejectedError aborts a connection before it is registered,
ValidationError is reported back to the caller and keeps the session
alive, DeliveryError describes a single recipient that could not be
reached during a fan-out. AuthenticationError and AuthorizationError
guard the HTTP publish and monitoring routes.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information for error reporting and debugging."""

    user_id: str | None = None
    tenant_id: str | None = None
    connection_id: str | None = None
    operation: str | None = None
    request_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "connection_id": self.connection_id,
            "operation": self.operation,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class StorehouseError(Exception):
    """
    Base exception for all storehouse service errors.

    Provides structured error handling with context and metadata
    for proper error categorization and debugging.
    """

    log_level = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: User-friendly error message
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now(UTC)

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "Storehouse error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class HandshakeRejectedError(StorehouseError):
    """Missing or invalid identity/tenant claims at connection time."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, missing_claim: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.missing_claim = missing_claim
        if missing_claim:
            self.details["missing_claim"] = missing_claim


class ValidationError(StorehouseError):
    """Client input that cannot be accepted (e.g. an empty chat message)."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, field: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.field = field
        if field:
            self.details["field"] = field


class DeliveryError(StorehouseError):
    """A single recipient connection could not be reached."""

    def __init__(self, message: str, context: ErrorContext | None = None, connection_id: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.connection_id = connection_id
        if connection_id:
            self.details["connection_id"] = connection_id


class ConfigurationError(StorehouseError):
    """Invalid or missing service configuration."""

    def __init__(self, message: str, context: ErrorContext | None = None, config_key: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details["config_key"] = config_key


class AuthenticationError(StorehouseError):
    """Missing or invalid credentials on an HTTP route."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, auth_type: str = "unknown", **kwargs):
        super().__init__(message, context, **kwargs)
        self.auth_type = auth_type
        self.details["auth_type"] = auth_type


class AuthorizationError(StorehouseError):
    """Authenticated caller acting outside its own company."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, tenant_id: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.tenant_id = tenant_id
        if tenant_id:
            self.details["tenant_id"] = tenant_id
