"""
Centralized error types and constants for the storehouse real-time service.

This module defines standardized error types and constants so that the
chat hub, the notification hub and the HTTP routes all report problems
with the same vocabulary.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Authentication and handshake
    AUTHENTICATION_FAILED = "authentication_failed"
    AUTHORIZATION_FAILED = "authorization_failed"

    # Validation Errors
    VALIDATION_ERROR = "validation_error"
    EMPTY_MESSAGE = "empty_message"
    INVALID_FORMAT = "invalid_format"
    INVALID_GROUP_NAME = "invalid_group_name"
    UNKNOWN_CALL = "unknown_call"

    # Real-time Communication
    BROADCAST_FAILED = "broadcast_failed"
    MESSAGE_PROCESSING_ERROR = "message_processing_error"

    # System
    INTERNAL_ERROR = "internal_error"


class ErrorSeverity(Enum):
    """Error severity levels for logging and handling."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorMessages:
    """Common error messages for consistent user experience."""

    # Authentication
    AUTHENTICATION_REQUIRED = "Authentication required"
    IDENTITY_UNRESOLVED = "Cannot identify sender."
    FOREIGN_TENANT = "Not allowed to act for another company."
    SERVICE_ONLY = "This endpoint requires the service key."

    # Validation
    EMPTY_MESSAGE = "Cannot send an empty message."
    INVALID_FORMAT = "Invalid format provided"
    INVALID_GROUP_NAME = "Invalid group name"
    UNKNOWN_CALL = "Unknown call"

    # Real-time
    SEND_FAILED = "Failed to send message due to a server error."
    MESSAGE_PROCESSING_ERROR = "Error processing message"


def create_standard_error_response(
    error_type: ErrorType,
    message: str,
    user_friendly: str | None = None,
    details: dict[str, Any] | None = None,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
) -> dict[str, Any]:
    """
    Create a standardized HTTP error response.

    Args:
        error_type: The type of error
        message: Technical error message
        user_friendly: User-friendly error message (optional)
        details: Additional error details (optional)
        severity: Error severity level (optional)

    Returns:
        Standardized error response dictionary
    """
    return {
        "error": {
            "type": error_type.value,
            "message": message,
            "user_friendly": user_friendly or message,
            "details": details or {},
            "severity": severity.value,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    }


def create_websocket_error_response(
    error_type: ErrorType,
    message: str,
    user_friendly: str | None = None,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create the data payload of a ReceiveError event.

    Args:
        error_type: The type of error
        message: Technical error message
        user_friendly: User-friendly error message (optional)
        details: Additional error details (optional)

    Returns:
        WebSocket error payload dictionary
    """
    return {
        "error_type": error_type.value,
        "message": message,
        "user_friendly": user_friendly or message,
        "details": details or {},
    }
