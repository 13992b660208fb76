"""
Exception handlers for the storehouse HTTP routes.

StorehouseError subclasses are turned into the standard
``{"error": {...}}`` JSON body; WebSocket sessions report errors through
ReceiveError events instead and never reach these handlers.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..error_types import ErrorSeverity, ErrorType, create_standard_error_response
from ..exceptions import AuthenticationError, AuthorizationError, HandshakeRejectedError, StorehouseError
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

# Errors the HTTP dependencies raise; anything else is an unexpected 500
_ERROR_MAPPING: dict[type[StorehouseError], tuple[int, ErrorType, ErrorSeverity]] = {
    AuthenticationError: (401, ErrorType.AUTHENTICATION_FAILED, ErrorSeverity.MEDIUM),
    HandshakeRejectedError: (401, ErrorType.AUTHENTICATION_FAILED, ErrorSeverity.MEDIUM),
    AuthorizationError: (403, ErrorType.AUTHORIZATION_FAILED, ErrorSeverity.MEDIUM),
}


def error_response_for(exc: StorehouseError, include_details: bool = False) -> JSONResponse:
    """Build the JSON response for a StorehouseError."""
    status_code, error_type, severity = 500, ErrorType.INTERNAL_ERROR, ErrorSeverity.HIGH
    for exc_type, mapping in _ERROR_MAPPING.items():
        if isinstance(exc, exc_type):
            status_code, error_type, severity = mapping
            break

    body = create_standard_error_response(
        error_type,
        exc.message if include_details else exc.user_friendly,
        user_friendly=exc.user_friendly,
        details=exc.details if include_details else None,
        severity=severity,
    )
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def register_error_handlers(app: FastAPI, include_details: bool = False) -> None:
    """
    Register exception handlers on the application.

    Args:
        app: FastAPI application instance
        include_details: Whether to include technical details in responses
    """

    @app.exception_handler(StorehouseError)
    async def storehouse_error_handler(request: Request, exc: StorehouseError):
        """Handle StorehouseError exceptions."""
        logger.debug("Handling storehouse error", path=request.url.path, error_type=type(exc).__name__)
        return error_response_for(exc, include_details=include_details)

    logger.info("Error handlers registered for FastAPI application", include_details=include_details)
