"""
Enhanced structured logging configuration for the storehouse real-time service.

This module configures structlog with security sanitization, context
variable (MDC) support and a selectable renderer. Every module obtains its
logger through get_logger() so that configuration happens in exactly one
place.
"""

import json
import logging
import os
import re
import sys
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars, unbind_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

_LOGGING_INITIALIZED = False
_LOGGING_SIGNATURE: str | None = None

VALID_ENVIRONMENTS = ["unit_test", "local", "production"]

_SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "credential",
    "jwt",
    "api_key",
    "private_key",
    "service_key",
    "service-key",
    "access_token",
    "refresh_token",
    "bearer",
    "authorization",
)

_ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


def detect_environment() -> str:
    """
    Detect the current environment based on various indicators.

    Returns:
        Environment name: "unit_test", "local", or "production"
    """
    if "pytest" in sys.modules or "pytest" in sys.argv[0]:
        return "unit_test"

    env = os.getenv("STOREHOUSE_ENV")
    if env and env in VALID_ENVIRONMENTS:
        return env

    logging_env = os.getenv("LOGGING_ENVIRONMENT", "")
    if logging_env in VALID_ENVIRONMENTS:
        return logging_env

    return "local"


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Bearer tokens travel through the WebSocket handshake, so anything that
    looks like a credential is redacted before it reaches a renderer.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif isinstance(key, str) and any(sensitive in key.lower() for sensitive in _SENSITIVE_KEYS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def strip_ansi_renderer(bound_logger: Any, name: str, event_dict: dict[str, Any]) -> str:
    """Key/value renderer that strips ANSI escape sequences."""
    formatted = structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])(
        bound_logger, name, event_dict
    )
    return _ANSI_ESCAPE.sub("", formatted)


def configure_enhanced_structlog(
    environment: str | None = None,
    log_level: str = "INFO",
    log_format: str = "human",
) -> None:
    """
    Configure structlog with sanitization and contextvars support.

    Args:
        environment: Environment name (auto-detected if None)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "json" for machine-readable output, "human" for key/value lines
    """
    if environment is None:
        environment = detect_environment()

    base_processors: list[Any] = [
        # Security first - sanitize sensitive data
        sanitize_sensitive_data,
        merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(default=str)
    else:
        renderer = strip_ansi_renderer

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=base_processors + [renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )

    structlog.get_logger(__name__).debug(
        "Structlog configured", environment=environment, log_level=log_level, log_format=log_format
    )


def setup_enhanced_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from the application configuration.

    Args:
        config: Configuration dictionary with a "logging" section
        force_reconfigure: When True, reconfigure even if already initialized
    """
    global _LOGGING_INITIALIZED
    global _LOGGING_SIGNATURE

    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _LOGGING_INITIALIZED and not force_reconfigure:
        get_logger("storehouse.logging.setup").debug(
            "setup_enhanced_logging skipped; logging system already initialized",
            config_signature=_LOGGING_SIGNATURE,
        )
        return

    logging_config = config.get("logging", {})
    environment = logging_config.get("environment", detect_environment())
    log_level = logging_config.get("level", "INFO")
    log_format = logging_config.get("format", "human")

    configure_enhanced_structlog(environment, log_level, log_format)
    _configure_uvicorn_logging()

    get_logger("storehouse.logging.enhanced").info(
        "Enhanced logging system initialized",
        environment=environment,
        log_level=log_level,
        log_format=log_format,
        security_sanitization=True,
    )

    _LOGGING_INITIALIZED = True
    _LOGGING_SIGNATURE = config_signature


def _configure_uvicorn_logging() -> None:
    """Route uvicorn's loggers through the root handler configured above."""
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.propagate = True


def bind_connection_context(
    connection_id: str | None = None,
    user_id: str | None = None,
    tenant_id: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Bind connection context to the current logging context.

    A WebSocket session runs in its own task, so the bound values follow
    every log entry emitted while that session is being served.

    Args:
        connection_id: Transport-assigned connection identifier
        user_id: Authenticated user ID if resolved
        tenant_id: Company (tenant) ID if resolved
        **kwargs: Additional context variables
    """
    context_vars = {
        "connection_id": connection_id,
        "user_id": user_id,
        "tenant_id": tenant_id,
        **kwargs,
    }
    bind_contextvars(**{k: v for k, v in context_vars.items() if v is not None})


def unbind_connection_context() -> None:
    """Remove the connection keys bound by bind_connection_context()."""
    unbind_contextvars("connection_id", "user_id", "tenant_id")


def clear_request_context() -> None:
    """Clear the current request context from logging."""
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    try:
        return structlog.contextvars.get_contextvars()
    except (AttributeError, KeyError):
        return {}


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)
