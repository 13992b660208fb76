"""
Configuration module for the storehouse real-time service.

This module provides type-safe, validated configuration using Pydantic BaseSettings.

Usage:
    from storehouse.config import get_config

    config = get_config()
    logger.info("Configuration loaded", host=config.server.host, port=config.server.port)
"""

import os
import sys
import threading
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .models import AppConfig

__all__ = ["get_config", "reset_config", "AppConfig"]

_config_instance: AppConfig | None = None
_config_lock = threading.Lock()


def _is_test_mode() -> bool:
    """
    Detect if running in test environment.

    Returns:
        bool: True if running under pytest, False otherwise
    """
    if "pytest" in sys.modules:
        return True
    return bool(os.getenv("PYTEST_CURRENT_TEST"))


def _create_config_instance() -> AppConfig:
    """
    Create a new AppConfig instance from current environment.

    Outside of tests the nearest .env file is loaded first so the nested
    settings sections, which read the process environment, see its values.
    """
    if not _is_test_mode():
        env_file = Path(os.getenv("STOREHOUSE_ENV_FILE", ".env"))
        if env_file.exists():
            load_dotenv(env_file, override=False)
    return AppConfig()


@lru_cache(maxsize=1)
def _get_config_cached() -> AppConfig:
    """Production config loader with caching."""
    global _config_instance
    with _config_lock:
        if _config_instance is None:
            _config_instance = _create_config_instance()
    return _config_instance


def get_config() -> AppConfig:
    """
    Get application configuration (singleton in production, fresh in tests).

    Returns:
        AppConfig: The application configuration

    Raises:
        ConfigurationError: If configuration is invalid or required fields are missing
    """
    try:
        if _is_test_mode():
            return _create_config_instance()
        return _get_config_cached()
    except ValidationError as e:
        missing = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        raise ConfigurationError(
            f"Invalid configuration: {e.error_count()} error(s)",
            config_key=missing[0] if missing else None,
            details={"errors": missing},
        ) from e


def reset_config() -> None:
    """
    Reset the configuration cache.

    This is primarily used for testing to force configuration reload.
    """
    global _config_instance  # pylint: disable=global-statement
    with _config_lock:
        _get_config_cached.cache_clear()
        _config_instance = None
