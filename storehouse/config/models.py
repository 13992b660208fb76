"""
Pydantic-based configuration models for the storehouse real-time service.

Every section is a BaseSettings class with its own environment prefix, so
each value can be supplied through the environment or a .env file.
"""

import json
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def _parse_env_list(candidate: Any) -> list[str]:
    """Parse a value from the environment as JSON list or CSV."""
    if candidate is None:
        return []
    if isinstance(candidate, list | tuple):
        return [str(item).strip() for item in candidate if str(item).strip()]
    s = str(candidate).strip()
    if not s:
        return []
    try:
        loaded = json.loads(s)
        if isinstance(loaded, list):
            return [str(item).strip() for item in loaded if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in s.split(",") if item.strip()]


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=5000, description="Server port")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {"env_prefix": "SERVER_", "case_sensitive": False, "extra": "ignore"}


class AuthConfig(BaseSettings):
    """Bearer token validation and service credentials for the hubs and HTTP routes."""

    jwt_secret: str = Field(..., description="Shared secret used to verify access tokens (required)")
    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    jwt_audience: str | None = Field(default=None, description="Expected audience claim, if any")
    jwt_issuer: str | None = Field(default=None, description="Expected issuer claim, if any")
    query_token_param: str = Field(
        default="access_token", description="Query parameter carrying the token for header-less transports"
    )
    service_key: str | None = Field(
        default=None, description="Key the order-management service presents in X-Service-Key; unset disables it"
    )

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, v: str) -> str:
        """Reject secrets too short to be meaningful."""
        if len(v) < 16:
            logger.error("JWT secret validation failed - too short", secret_length=len(v), minimum_length=16)
            raise ValueError("JWT secret must be at least 16 characters")
        return v

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        """Only HMAC algorithms are supported with a shared secret."""
        v_upper = v.upper()
        if v_upper not in ("HS256", "HS384", "HS512"):
            raise ValueError(f"Unsupported JWT algorithm '{v}'")
        return v_upper

    @field_validator("service_key")
    @classmethod
    def validate_service_key(cls, v: str | None) -> str | None:
        """A configured service key must be as strong as the JWT secret."""
        if v is not None and len(v) < 16:
            logger.error("Service key validation failed - too short", key_length=len(v), minimum_length=16)
            raise ValueError("Service key must be at least 16 characters")
        return v

    model_config = {"env_prefix": "AUTH_", "case_sensitive": False, "extra": "ignore"}


class ChatConfig(BaseSettings):
    """Per-company chat configuration."""

    max_message_length: int = Field(
        default=500, description="Messages longer than this many UTF-16 code units are truncated"
    )
    warn_on_truncation: bool = Field(
        default=True, description="Tell the sender (only) when their message was truncated"
    )

    @field_validator("max_message_length")
    @classmethod
    def validate_max_message_length(cls, v: int) -> int:
        """Validate the truncation boundary is sensible."""
        if v < 1 or v > 10000:
            raise ValueError("max_message_length must be between 1 and 10000")
        return v

    model_config = {"env_prefix": "CHAT_", "case_sensitive": False, "extra": "ignore"}


class RealtimeConfig(BaseSettings):
    """Inbound frame limits shared by both hubs."""

    max_frame_size: int = Field(default=16 * 1024, description="Maximum inbound frame size in bytes")
    max_json_depth: int = Field(default=10, description="Maximum JSON nesting depth of inbound frames")
    group_name_max_length: int = Field(default=64, description="Maximum length of client-chosen group names")

    @field_validator("max_frame_size", "max_json_depth", "group_name_max_length")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate limits are positive."""
        if v < 1:
            raise ValueError("Realtime limits must be at least 1")
        return v

    model_config = {"env_prefix": "REALTIME_", "case_sensitive": False, "extra": "ignore"}


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="human", description="Log format")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "production"]
        if v not in valid_environments:
            logger.error("Invalid logging environment", environment=v, valid_environments=valid_environments)
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "human"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {"env_prefix": "LOGGING_", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict[str, Any]:
        """Return the dict shape expected by setup_enhanced_logging()."""
        return {"environment": self.environment, "level": self.level, "format": self.format}


class CORSConfig(BaseSettings):
    """Cross-origin resource sharing configuration for the dashboard."""

    allow_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Origins permitted to access the API",
    )
    allow_credentials: bool = Field(default=True, description="Whether credentialed requests are accepted")
    allow_methods: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["GET", "POST", "OPTIONS"],
        description="HTTP methods permitted by CORS responses",
    )
    allow_headers: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["Content-Type", "Authorization", "X-Requested-With"],
        description="Request headers permitted by CORS responses",
    )
    max_age: int = Field(default=600, description="Seconds browsers may cache CORS preflight responses")

    @field_validator("allow_origins", "allow_headers", mode="before")
    @classmethod
    def parse_list(cls, value: Any) -> list[str]:
        """Accept CSV or JSON list from the environment."""
        return _parse_env_list(value)

    @field_validator("allow_methods", mode="before")
    @classmethod
    def parse_methods(cls, value: Any) -> list[str]:
        """Accept CSV or JSON list, normalised to upper case."""
        return [method.upper() for method in _parse_env_list(value)]

    model_config = {"env_prefix": "CORS_", "case_sensitive": False, "extra": "ignore"}


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    This is the main configuration class that aggregates all other configs.
    Access via get_config().
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)  # type: ignore[arg-type]
    chat: ChatConfig = Field(default_factory=ChatConfig)
    realtime: RealtimeConfig = Field(default_factory=RealtimeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cors: CORSConfig = Field(default_factory=CORSConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_legacy_dict(self) -> dict[str, Any]:
        """
        Convert to the dict format consumed by setup_enhanced_logging().

        Secrets are deliberately left out.
        """
        return {
            "host": self.server.host,
            "port": self.server.port,
            "logging": self.logging.to_legacy_dict(),
            "chat": {
                "max_message_length": self.chat.max_message_length,
                "warn_on_truncation": self.chat.warn_on_truncation,
            },
        }
