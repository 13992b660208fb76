"""
Inbound WebSocket frame validation for the storehouse hubs.

Every client call arrives as a JSON text frame ``{"type": ..., "data": {...}}``.
This module enforces size and nesting limits before the frame reaches a
handler.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..error_types import ErrorType
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class MessageValidationError(Exception):
    """Raised when an inbound frame fails validation."""

    def __init__(self, message: str, error_type: ErrorType = ErrorType.VALIDATION_ERROR):
        self.message = message
        self.error_type = error_type
        super().__init__(self.message)


class InboundFrame(BaseModel):
    """Envelope of a client -> server call."""

    type: str = Field(..., min_length=1, max_length=64, description="Client call name, e.g. SendMessage")
    data: dict[str, Any] = Field(default_factory=dict, description="Call arguments")

    model_config = ConfigDict(extra="ignore")


class WebSocketMessageValidator:
    """
    Validates inbound frames.

    Implements:
    - Frame size limits
    - JSON depth limits
    - Envelope schema validation
    """

    MAX_FRAME_SIZE = 16 * 1024
    MAX_JSON_DEPTH = 10

    def __init__(self, max_frame_size: int | None = None, max_json_depth: int | None = None):
        """
        Initialize the validator.

        Args:
            max_frame_size: Maximum frame size in bytes (default: 16KB)
            max_json_depth: Maximum JSON nesting depth (default: 10)
        """
        self.max_frame_size = max_frame_size or self.MAX_FRAME_SIZE
        self.max_json_depth = max_json_depth or self.MAX_JSON_DEPTH

    def validate_size(self, data: str) -> None:
        """
        Validate frame size.

        Raises:
            MessageValidationError: If the frame exceeds the size limit
        """
        size = len(data.encode("utf-8"))
        if size > self.max_frame_size:
            logger.warning("Frame size exceeds limit", size=size, max_size=self.max_frame_size)
            raise MessageValidationError(
                f"Frame size {size} bytes exceeds maximum {self.max_frame_size} bytes",
                error_type=ErrorType.INVALID_FORMAT,
            )

    def validate_depth(self, message: Any) -> None:
        """
        Validate JSON nesting depth.

        Raises:
            MessageValidationError: If the structure is nested too deeply
        """
        depth = self._calculate_depth(message)
        if depth > self.max_json_depth:
            logger.warning("JSON depth exceeds limit", depth=depth, max_depth=self.max_json_depth)
            raise MessageValidationError(
                f"JSON depth {depth} exceeds maximum {self.max_json_depth}",
                error_type=ErrorType.INVALID_FORMAT,
            )

    def _calculate_depth(self, obj: Any, current_depth: int = 0) -> int:
        """Maximum nesting depth of a JSON structure, short-circuiting past the limit."""
        if current_depth > self.max_json_depth:
            return current_depth
        if isinstance(obj, dict) and obj:
            return max(self._calculate_depth(v, current_depth + 1) for v in obj.values())
        if isinstance(obj, list) and obj:
            return max(self._calculate_depth(item, current_depth + 1) for item in obj)
        return current_depth

    def parse_and_validate(self, data: str, connection_id: str | None = None) -> InboundFrame:
        """
        Parse and validate one inbound frame.

        Args:
            data: Raw text frame
            connection_id: Sending connection, for log context

        Returns:
            InboundFrame: The validated call envelope

        Raises:
            MessageValidationError: If validation fails at any stage
        """
        self.validate_size(data)

        try:
            message = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("Invalid JSON in frame", connection_id=connection_id, error=str(e))
            raise MessageValidationError(f"Invalid JSON: {e}", error_type=ErrorType.INVALID_FORMAT) from e

        if not isinstance(message, dict):
            raise MessageValidationError("Frame must be a JSON object", error_type=ErrorType.INVALID_FORMAT)

        self.validate_depth(message)

        try:
            frame = InboundFrame.model_validate(message)
        except PydanticValidationError as e:
            logger.warning("Frame schema validation failed", connection_id=connection_id, errors=str(e))
            raise MessageValidationError(
                f"Frame must contain a 'type' string and an optional 'data' object: {e.error_count()} error(s)",
                error_type=ErrorType.INVALID_FORMAT,
            ) from e

        logger.debug("Frame validation successful", connection_id=connection_id, message_type=frame.type)
        return frame
