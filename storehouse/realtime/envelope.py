"""
Event envelope utilities for storehouse real-time messages.

Provides a single, consistent schema for every server -> client event:
- event_type: str (ConnectionConfirmed, ReceiveMessage, ReceiveError, ...)
- timestamp: ISO 8601 UTC with 'Z'
- sequence_number: int (monotonic per-process)
- data: dict payload
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

# Server -> client event names
CONNECTION_CONFIRMED = "ConnectionConfirmed"
RECEIVE_MESSAGE = "ReceiveMessage"
RECEIVE_ERROR = "ReceiveError"
RECEIVE_WARNING = "ReceiveWarning"
RECEIVE_ORDER_CREATED = "ReceiveOrderCreated"
RECEIVE_ORDER_STATUS_UPDATE = "ReceiveOrderStatusUpdate"
RECEIVE_ORDER_ASSIGNED = "ReceiveOrderAssigned"
JOINED_GROUP = "JoinedGroup"
LEFT_GROUP = "LeftGroup"
PONG = "Pong"

_sequence_counter = 0
_sequence_lock = threading.Lock()


def next_sequence_number() -> int:
    """Thread-safe process-wide sequence number generation."""
    global _sequence_counter
    with _sequence_lock:
        _sequence_counter += 1
        return _sequence_counter


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as ISO 8601 UTC with 'Z' suffix (millisecond precision)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_z() -> str:
    """Return current UTC time in ISO 8601 format with 'Z' suffix."""
    return format_timestamp(datetime.now(UTC))


def build_event(
    event_type: str,
    data: dict[str, Any] | None = None,
    *,
    sequence_number: int | None = None,
) -> dict[str, Any]:
    """
    Create a normalized event envelope.

    Args:
        event_type: Type of event
        data: Event data payload
        sequence_number: Optional explicit sequence number
    """
    return {
        "event_type": event_type,
        "timestamp": utc_now_z(),
        "sequence_number": sequence_number if sequence_number is not None else next_sequence_number(),
        "data": data or {},
    }


def build_error_event(payload: dict[str, Any]) -> dict[str, Any]:
    """Wrap an error payload (see error_types.create_websocket_error_response) in a ReceiveError event."""
    return build_event(RECEIVE_ERROR, payload)
