"""
Pydantic schemas for the storehouse real-time service.

This package contains the order domain events accepted from the
order-management service and the notification payloads pushed to clients.
"""

from .notifications import (
    Notification,
    NotificationDispatch,
    OrderAssignedEvent,
    OrderCreatedEvent,
    OrderEvent,
    OrderStatusChangedEvent,
)

__all__ = [
    "Notification",
    "NotificationDispatch",
    "OrderAssignedEvent",
    "OrderCreatedEvent",
    "OrderEvent",
    "OrderStatusChangedEvent",
]
