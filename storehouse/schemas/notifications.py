"""
Pydantic schemas for order notifications.

Inbound domain events published by the order-management service, and the
notification payload pushed to live dashboard connections.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

GROUP_NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"

NotificationType = Literal["created", "statusChanged", "assigned"]


class OrderEventBase(BaseModel):
    """Fields shared by every order domain event."""

    order_id: int = Field(..., ge=1, description="Order identifier")
    tenant_id: str = Field(..., min_length=1, description="Company that owns the order")
    audience_group: str | None = Field(
        None,
        min_length=1,
        max_length=64,
        pattern=GROUP_NAME_PATTERN,
        description="Restrict delivery to members of this company sub-group",
    )


class OrderCreatedEvent(OrderEventBase):
    """An order was created."""

    actor_name: str = Field(..., min_length=1, description="User who created the order")
    client_name: str = Field(..., min_length=1, description="Client the order is for")
    total_price: float = Field(..., ge=0, description="Order total")
    status: str = Field(default="Created", description="Initial order status")
    created_at: datetime | None = Field(None, description="When the order was created")
    note: str | None = Field(None, max_length=1000, description="Optional free-text note")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "order_id": 42,
                "tenant_id": "7",
                "actor_name": "Alice",
                "client_name": "Acme",
                "total_price": 10.5,
                "status": "Created",
                "created_at": "2024-01-01T00:00:00Z",
            }
        }
    )


class OrderStatusChangedEvent(OrderEventBase):
    """An order moved to a new status."""

    actor_name: str = Field(..., min_length=1, description="User who changed the status")
    new_status: str = Field(..., min_length=1, description="Status after the change")
    old_status: str | None = Field(None, description="Status before the change")
    description: str | None = Field(None, max_length=1000, description="Optional free-text note")
    timestamp: datetime | None = Field(None, description="When the change happened")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "order_id": 42,
                "tenant_id": "7",
                "actor_name": "Bob",
                "old_status": "Created",
                "new_status": "Shipped",
                "description": "Left the warehouse",
            }
        }
    )


class OrderAssignedEvent(OrderEventBase):
    """An order was assigned to one or more workers."""

    client_name: str = Field(..., min_length=1, description="Client the order is for")
    assignee_user_ids: list[str] = Field(..., min_length=1, description="Users the order was assigned to")
    actor_name: str | None = Field(None, description="User who made the assignment")
    message: str | None = Field(None, max_length=1000, description="Optional message for the assignees")
    assigned_at: datetime | None = Field(None, description="When the assignment happened")


OrderEvent = OrderCreatedEvent | OrderStatusChangedEvent | OrderAssignedEvent


class Notification(BaseModel):
    """Notification payload delivered to dashboard connections."""

    notification_id: str = Field(..., description="Client-visible identifier (uuid4 hex)")
    type: NotificationType = Field(..., description="Notification kind")
    order_id: int = Field(..., description="Order identifier")
    tenant_id: str = Field(..., description="Company that owns the order")
    actor: str | None = Field(None, description="User who caused the event")
    message: str = Field(..., description="Human-readable message")
    note: str | None = Field(None, description="Optional free-text note")
    timestamp: str = Field(..., description="Server timestamp, ISO 8601 UTC with 'Z'")


class NotificationDispatch(BaseModel):
    """Outcome of publishing one event."""

    notification_id: str
    type: NotificationType
    groups: list[str] = Field(default_factory=list, description="Groups the notification was addressed to")
    total_targets: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    dropped: bool = Field(default=False, description="True when no live connection was in the audience")
