"""
Order notification hooks.

Internal endpoints through which the order-management service publishes
order domain events. Each call is fanned out to the live audience and
answered with the dispatch summary; nobody listening is not an error.

Callers authenticate with the service key (any company) or with a user
bearer token, which may only publish for the token's own company.
"""

from fastapi import APIRouter, Depends, status

from ..auth_utils import Publisher
from ..dependencies import authorize_tenant, get_notification_channel, get_publisher
from ..realtime.notification_channel import NotificationChannel
from ..schemas.notifications import (
    NotificationDispatch,
    OrderAssignedEvent,
    OrderCreatedEvent,
    OrderStatusChangedEvent,
)

notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@notifications_router.post(
    "/orders/created",
    response_model=NotificationDispatch,
    status_code=status.HTTP_202_ACCEPTED,
)
async def order_created(
    event: OrderCreatedEvent,
    publisher: Publisher = Depends(get_publisher),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> NotificationDispatch:
    """Publish an order-created event."""
    authorize_tenant(publisher, event.tenant_id)
    return await channel.publish(event)


@notifications_router.post(
    "/orders/status",
    response_model=NotificationDispatch,
    status_code=status.HTTP_202_ACCEPTED,
)
async def order_status_changed(
    event: OrderStatusChangedEvent,
    publisher: Publisher = Depends(get_publisher),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> NotificationDispatch:
    """Publish an order status change."""
    authorize_tenant(publisher, event.tenant_id)
    return await channel.publish(event)


@notifications_router.post(
    "/orders/assigned",
    response_model=NotificationDispatch,
    status_code=status.HTTP_202_ACCEPTED,
)
async def order_assigned(
    event: OrderAssignedEvent,
    publisher: Publisher = Depends(get_publisher),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> NotificationDispatch:
    """Publish an order assignment."""
    authorize_tenant(publisher, event.tenant_id)
    return await channel.publish(event)
