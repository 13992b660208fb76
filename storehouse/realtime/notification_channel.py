"""
Order notification hub.

Receives order domain events from the order-management service and pushes
formatted notifications to the live dashboard connections of the owning
company. Delivery is best-effort: with nobody listening the event is
dropped.

Audience rules:
- created / statusChanged: every notification connection of the owning
  company (group ``tenant:<id>``), or only the members of
  ``tenant:<id>:<audience_group>`` when the event names one.
- assigned: the connections of each assignee (group ``user:<id>``) that
  belong to the owning company.
"""

import re
import uuid
from typing import TYPE_CHECKING

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..exceptions import ErrorContext, HandshakeRejectedError
from ..schemas.notifications import (
    GROUP_NAME_PATTERN,
    Notification,
    NotificationDispatch,
    OrderAssignedEvent,
    OrderCreatedEvent,
    OrderEvent,
    OrderStatusChangedEvent,
)
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Channel, Connection, Identity, custom_group, tenant_group, user_group
from .connection_state_machine import ConnectionSession
from .envelope import (
    CONNECTION_CONFIRMED,
    JOINED_GROUP,
    LEFT_GROUP,
    RECEIVE_ORDER_ASSIGNED,
    RECEIVE_ORDER_CREATED,
    RECEIVE_ORDER_STATUS_UPDATE,
    build_error_event,
    build_event,
    utc_now_z,
)
from .message_broadcaster import MessageBroadcaster

if TYPE_CHECKING:
    from .connection_directory import ConnectionDirectory, DeliveryTarget, Sender

logger = get_logger(__name__)

_GROUP_NAME_RE = re.compile(GROUP_NAME_PATTERN)

_EVENT_TYPES = {
    "created": RECEIVE_ORDER_CREATED,
    "statusChanged": RECEIVE_ORDER_STATUS_UPDATE,
    "assigned": RECEIVE_ORDER_ASSIGNED,
}


def notification_type(event: OrderEvent) -> str:
    """Notification type tag of a domain event."""
    if isinstance(event, OrderCreatedEvent):
        return "created"
    if isinstance(event, OrderStatusChangedEvent):
        return "statusChanged"
    if isinstance(event, OrderAssignedEvent):
        return "assigned"
    raise TypeError(f"Unsupported order event: {type(event).__name__}")


def status_message(event: OrderEvent) -> str:
    """Human-readable message for a domain event."""
    if isinstance(event, OrderCreatedEvent):
        return (
            f"Order #{event.order_id} was created by {event.actor_name} "
            f"for {event.client_name} (total {event.total_price:.2f})."
        )
    if isinstance(event, OrderStatusChangedEvent):
        if event.old_status:
            return (
                f"Order #{event.order_id} status changed from {event.old_status} "
                f"to {event.new_status} by {event.actor_name}."
            )
        return f"Order #{event.order_id} status changed to {event.new_status} by {event.actor_name}."
    if isinstance(event, OrderAssignedEvent):
        if event.message:
            return event.message
        return f"Order #{event.order_id} for {event.client_name} was assigned to you."
    raise TypeError(f"Unsupported order event: {type(event).__name__}")


def build_notification(event: OrderEvent) -> Notification:
    """Turn a domain event into a client notification with a fresh id and server timestamp."""
    kind = notification_type(event)
    note: str | None = None
    if isinstance(event, OrderCreatedEvent):
        note = event.note
    elif isinstance(event, OrderStatusChangedEvent):
        note = event.description

    return Notification(
        notification_id=uuid.uuid4().hex,
        type=kind,
        order_id=event.order_id,
        tenant_id=event.tenant_id,
        actor=event.actor_name,
        message=status_message(event),
        note=note,
        timestamp=utc_now_z(),
    )


class NotificationChannel:
    """Push channel for order notifications."""

    channel = Channel.NOTIFICATIONS

    def __init__(
        self,
        directory: "ConnectionDirectory",
        broadcaster: MessageBroadcaster | None = None,
        group_name_max_length: int = 64,
    ) -> None:
        """
        Initialize the notification channel.

        Args:
            directory: Shared connection directory
            broadcaster: Fan-out helper (built from the directory when omitted)
            group_name_max_length: Longest group name a client may join
        """
        self.directory = directory
        self.broadcaster = broadcaster or MessageBroadcaster(directory)
        self.group_name_max_length = group_name_max_length

    async def connect(
        self,
        identity: Identity,
        connection_id: str,
        sender: "Sender",
        session: ConnectionSession | None = None,
    ) -> Connection:
        """
        Register a notification connection in its company and user groups.

        Raises:
            HandshakeRejectedError: If the identity lacks a user or company id
        """
        session = session or ConnectionSession(connection_id, channel=self.channel.value)
        missing = "user_id" if not identity.user_id else "tenant_id" if not identity.tenant_id else None
        if missing is not None:
            session.abort(reason=f"missing {missing}")
            raise HandshakeRejectedError(
                f"Notification handshake rejected: {missing} claim missing",
                context=ErrorContext(connection_id=connection_id, operation="connect"),
                missing_claim=missing,
                user_friendly=ErrorMessages.IDENTITY_UNRESOLVED,
            )

        connection = self.directory.register(
            identity,
            connection_id,
            self.channel,
            sender,
            groups=[tenant_group(identity.tenant_id), user_group(identity.user_id)],
            session=session,
        )

        await self.broadcaster.send_to_connection(
            connection_id,
            build_event(
                CONNECTION_CONFIRMED,
                {
                    "message": f"Welcome {identity.name}!",
                    "connection_id": connection_id,
                    "user_id": identity.user_id,
                    "user_name": identity.name,
                },
            ),
        )
        return connection

    async def publish(self, event: OrderEvent) -> NotificationDispatch:
        """
        Deliver a domain event to its live audience.

        Never raises for an empty audience or for per-recipient failures.

        Args:
            event: Order domain event

        Returns:
            NotificationDispatch: Notification id, addressed groups and delivery counts
        """
        notification = build_notification(event)
        groups, targets = self._resolve_audience(event)
        dispatch = NotificationDispatch(
            notification_id=notification.notification_id,
            type=notification.type,
            groups=groups,
        )

        if not targets:
            dispatch.dropped = True
            logger.debug(
                "No live audience for notification, dropping",
                notification_type=notification.type,
                order_id=event.order_id,
                tenant_id=event.tenant_id,
                groups=groups,
            )
            return dispatch

        envelope = build_event(_EVENT_TYPES[notification.type], notification.model_dump())
        result = await self.broadcaster.deliver(targets, envelope)
        dispatch.total_targets = result.total_targets
        dispatch.successful_deliveries = result.successful_deliveries
        dispatch.failed_deliveries = result.failed_deliveries

        logger.info(
            "Notification published",
            notification_id=notification.notification_id,
            notification_type=notification.type,
            order_id=event.order_id,
            tenant_id=event.tenant_id,
            total_targets=result.total_targets,
            failed_deliveries=result.failed_deliveries,
        )
        return dispatch

    def _resolve_audience(self, event: OrderEvent) -> tuple[list[str], list["DeliveryTarget"]]:
        """Groups addressed by an event and the deduplicated live targets in them."""
        if isinstance(event, OrderAssignedEvent):
            groups: list[str] = []
            targets: dict[str, DeliveryTarget] = {}
            for user_id in dict.fromkeys(event.assignee_user_ids):
                group = user_group(user_id)
                groups.append(group)
                # A user id may exist in several companies; only the event's company is addressed
                for target in self.directory.resolve_targets(self.channel, group, tenant_id=event.tenant_id):
                    targets.setdefault(target.connection_id, target)
            return groups, list(targets.values())

        if event.audience_group:
            group = custom_group(event.tenant_id, event.audience_group)
        else:
            group = tenant_group(event.tenant_id)
        return [group], self.directory.resolve_targets(self.channel, group)

    def validate_group_name(self, name: object) -> bool:
        """Check a client-chosen group name."""
        return (
            isinstance(name, str)
            and 0 < len(name) <= self.group_name_max_length
            and _GROUP_NAME_RE.match(name) is not None
        )

    async def join_group(self, connection_id: str, name: object) -> bool:
        """
        Join a company sub-group on behalf of a client.

        The name is always scoped to the caller's own company, so a client
        can never subscribe to another company's notifications.

        Returns:
            bool: True if the caller is a member afterwards
        """
        connection = self.directory.get_connection(connection_id)
        if connection is None:
            logger.warning("JoinGroup from unregistered connection", connection_id=connection_id)
            return False
        if not self.validate_group_name(name):
            await self._send_error(connection_id, ErrorType.INVALID_GROUP_NAME, ErrorMessages.INVALID_GROUP_NAME)
            return False

        group = custom_group(connection.tenant_id, str(name))
        joined = self.directory.join_group(connection_id, group)
        if joined:
            logger.info("Connection joined notification group", connection_id=connection_id, group=group)
            await self.broadcaster.send_to_connection(connection_id, build_event(JOINED_GROUP, {"group": name}))
        return joined

    async def leave_group(self, connection_id: str, name: object) -> bool:
        """
        Leave a company sub-group on behalf of a client.

        Leaving a group the caller is not in is acknowledged all the same.

        Returns:
            bool: True if a membership was removed
        """
        connection = self.directory.get_connection(connection_id)
        if connection is None:
            logger.warning("LeaveGroup from unregistered connection", connection_id=connection_id)
            return False
        if not self.validate_group_name(name):
            await self._send_error(connection_id, ErrorType.INVALID_GROUP_NAME, ErrorMessages.INVALID_GROUP_NAME)
            return False

        group = custom_group(connection.tenant_id, str(name))
        removed = self.directory.leave_group(connection_id, group)
        logger.info("Connection left notification group", connection_id=connection_id, group=group, removed=removed)
        await self.broadcaster.send_to_connection(connection_id, build_event(LEFT_GROUP, {"group": name}))
        return removed

    def handle_disconnect(self, connection_id: str) -> Connection | None:
        """Run the atomic disconnect routine for a notification connection."""
        return self.directory.handle_disconnect(connection_id)

    async def _send_error(self, connection_id: str, error_type: ErrorType, message: str) -> None:
        await self.broadcaster.send_to_connection(
            connection_id,
            build_error_event(create_websocket_error_response(error_type, message)),
        )
