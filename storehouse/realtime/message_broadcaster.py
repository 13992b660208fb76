"""
Message broadcasting for the storehouse hubs.

Delivers one event envelope to a resolved list of connections
concurrently. A failure on one recipient is logged and counted but never
stops delivery to its siblings and never propagates to the caller.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..exceptions import DeliveryError, ErrorContext
from ..structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .connection_directory import ConnectionDirectory, DeliveryTarget
    from .connection_models import Channel

logger = get_logger(__name__)


@dataclass
class BroadcastResult:
    """Delivery statistics of one fan-out."""

    total_targets: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    failed_connections: list[str] = field(default_factory=list)
    errors: list[DeliveryError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_targets": self.total_targets,
            "successful_deliveries": self.successful_deliveries,
            "failed_deliveries": self.failed_deliveries,
            "failed_connections": list(self.failed_connections),
        }


class MessageBroadcaster:
    """
    Broadcasts event envelopes to groups, users and single connections.

    Targets are resolved through the ConnectionDirectory at the moment the
    broadcast starts; a connection disconnected before that point is never
    addressed.
    """

    def __init__(self, directory: "ConnectionDirectory") -> None:
        """
        Initialize the message broadcaster.

        Args:
            directory: Directory used to resolve delivery targets
        """
        self.directory = directory

    async def broadcast_to_group(self, channel: "Channel", group: str, event: dict[str, Any]) -> BroadcastResult:
        """
        Broadcast an event to every connection in a group.

        Args:
            channel: Hub whose group space is addressed
            group: Group name
            event: The event envelope to send

        Returns:
            BroadcastResult: Delivery statistics
        """
        targets = self.directory.resolve_targets(channel, group)
        logger.debug("broadcast_to_group", channel=channel.value, group=group, target_count=len(targets))
        return await self.deliver(targets, event)

    async def broadcast_to_user(
        self, channel: "Channel", user_id: str, event: dict[str, Any], tenant_id: str | None = None
    ) -> BroadcastResult:
        """
        Broadcast an event to every live connection of one user.

        Args:
            channel: Hub to deliver on
            user_id: Recipient user
            event: The event envelope to send
            tenant_id: When given, only connections of this company are addressed

        Returns:
            BroadcastResult: Delivery statistics
        """
        targets = self.directory.resolve_user_targets(channel, user_id, tenant_id=tenant_id)
        logger.debug("broadcast_to_user", channel=channel.value, user_id=user_id, target_count=len(targets))
        return await self.deliver(targets, event)

    async def send_to_connection(self, connection_id: str, event: dict[str, Any]) -> bool:
        """
        Send an event to a single connection (caller-only events).

        Returns:
            bool: True if the event was delivered
        """
        target = self.directory.resolve_connection(connection_id)
        if target is None:
            logger.debug("send_to_connection: connection not registered", connection_id=connection_id)
            return False
        result = await self.deliver([target], event)
        return result.successful_deliveries == 1

    async def deliver(self, targets: list["DeliveryTarget"], event: dict[str, Any]) -> BroadcastResult:
        """
        Send an event to pre-resolved targets concurrently.

        Args:
            targets: Delivery targets (snapshot)
            event: The event envelope to send

        Returns:
            BroadcastResult: Delivery statistics
        """
        result = BroadcastResult(total_targets=len(targets))
        if not targets:
            return result

        delivery_results = await asyncio.gather(
            *[target.sender(event) for target in targets],
            return_exceptions=True,
        )

        for target, outcome in zip(targets, delivery_results, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                result.errors.append(
                    DeliveryError(
                        f"Error delivering {event.get('event_type')} to connection: {outcome}",
                        context=ErrorContext(connection_id=target.connection_id, operation="deliver"),
                        connection_id=target.connection_id,
                        details={"error_type": type(outcome).__name__},
                    )
                )
                result.failed_deliveries += 1
                result.failed_connections.append(target.connection_id)
                if target.session is not None:
                    target.session.mark_delivery_failed()
                continue

            result.successful_deliveries += 1
            if target.session is not None:
                target.session.messages_sent += 1
                target.session.mark_activity()

        if result.failed_deliveries:
            logger.warning(
                "Broadcast completed with delivery failures",
                event_type=event.get("event_type"),
                total_targets=result.total_targets,
                failed_deliveries=result.failed_deliveries,
            )
        return result
