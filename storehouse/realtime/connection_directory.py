"""
Connection directory: the process-wide owner of real-time connection state.

The directory composes the ConnectionRegistry, one GroupRouter per hub,
the outbound sender of every live connection and its lifecycle session.
Registering and disconnecting are single atomic routines here, so the
registry and the routers can never disagree about which connections are
live.
"""

import threading
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Channel, Connection, Identity
from .connection_registry import ConnectionRegistry
from .connection_state_machine import ConnectionSession
from .group_router import GroupRouter

logger = get_logger(__name__)

Sender = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True)
class DeliveryTarget:
    """A connection resolved for delivery, captured at resolution time."""

    connection_id: str
    sender: Sender
    session: ConnectionSession | None = None


class ConnectionDirectory:
    """
    Injectable owner of the registry, group routers and senders.

    Constructed once at startup (see ApplicationContainer) and passed by
    reference to both hubs. All methods are safe to call concurrently
    without any external locking.
    """

    def __init__(self, registry: ConnectionRegistry | None = None) -> None:
        """Initialize the directory with an empty registry and one router per hub."""
        self.registry = registry or ConnectionRegistry()
        self.routers: dict[Channel, GroupRouter] = {
            channel: GroupRouter(self.registry, name=channel.value) for channel in Channel
        }
        self._senders: dict[str, Sender] = {}
        self._sessions: dict[str, ConnectionSession] = {}
        self._lock = threading.RLock()

    def router(self, channel: Channel) -> GroupRouter:
        """Group router of a hub."""
        return self.routers[channel]

    def register(
        self,
        identity: Identity,
        connection_id: str,
        channel: Channel,
        sender: Sender,
        groups: Iterable[str] = (),
        session: ConnectionSession | None = None,
    ) -> Connection:
        """
        Atomically register a connection and join its groups.

        If connection_id is already registered its previous memberships are
        dropped first, so a re-registration never leaves stale edges. The
        session is established before the lock is released, so a concurrent
        disconnect always finds it Connected and closes it.

        Args:
            identity: Verified caller identity
            connection_id: Transport-assigned identifier
            channel: Hub the connection belongs to
            sender: Coroutine function delivering one event to this connection
            groups: Groups to join immediately
            session: Lifecycle session in Connecting (created when omitted)

        Returns:
            Connection: The registered connection record

        Raises:
            ValueError: If the identity lacks a user or tenant id
        """
        with self._lock:
            previous = self.registry.get_connection(connection_id)
            if previous is not None:
                self.routers[previous.channel].leave_all(connection_id)

            connection = self.registry.add_connection(
                identity.user_id,
                identity.tenant_id,
                connection_id,
                display_name=identity.display_name,
                channel=channel,
                roles=identity.roles,
            )
            router = self.routers[channel]
            joined = [group for group in groups if router.join_group(connection_id, group)]
            self._senders[connection_id] = sender
            stored = session or ConnectionSession(connection_id, channel=channel.value)
            stored.mark_established()
            self._sessions[connection_id] = stored

        logger.info(
            "Connection registered",
            connection_id=connection_id,
            user_id=identity.user_id,
            tenant_id=identity.tenant_id,
            channel=channel.value,
            groups=joined,
        )
        return connection

    def handle_disconnect(self, connection_id: str) -> Connection | None:
        """
        Atomic disconnect routine.

        Removes the registry entry, detaches the connection from every group
        of its hub, drops its sender and closes its session, all under the
        directory lock. Target resolution takes the same lock, so a
        broadcast resolved after this returns cannot include the connection.

        Args:
            connection_id: Identifier of the closed connection

        Returns:
            Connection | None: The removed connection, or None if it was unknown
        """
        with self._lock:
            result = self.registry.remove_connection(connection_id)
            self._senders.pop(connection_id, None)
            session = self._sessions.pop(connection_id, None)
            left: set[str] = set()
            if result.found and result.connection is not None:
                left = self.routers[result.connection.channel].leave_all(connection_id)
            else:
                # Defensive sweep: no router may keep an edge for an unregistered connection
                for router in self.routers.values():
                    left |= router.leave_all(connection_id)

        if session is not None:
            session.mark_closed()

        if not result.found:
            logger.warning("Disconnect for unknown or already removed connection", connection_id=connection_id)
            return None

        logger.info(
            "Connection disconnected",
            connection_id=connection_id,
            user_id=result.user_id,
            tenant_id=result.tenant_id,
            groups_left=left,
        )
        return result.connection

    def join_group(self, connection_id: str, group: str) -> bool:
        """
        Add a registered connection to a group of its own hub.

        Returns:
            bool: False if the connection is not registered
        """
        with self._lock:
            connection = self.registry.get_connection(connection_id)
            if connection is None:
                logger.warning("Join refused for unregistered connection", connection_id=connection_id, group=group)
                return False
            return self.routers[connection.channel].join_group(connection_id, group)

    def leave_group(self, connection_id: str, group: str) -> bool:
        """
        Remove a connection from a group of its own hub.

        Returns:
            bool: True if a membership was removed
        """
        with self._lock:
            connection = self.registry.get_connection(connection_id)
            if connection is None:
                return False
            return self.routers[connection.channel].leave_group(connection_id, group)

    def resolve_targets(self, channel: Channel, group: str, tenant_id: str | None = None) -> list[DeliveryTarget]:
        """
        Snapshot the deliverable members of a group.

        Args:
            channel: Hub whose group space is addressed
            group: Group name
            tenant_id: When given, only connections of this company qualify

        Returns:
            list[DeliveryTarget]: Members with a live sender, sorted by connection id
        """
        with self._lock:
            members = sorted(self.routers[channel].get_members(group))
            if tenant_id is not None:
                members = [cid for cid in members if self._tenant_of(cid) == tenant_id]
            return self._targets_for(members)

    def resolve_user_targets(self, channel: Channel, user_id: str, tenant_id: str | None = None) -> list[DeliveryTarget]:
        """
        Snapshot every live connection of a user on one hub.

        Args:
            channel: Hub to deliver on
            user_id: Recipient user
            tenant_id: When given, only connections of this company qualify

        Returns:
            list[DeliveryTarget]: Matching connections
        """
        with self._lock:
            connection_ids = []
            for connection_id in sorted(self.registry.get_connections(user_id)):
                connection = self.registry.get_connection(connection_id)
                if connection is None or connection.channel != channel:
                    continue
                if tenant_id is not None and connection.tenant_id != tenant_id:
                    continue
                connection_ids.append(connection_id)
            return self._targets_for(connection_ids)

    def resolve_connection(self, connection_id: str) -> DeliveryTarget | None:
        """Delivery target for a single connection, or None if it is gone."""
        with self._lock:
            targets = self._targets_for([connection_id])
            return targets[0] if targets else None

    def _tenant_of(self, connection_id: str) -> str | None:
        connection = self.registry.get_connection(connection_id)
        return connection.tenant_id if connection is not None else None

    def _targets_for(self, connection_ids: Iterable[str]) -> list[DeliveryTarget]:
        """Build delivery targets. Caller holds the lock."""
        targets = []
        for connection_id in connection_ids:
            sender = self._senders.get(connection_id)
            if sender is None:
                continue
            targets.append(DeliveryTarget(connection_id, sender, self._sessions.get(connection_id)))
        return targets

    def get_connection(self, connection_id: str) -> Connection | None:
        """Registered connection record, if any."""
        return self.registry.get_connection(connection_id)

    def get_session(self, connection_id: str) -> ConnectionSession | None:
        """Lifecycle session of a registered connection, if any."""
        with self._lock:
            return self._sessions.get(connection_id)

    def verify_consistency(self) -> list[str]:
        """
        Check the registry/router invariants.

        Returns:
            list[str]: Human-readable violations, empty when consistent
        """
        with self._lock:
            connections, users = self.registry.snapshot()
            group_maps = {channel: router.snapshot() for channel, router in self.routers.items()}
            senders = set(self._senders)

        violations: list[str] = []
        for channel, groups in group_maps.items():
            for group, members in groups.items():
                if not members:
                    violations.append(f"{channel.value}: empty group {group} retained")
                for connection_id in members:
                    connection = connections.get(connection_id)
                    if connection is None:
                        violations.append(f"{channel.value}: {connection_id} in {group} but not registered")
                    elif connection.channel != channel:
                        violations.append(f"{channel.value}: {connection_id} in {group} belongs to another hub")

        for user_id, connection_ids in users.items():
            if not connection_ids:
                violations.append(f"user {user_id} has an empty connection set")
            for connection_id in connection_ids:
                connection = connections.get(connection_id)
                if connection is None or connection.user_id != user_id:
                    violations.append(f"user {user_id} lists {connection_id} which it does not own")

        for connection_id, connection in connections.items():
            if connection_id not in users.get(connection.user_id, ()):
                violations.append(f"{connection_id} missing from user index of {connection.user_id}")
            if connection_id not in senders:
                violations.append(f"{connection_id} has no sender")

        return violations

    def get_stats(self) -> dict[str, Any]:
        """Connection and group counts per hub."""
        with self._lock:
            connections, _users = self.registry.snapshot()
            stats: dict[str, Any] = {
                "total_connections": len(connections),
                "total_users": self.registry.user_count(),
                "channels": {},
            }
            for channel, router in self.routers.items():
                stats["channels"][channel.value] = {
                    "connections": sum(1 for c in connections.values() if c.channel == channel),
                    "groups": router.group_count(),
                }
        return stats
