"""
Group membership management for the storehouse real-time hubs.

This module tracks which connections are subscribed to which named
broadcast groups. Each hub owns one GroupRouter, so chat groups and
notification groups live in separate name spaces.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from ..structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .connection_registry import ConnectionRegistry

logger = get_logger(__name__)


class GroupRouter:
    """
    Manages group subscriptions for one hub.

    Membership is only granted to connections the registry knows about,
    and a reverse index (connection -> groups) lets a disconnect detach a
    connection from every group it joined.
    """

    def __init__(self, registry: ConnectionRegistry, name: str = "default") -> None:
        """
        Initialize the group router.

        Args:
            registry: Registry used to validate membership requests
            name: Label used in log entries (usually the hub name)
        """
        self.registry = registry
        self.name = name
        # group name -> set of connection_ids
        self._groups: dict[str, set[str]] = {}
        # connection_id -> set of group names
        self._memberships: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    def join_group(self, connection_id: str, group: str) -> bool:
        """
        Add a connection to a group.

        Must only be called after the registry holds an entry for
        connection_id. Joining twice is a no-op.

        Args:
            connection_id: The connection's ID
            group: The group name

        Returns:
            bool: True if the connection is a member afterwards, False if it was refused
        """
        if not group:
            logger.warning("Refusing to join unnamed group", router=self.name, connection_id=connection_id)
            return False

        with self._lock:
            if not self.registry.contains(connection_id):
                logger.warning(
                    "Refusing group join for unregistered connection",
                    router=self.name,
                    connection_id=connection_id,
                    group=group,
                )
                return False

            self._groups.setdefault(group, set()).add(connection_id)
            self._memberships.setdefault(connection_id, set()).add(group)

        logger.debug("Connection joined group", router=self.name, connection_id=connection_id, group=group)
        return True

    def leave_group(self, connection_id: str, group: str) -> bool:
        """
        Remove a connection from a group.

        Args:
            connection_id: The connection's ID
            group: The group name

        Returns:
            bool: True if a membership was removed, False if there was none
        """
        with self._lock:
            removed = self._discard(connection_id, group)

        if removed:
            logger.debug("Connection left group", router=self.name, connection_id=connection_id, group=group)
        return removed

    def leave_all(self, connection_id: str) -> set[str]:
        """
        Remove a connection from every group it belongs to.

        Args:
            connection_id: The connection's ID

        Returns:
            set[str]: The groups the connection was removed from
        """
        with self._lock:
            groups = set(self._memberships.get(connection_id, ()))
            for group in groups:
                self._discard(connection_id, group)

        if groups:
            logger.debug(
                "Connection removed from all groups", router=self.name, connection_id=connection_id, groups=groups
            )
        return groups

    def _discard(self, connection_id: str, group: str) -> bool:
        """Drop one (connection, group) edge from both indexes. Caller holds the lock."""
        members = self._groups.get(group)
        if members is None or connection_id not in members:
            return False

        members.discard(connection_id)
        if not members:
            del self._groups[group]

        groups = self._memberships.get(connection_id)
        if groups is not None:
            groups.discard(group)
            if not groups:
                del self._memberships[connection_id]
        return True

    def get_members(self, group: str) -> frozenset[str]:
        """
        Get all connections subscribed to a group.

        Returns:
            frozenset[str]: Snapshot of member connection ids
        """
        with self._lock:
            return frozenset(self._groups.get(group, ()))

    def get_groups(self, connection_id: str) -> frozenset[str]:
        """Get every group a connection belongs to."""
        with self._lock:
            return frozenset(self._memberships.get(connection_id, ()))

    def is_member(self, connection_id: str, group: str) -> bool:
        """Check a single membership edge."""
        with self._lock:
            return connection_id in self._groups.get(group, ())

    def group_count(self) -> int:
        """Number of non-empty groups."""
        with self._lock:
            return len(self._groups)

    def snapshot(self) -> dict[str, frozenset[str]]:
        """Consistent copy of group -> members."""
        with self._lock:
            return {group: frozenset(members) for group, members in self._groups.items()}
