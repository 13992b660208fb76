"""
Connection registry for the storehouse real-time hubs.

This module keeps the authoritative mapping between live connections and
the (user, company) identity that owns them, plus the per-user index used
for targeted delivery. A user may hold several connections at once (one
per browser tab).
"""

import threading
from collections.abc import Iterable

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Channel, Connection, Identity, RemovalResult

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Thread-safe bidirectional mapping connection_id <-> identity.

    Both indexes are guarded by a single lock, so a user entry exists in
    the per-user index if and only if it still owns at least one live
    connection.
    """

    def __init__(self) -> None:
        """Initialize the registry with empty indexes."""
        # connection_id -> Connection
        self._connections: dict[str, Connection] = {}
        # user_id -> set of connection_ids
        self._user_connections: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    def add_connection(
        self,
        user_id: str,
        tenant_id: str,
        connection_id: str,
        *,
        display_name: str = "",
        channel: Channel = Channel.CHAT,
        roles: Iterable[str] = (),
    ) -> Connection:
        """
        Register a new connection.

        Re-registering an existing connection_id overwrites the previous
        entry. If the id previously belonged to another user it is moved
        out of that user's set.

        Args:
            user_id: Owning user
            tenant_id: Owning company
            connection_id: Transport-assigned identifier
            display_name: Name shown to other participants
            channel: Hub the connection belongs to
            roles: Role claims of the caller

        Returns:
            Connection: The stored connection record

        Raises:
            ValueError: If user_id, tenant_id or connection_id is empty
        """
        if not user_id:
            raise ValueError("user_id must not be empty")
        if not tenant_id:
            raise ValueError("tenant_id must not be empty")
        if not connection_id:
            raise ValueError("connection_id must not be empty")

        identity = Identity(user_id=user_id, tenant_id=tenant_id, display_name=display_name, roles=tuple(roles))
        connection = Connection(connection_id=connection_id, identity=identity, channel=channel)

        with self._lock:
            previous = self._connections.get(connection_id)
            if previous is not None and previous.user_id != user_id:
                self._discard_user_connection(previous.user_id, connection_id)

            self._connections[connection_id] = connection
            self._user_connections.setdefault(user_id, set()).add(connection_id)
            user_total = len(self._user_connections[user_id])

        logger.debug(
            "Connection added",
            user_id=user_id,
            tenant_id=tenant_id,
            connection_id=connection_id,
            channel=channel.value,
            user_connection_count=user_total,
            overwritten=previous is not None,
        )
        return connection

    def remove_connection(self, connection_id: str) -> RemovalResult:
        """
        Remove a connection.

        Not finding the id is not an error: it means the connection was
        already cleaned up or never registered.

        Args:
            connection_id: Identifier to remove

        Returns:
            RemovalResult: found flag plus the identity that owned it
        """
        with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is not None:
                self._discard_user_connection(connection.user_id, connection_id)

        if connection is None:
            logger.warning("RemoveConnection: connection not found in any user mapping", connection_id=connection_id)
            return RemovalResult(found=False)

        logger.debug(
            "Connection removed",
            user_id=connection.user_id,
            tenant_id=connection.tenant_id,
            connection_id=connection_id,
        )
        return RemovalResult(
            found=True,
            user_id=connection.user_id,
            tenant_id=connection.tenant_id,
            connection=connection,
        )

    def _discard_user_connection(self, user_id: str, connection_id: str) -> None:
        """Drop connection_id from a user's set, deleting the set when it empties. Caller holds the lock."""
        user_set = self._user_connections.get(user_id)
        if user_set is None:
            return
        user_set.discard(connection_id)
        if not user_set:
            del self._user_connections[user_id]
            logger.debug("Last connection removed for user, removing user entry", user_id=user_id)

    def get_connections(self, user_id: str) -> frozenset[str]:
        """
        Get every live connection of a user.

        Returns:
            frozenset[str]: Snapshot of connection ids, empty for unknown users
        """
        with self._lock:
            return frozenset(self._user_connections.get(user_id, ()))

    def get_connection(self, connection_id: str) -> Connection | None:
        """Look up a connection record by id."""
        with self._lock:
            return self._connections.get(connection_id)

    def contains(self, connection_id: str) -> bool:
        """Check whether a connection is currently registered."""
        with self._lock:
            return connection_id in self._connections

    def has_user(self, user_id: str) -> bool:
        """Check whether the per-user index holds an entry for user_id."""
        with self._lock:
            return user_id in self._user_connections

    def user_count(self) -> int:
        """Number of users with at least one live connection."""
        with self._lock:
            return len(self._user_connections)

    def snapshot(self) -> tuple[dict[str, Connection], dict[str, frozenset[str]]]:
        """
        Consistent copy of both indexes.

        Returns:
            tuple: (connection_id -> Connection, user_id -> connection ids)
        """
        with self._lock:
            return (
                dict(self._connections),
                {user_id: frozenset(ids) for user_id, ids in self._user_connections.items()},
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
