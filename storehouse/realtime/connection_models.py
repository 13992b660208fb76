"""
Data models for connection management.

This module defines the identity carried by a live connection, the
connection record itself and the naming scheme for broadcast groups.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

TENANT_GROUP_PREFIX = "tenant:"
USER_GROUP_PREFIX = "user:"


class Channel(Enum):
    """Real-time hub a connection belongs to. Each hub has its own group space."""

    CHAT = "chat"
    NOTIFICATIONS = "notifications"


@dataclass(frozen=True)
class Identity:
    """
    Verified caller identity extracted from the authenticated claims.

    Immutable for the lifetime of a connection.
    """

    user_id: str
    tenant_id: str
    display_name: str = ""
    roles: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        """Display name, falling back to the user id."""
        return self.display_name or self.user_id


@dataclass
class Connection:
    """
    One live transport-level session.

    Owned by the ConnectionRegistry; group routers only reference the
    connection_id.
    """

    connection_id: str
    identity: Identity
    channel: Channel = Channel.CHAT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def tenant_id(self) -> str:
        return self.identity.tenant_id


@dataclass(frozen=True)
class RemovalResult:
    """Outcome of ConnectionRegistry.remove_connection()."""

    found: bool
    user_id: str | None = None
    tenant_id: str | None = None
    connection: Connection | None = None


def tenant_group(tenant_id: str) -> str:
    """Broadcast group shared by every connection of a company."""
    return f"{TENANT_GROUP_PREFIX}{tenant_id}"


def user_group(user_id: str) -> str:
    """Group holding every connection of a single user."""
    return f"{USER_GROUP_PREFIX}{user_id}"


def custom_group(tenant_id: str, name: str) -> str:
    """Client-chosen group, always namespaced under the caller's company."""
    return f"{tenant_group(tenant_id)}:{name}"
