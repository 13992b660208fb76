"""
Per-connection lifecycle state machine.

Connecting -> Connected -> (Reconnecting -> Connected)* -> Disconnected.
A handshake that cannot resolve the caller's identity ends in Aborted
instead; neither terminal state can be left again, a client has to open
a brand-new connection.
"""

import threading
from datetime import UTC, datetime
from typing import Any

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class ConnectionSession(StateMachine):
    """
    State machine for one hub connection.

    States:
    - connecting: handshake in progress, identity not yet resolved
    - connected: registered and reachable
    - reconnecting: a delivery to this connection failed, transport may be recovering
    - disconnected: closed after having been connected (terminal)
    - aborted: handshake rejected, never registered (terminal)

    Transitions:
    - connecting -> connected: establish
    - connecting -> aborted: abort
    - connected -> reconnecting: interrupt
    - reconnecting -> connected: resume
    - connected | reconnecting -> disconnected: close
    """

    connecting = State("Connecting", initial=True)
    connected = State("Connected")
    reconnecting = State("Reconnecting")
    disconnected = State("Disconnected", final=True)
    aborted = State("Aborted", final=True)

    establish = connecting.to(connected)
    abort = connecting.to(aborted)
    interrupt = connected.to(reconnecting)
    resume = reconnecting.to(connected)
    close = connected.to(disconnected) | reconnecting.to(disconnected)

    def __init__(self, connection_id: str, channel: str = "chat") -> None:
        """
        Initialize the session.

        Args:
            connection_id: Transport-assigned identifier
            channel: Hub name, used for log entries
        """
        # Set attributes BEFORE super().__init__() because on_enter_state runs during init
        self.connection_id = connection_id
        self.channel = channel
        self.started_at = datetime.now(UTC)
        self.connected_at: datetime | None = None
        self.closed_at: datetime | None = None
        self.abort_reason: str | None = None
        self.delivery_failures = 0
        self.interruptions = 0
        self.messages_sent = 0
        self._transition_lock = threading.Lock()

        super().__init__()

    def on_enter_state(self, state: State, event: Any = None, **kwargs: Any) -> None:
        """Log every transition."""
        logger.debug(
            "Connection state transition",
            connection_id=self.connection_id,
            channel=self.channel,
            trigger_event=str(event) if event else "initial",
            to_state=state.id,
        )

    def on_establish(self) -> None:
        self.connected_at = datetime.now(UTC)

    def on_abort(self, reason: str | None = None) -> None:
        self.abort_reason = reason
        self.closed_at = datetime.now(UTC)
        logger.warning(
            "Connection aborted during handshake",
            connection_id=self.connection_id,
            channel=self.channel,
            reason=reason,
        )

    def on_interrupt(self) -> None:
        self.interruptions += 1

    def on_close(self) -> None:
        self.closed_at = datetime.now(UTC)

    @property
    def state_id(self) -> str:
        return str(self.current_state_value)

    @property
    def is_live(self) -> bool:
        """True while the connection may still receive deliveries."""
        return self.current_state_value in (self.connected.value, self.reconnecting.value)

    @property
    def is_terminal(self) -> bool:
        return self.current_state_value in (self.disconnected.value, self.aborted.value)

    def mark_established(self) -> bool:
        """
        Move Connecting -> Connected.

        Returns:
            bool: True if the transition happened
        """
        with self._transition_lock:
            if self.current_state_value != self.connecting.value:
                return False
            self.establish()
            return True

    def mark_delivery_failed(self) -> bool:
        """
        Record a failed delivery, moving Connected -> Reconnecting.

        Returns:
            bool: True if the transition happened
        """
        with self._transition_lock:
            self.delivery_failures += 1
            if self.current_state_value != self.connected.value:
                return False
            self.interrupt()
            return True

    def mark_activity(self) -> bool:
        """
        Record successful traffic, moving Reconnecting -> Connected.

        Returns:
            bool: True if the transition happened
        """
        with self._transition_lock:
            if self.current_state_value != self.reconnecting.value:
                return False
            self.resume()
            return True

    def mark_closed(self) -> bool:
        """
        Close the session if it is still live.

        Returns:
            bool: True if the transition happened
        """
        with self._transition_lock:
            try:
                self.close()
            except TransitionNotAllowed:
                return False
            return True

    def get_stats(self) -> dict[str, Any]:
        """Session statistics for monitoring."""
        return {
            "connection_id": self.connection_id,
            "channel": self.channel,
            "state": self.state_id,
            "started_at": self.started_at.isoformat(),
            "connected_at": self.connected_at.isoformat() if self.connected_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "delivery_failures": self.delivery_failures,
            "interruptions": self.interruptions,
            "messages_sent": self.messages_sent,
            "abort_reason": self.abort_reason,
        }
