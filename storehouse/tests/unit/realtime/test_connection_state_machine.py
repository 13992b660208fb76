"""Tests for the per-connection lifecycle state machine."""

import warnings

import pytest
from statemachine.exceptions import TransitionNotAllowed

from storehouse.realtime.connection_state_machine import ConnectionSession


class TestConnectionSession:
    """Lifecycle transitions."""

    def test_initial_state_is_connecting(self):
        session = ConnectionSession("c1")

        assert session.state_id == "connecting"
        assert not session.is_live
        assert not session.is_terminal

    def test_happy_path(self):
        session = ConnectionSession("c1")

        session.establish()
        assert session.state_id == "connected"
        assert session.connected_at is not None

        session.close()
        assert session.state_id == "disconnected"
        assert session.is_terminal
        assert session.closed_at is not None

    def test_abort_is_terminal(self):
        session = ConnectionSession("c1")

        session.abort(reason="missing tenant_id")

        assert session.state_id == "aborted"
        assert session.abort_reason == "missing tenant_id"
        with pytest.raises(TransitionNotAllowed):
            session.establish()
        assert session.mark_closed() is False

    def test_aborted_session_cannot_be_closed_normally(self):
        session = ConnectionSession("c1")
        session.abort()

        with pytest.raises(TransitionNotAllowed):
            session.close()

    def test_cannot_abort_after_connect(self):
        session = ConnectionSession("c1")
        session.establish()

        with pytest.raises(TransitionNotAllowed):
            session.abort()

    def test_reconnecting_cycle(self):
        session = ConnectionSession("c1")
        session.establish()

        assert session.mark_delivery_failed() is True
        assert session.state_id == "reconnecting"
        assert session.is_live
        assert session.interruptions == 1

        assert session.mark_delivery_failed() is False
        assert session.delivery_failures == 2

        assert session.mark_activity() is True
        assert session.state_id == "connected"

    def test_close_from_reconnecting(self):
        session = ConnectionSession("c1")
        session.establish()
        session.mark_delivery_failed()

        assert session.mark_closed() is True
        assert session.state_id == "disconnected"

    def test_disconnected_is_terminal(self):
        session = ConnectionSession("c1")
        session.establish()
        session.close()

        assert session.mark_closed() is False
        assert session.mark_activity() is False
        assert session.mark_delivery_failed() is False
        with pytest.raises(TransitionNotAllowed):
            session.establish()

    def test_activity_while_connecting_is_ignored(self):
        session = ConnectionSession("c1")

        assert session.mark_activity() is False
        assert session.state_id == "connecting"

    def test_get_stats(self):
        session = ConnectionSession("c1", channel="notifications")
        session.establish()

        stats = session.get_stats()

        assert stats["connection_id"] == "c1"
        assert stats["channel"] == "notifications"
        assert stats["state"] == "connected"
        assert stats["closed_at"] is None

    def test_mark_established_only_from_connecting(self):
        session = ConnectionSession("c1")

        assert session.mark_established() is True
        assert session.state_id == "connected"
        assert session.mark_established() is False

    def test_state_queries_use_no_deprecated_api(self):
        with warnings.catch_warnings():
            warnings.filterwarnings("error", message=".*current_state.*", category=DeprecationWarning)

            session = ConnectionSession("c1")
            session.mark_established()
            session.mark_delivery_failed()
            assert session.is_live
            session.mark_activity()
            assert session.get_stats()["state"] == "connected"
            session.mark_closed()
            assert session.is_terminal
