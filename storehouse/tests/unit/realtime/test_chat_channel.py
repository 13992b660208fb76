"""
Tests for ChatChannel.

Covers the connect handshake, message validation and truncation, sender
stamping and company isolation.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio

from storehouse.exceptions import HandshakeRejectedError
from storehouse.realtime.chat_channel import ChatChannel, truncate_utf16, utf16_length
from storehouse.realtime.connection_models import Channel
from storehouse.realtime.connection_state_machine import ConnectionSession


@pytest_asyncio.fixture
async def connected(chat_channel, make_identity, make_sender):
    """Connections A and B in company T1 and C in company T2."""
    senders = {}
    for connection_id, user_id, tenant_id, name in (
        ("A", "user-a", "T1", "Alice"),
        ("B", "user-b", "T1", "Bob"),
        ("C", "user-c", "T2", "Carol"),
    ):
        senders[connection_id] = make_sender(connection_id)
        await chat_channel.connect(make_identity(user_id, tenant_id, name), connection_id, senders[connection_id])
    for sender in senders.values():
        sender.events.clear()
    return senders


class TestConnect:
    """Tests for the connect handshake."""

    @pytest.mark.asyncio
    async def test_connect_confirms_to_caller_only(self, chat_channel, directory, make_identity, make_sender):
        first, second = make_sender("c1"), make_sender("c2")
        await chat_channel.connect(make_identity("u1", "T1", "Alice"), "c1", first)

        await chat_channel.connect(make_identity("u2", "T1", "Bob"), "c2", second)

        assert first.event_types == ["ConnectionConfirmed"]
        confirmation = second.of_type("ConnectionConfirmed")[0]["data"]
        assert confirmation == {
            "message": "Welcome Bob!",
            "connection_id": "c2",
            "user_id": "u2",
            "user_name": "Bob",
        }
        assert directory.router(Channel.CHAT).get_members("tenant:T1") == frozenset({"c1", "c2"})
        assert directory.get_session("c2").state_id == "connected"

    @pytest.mark.asyncio
    async def test_missing_tenant_aborts_without_registering(
        self, chat_channel, directory, make_identity, make_sender
    ):
        session = ConnectionSession("c1")
        sender = make_sender("c1")

        with pytest.raises(HandshakeRejectedError) as exc_info:
            await chat_channel.connect(make_identity("u1", ""), "c1", sender, session=session)

        assert exc_info.value.missing_claim == "tenant_id"
        assert session.state_id == "aborted"
        assert directory.get_connection("c1") is None
        assert sender.events == []

    @pytest.mark.asyncio
    async def test_missing_user_aborts(self, chat_channel, directory, make_identity, make_sender):
        with pytest.raises(HandshakeRejectedError):
            await chat_channel.connect(make_identity("", "T1"), "c1", make_sender())

        assert len(directory.registry) == 0

    @pytest.mark.asyncio
    async def test_display_name_falls_back_to_user_id(self, chat_channel, make_identity, make_sender):
        sender = make_sender()

        await chat_channel.connect(make_identity("u1", "T1"), "c1", sender)

        assert sender.events[0]["data"]["message"] == "Welcome u1!"

    @pytest.mark.asyncio
    async def test_disconnect_during_confirmation_leaves_no_live_session(
        self, chat_channel, directory, make_identity
    ):
        session = ConnectionSession("c1")

        async def drop_on_first_event(event):
            chat_channel.handle_disconnect("c1")
            raise RuntimeError("WebSocket is not connected")

        await chat_channel.connect(make_identity("u1", "T1"), "c1", drop_on_first_event, session=session)

        assert session.state_id == "disconnected"
        assert directory.get_connection("c1") is None


class TestSendMessage:
    """Tests for send_message."""

    @pytest.mark.asyncio
    async def test_same_company_receives_including_sender(self, chat_channel, connected):
        result = await chat_channel.send_message("A", "hello")

        assert result.total_targets == 2
        for connection_id in ("A", "B"):
            received = connected[connection_id].of_type("ReceiveMessage")
            assert len(received) == 1
            data = received[0]["data"]
            assert data["sender_user_id"] == "user-a"
            assert data["sender_name"] == "Alice"
            assert data["body"] == "hello"
            assert data["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_other_company_never_receives(self, chat_channel, connected):
        await chat_channel.send_message("A", "hello")
        await chat_channel.send_message("B", "again")

        assert connected["C"].events == []

    @pytest.mark.asyncio
    async def test_sender_identity_comes_from_server(self, chat_channel, connected):
        """Client-supplied sender fields cannot reach the broadcast."""
        await chat_channel.send_message("B", "hi")

        data = connected["A"].of_type("ReceiveMessage")[0]["data"]
        assert data["sender_user_id"] == "user-b"

    @pytest.mark.asyncio
    async def test_exactly_max_length_delivered_unmodified(self, chat_channel, connected):
        body = "x" * 500

        await chat_channel.send_message("A", body)

        assert connected["B"].of_type("ReceiveMessage")[0]["data"]["body"] == body
        assert connected["A"].of_type("ReceiveWarning") == []

    @pytest.mark.asyncio
    async def test_over_max_length_truncated(self, chat_channel, connected):
        body = "y" * 501

        await chat_channel.send_message("A", body)

        delivered = connected["B"].of_type("ReceiveMessage")[0]["data"]["body"]
        assert delivered == "y" * 500
        warnings = connected["A"].of_type("ReceiveWarning")
        assert len(warnings) == 1
        assert warnings[0]["data"]["original_length"] == 501
        assert connected["B"].of_type("ReceiveWarning") == []

    @pytest.mark.asyncio
    async def test_truncation_warning_can_be_disabled(self, directory, broadcaster, make_identity, make_sender):
        channel = ChatChannel(directory, broadcaster, max_message_length=10, warn_on_truncation=False)
        sender = make_sender()
        await channel.connect(make_identity("u1", "T1"), "c1", sender)

        await channel.send_message("c1", "0123456789abc")

        assert sender.of_type("ReceiveWarning") == []
        assert sender.of_type("ReceiveMessage")[0]["data"]["body"] == "0123456789"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "   ", "\n\t", None, 42])
    async def test_empty_or_invalid_body_rejected(self, chat_channel, connected, body):
        result = await chat_channel.send_message("A", body)

        assert result is None
        errors = connected["A"].of_type("ReceiveError")
        assert len(errors) == 1
        assert errors[0]["data"]["message"] == "Cannot send an empty message."
        assert connected["A"].of_type("ReceiveMessage") == []
        assert connected["B"].events == []

    @pytest.mark.asyncio
    async def test_unregistered_connection_gets_nothing(self, chat_channel, connected):
        assert await chat_channel.send_message("ghost", "hello") is None
        assert all(sender.events == [] for sender in connected.values())

    @pytest.mark.asyncio
    async def test_recipient_failure_not_reported_to_sender(
        self, chat_channel, directory, make_identity, make_sender
    ):
        sender = make_sender("ok")
        await chat_channel.connect(make_identity("u1", "T1"), "ok", sender)
        await chat_channel.connect(make_identity("u2", "T1"), "broken", make_sender("broken", fail=True))

        result = await chat_channel.send_message("ok", "hello")

        assert result.failed_deliveries == 1
        assert sender.of_type("ReceiveError") == []
        assert len(sender.of_type("ReceiveMessage")) == 1

    @pytest.mark.asyncio
    async def test_broadcast_failure_reported_as_receive_error(self, chat_channel, connected):
        with patch.object(chat_channel.broadcaster, "broadcast_to_group", side_effect=RuntimeError("boom")):
            result = await chat_channel.send_message("A", "hello")

        assert result is None
        errors = connected["A"].of_type("ReceiveError")
        assert errors[0]["data"]["message"] == "Failed to send message due to a server error."

    @pytest.mark.asyncio
    async def test_messages_from_one_sender_arrive_in_order(self, chat_channel, connected):
        for i in range(20):
            await chat_channel.send_message("A", f"m{i}")

        bodies = [event["data"]["body"] for event in connected["B"].of_type("ReceiveMessage")]
        assert bodies == [f"m{i}" for i in range(20)]


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnected_connection_excluded_from_later_broadcasts(self, chat_channel, connected):
        chat_channel.handle_disconnect("B")

        result = await chat_channel.send_message("A", "after")

        assert result.total_targets == 1
        assert connected["B"].events == []


class TestUtf16Truncation:
    """Length limits count UTF-16 code units, as browser clients do."""

    def test_helpers(self):
        assert utf16_length("abc") == 3
        assert utf16_length("\U0001f600") == 2
        assert truncate_utf16("\U0001f600\U0001f600", 3) == "\U0001f600"
        assert truncate_utf16("short", 10) == "short"

    @pytest.mark.asyncio
    async def test_length_counted_in_utf16_code_units(self, chat_channel, connected):
        body = "\U0001f600" * 250

        await chat_channel.send_message("A", body)

        assert connected["B"].of_type("ReceiveMessage")[0]["data"]["body"] == body
        assert connected["A"].of_type("ReceiveWarning") == []

    @pytest.mark.asyncio
    async def test_astral_characters_over_limit_truncated(self, chat_channel, connected):
        await chat_channel.send_message("A", "\U0001f600" * 251)

        assert connected["B"].of_type("ReceiveMessage")[0]["data"]["body"] == "\U0001f600" * 250
        warnings = connected["A"].of_type("ReceiveWarning")
        assert warnings[0]["data"]["original_length"] == 502

    @pytest.mark.asyncio
    async def test_truncation_never_splits_a_surrogate_pair(self, chat_channel, connected):
        await chat_channel.send_message("A", "a" + "\U0001f600" * 250)

        delivered = connected["B"].of_type("ReceiveMessage")[0]["data"]["body"]
        assert delivered == "a" + "\U0001f600" * 249
        assert connected["A"].of_type("ReceiveWarning")[0]["data"]["original_length"] == 501
