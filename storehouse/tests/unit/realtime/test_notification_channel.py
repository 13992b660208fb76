"""
Tests for NotificationChannel.

Audience selection, best-effort dropping, message formatting and the
JoinGroup/LeaveGroup client calls.
"""

import pytest
import pytest_asyncio

from storehouse.realtime.connection_models import Channel
from storehouse.realtime.notification_channel import build_notification, status_message
from storehouse.schemas.notifications import OrderAssignedEvent, OrderCreatedEvent, OrderStatusChangedEvent


def created_event(**overrides) -> OrderCreatedEvent:
    values = {
        "order_id": 42,
        "tenant_id": "T1",
        "actor_name": "Alice",
        "client_name": "Acme",
        "total_price": 10.5,
    }
    values.update(overrides)
    return OrderCreatedEvent(**values)


def status_event(**overrides) -> OrderStatusChangedEvent:
    values = {
        "order_id": 42,
        "tenant_id": "T1",
        "actor_name": "Bob",
        "old_status": "Created",
        "new_status": "Shipped",
    }
    values.update(overrides)
    return OrderStatusChangedEvent(**values)


@pytest_asyncio.fixture
async def dashboards(notification_channel, make_identity, make_sender):
    """Manager M1 and worker W1 of company T1, manager M2 of company T2."""
    senders = {}
    for connection_id, user_id, tenant_id in (("m1", "M1", "T1"), ("w1", "W1", "T1"), ("m2", "M2", "T2")):
        senders[connection_id] = make_sender(connection_id)
        await notification_channel.connect(make_identity(user_id, tenant_id), connection_id, senders[connection_id])
    for sender in senders.values():
        sender.events.clear()
    return senders


class TestPublish:
    """Tests for publish."""

    @pytest.mark.asyncio
    async def test_no_live_audience_is_dropped_silently(self, notification_channel, make_identity, make_sender):
        """Publishing with zero live connections raises nothing and delivers nothing."""
        bystander = make_sender()
        await notification_channel.connect(make_identity("X", "T9"), "x", bystander)
        bystander.events.clear()

        dispatch = await notification_channel.publish(created_event())

        assert dispatch.dropped is True
        assert dispatch.total_targets == 0
        assert dispatch.groups == ["tenant:T1"]
        assert bystander.events == []

    @pytest.mark.asyncio
    async def test_created_reaches_owning_company_only(self, notification_channel, dashboards):
        dispatch = await notification_channel.publish(created_event())

        assert dispatch.type == "created"
        assert dispatch.successful_deliveries == 2
        for connection_id in ("m1", "w1"):
            events = dashboards[connection_id].of_type("ReceiveOrderCreated")
            assert len(events) == 1
            notification = events[0]["data"]
            assert notification["notification_id"] == dispatch.notification_id
            assert notification["order_id"] == 42
            assert notification["actor"] == "Alice"
            assert notification["message"] == "Order #42 was created by Alice for Acme (total 10.50)."
        assert dashboards["m2"].events == []

    @pytest.mark.asyncio
    async def test_status_change_event_type(self, notification_channel, dashboards):
        await notification_channel.publish(status_event(description="Left the warehouse"))

        events = dashboards["m1"].of_type("ReceiveOrderStatusUpdate")
        assert events[0]["data"]["type"] == "statusChanged"
        assert events[0]["data"]["note"] == "Left the warehouse"
        assert events[0]["data"]["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_audience_group_restricts_delivery(self, notification_channel, dashboards):
        await notification_channel.join_group("m1", "managers")
        dashboards["m1"].events.clear()

        dispatch = await notification_channel.publish(status_event(audience_group="managers"))

        assert dispatch.groups == ["tenant:T1:managers"]
        assert len(dashboards["m1"].of_type("ReceiveOrderStatusUpdate")) == 1
        assert dashboards["w1"].events == []

    @pytest.mark.asyncio
    async def test_assigned_reaches_assignees_of_owning_company(
        self, notification_channel, dashboards, make_identity, make_sender
    ):
        # W1 also has a dashboard open under another company; it must not see T1's order
        foreign_tab = make_sender()
        await notification_channel.connect(make_identity("W1", "T2"), "w1-foreign", foreign_tab)
        foreign_tab.events.clear()

        event = OrderAssignedEvent(order_id=7, tenant_id="T1", client_name="Acme", assignee_user_ids=["W1", "W1"])
        dispatch = await notification_channel.publish(event)

        assert dispatch.groups == ["user:W1"]
        assert dispatch.total_targets == 1
        assigned = dashboards["w1"].of_type("ReceiveOrderAssigned")
        assert assigned[0]["data"]["message"] == "Order #7 for Acme was assigned to you."
        assert dashboards["m1"].events == []
        assert foreign_tab.events == []

    @pytest.mark.asyncio
    async def test_assigned_is_routed_through_user_group(self, notification_channel, directory, dashboards):
        directory.leave_group("w1", "user:W1")

        event = OrderAssignedEvent(order_id=7, tenant_id="T1", client_name="Acme", assignee_user_ids=["W1"])
        dispatch = await notification_channel.publish(event)

        assert dispatch.dropped is True
        assert dashboards["w1"].events == []

    @pytest.mark.asyncio
    async def test_each_notification_gets_fresh_id(self, notification_channel, dashboards):
        first = await notification_channel.publish(created_event())
        second = await notification_channel.publish(created_event())

        assert first.notification_id != second.notification_id

    @pytest.mark.asyncio
    async def test_failed_recipient_does_not_raise(self, notification_channel, dashboards, make_identity, make_sender):
        await notification_channel.connect(make_identity("M3", "T1"), "broken", make_sender(fail=True))

        dispatch = await notification_channel.publish(created_event())

        assert dispatch.failed_deliveries == 1
        assert dispatch.successful_deliveries == 2


class TestStatusMessage:
    """Tests for human-readable formatting."""

    def test_status_change_with_old_status(self):
        assert status_message(status_event()) == "Order #42 status changed from Created to Shipped by Bob."

    def test_status_change_without_old_status(self):
        assert status_message(status_event(old_status=None)) == "Order #42 status changed to Shipped by Bob."

    def test_assigned_uses_custom_message(self):
        event = OrderAssignedEvent(
            order_id=1, tenant_id="T1", client_name="Acme", assignee_user_ids=["W1"], message="Please pack today"
        )
        assert status_message(event) == "Please pack today"

    def test_build_notification_fields(self):
        notification = build_notification(created_event(note="Fragile"))

        assert notification.type == "created"
        assert notification.note == "Fragile"
        assert len(notification.notification_id) == 32


class TestGroupCalls:
    """Tests for JoinGroup/LeaveGroup client calls."""

    @pytest.mark.asyncio
    async def test_join_is_scoped_to_callers_company(self, notification_channel, directory, dashboards):
        assert await notification_channel.join_group("m2", "managers") is True

        router = directory.router(Channel.NOTIFICATIONS)
        assert router.is_member("m2", "tenant:T2:managers")
        assert not router.is_member("m2", "tenant:T1:managers")
        joined = dashboards["m2"].of_type("JoinedGroup")
        assert joined[0]["data"] == {"group": "managers"}

    @pytest.mark.asyncio
    async def test_cannot_reach_other_company_through_group_name(self, notification_channel, dashboards):
        """A T2 client naming a T1-looking group still lands in its own company's space."""
        await notification_channel.join_group("m2", "managers")

        await notification_channel.publish(status_event(audience_group="managers"))

        assert dashboards["m2"].of_type("ReceiveOrderStatusUpdate") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "a" * 65, "tenant:T1", "has space", None, 5])
    async def test_invalid_group_names_rejected(self, notification_channel, directory, dashboards, name):
        assert await notification_channel.join_group("m1", name) is False

        errors = dashboards["m1"].of_type("ReceiveError")
        assert errors[0]["data"]["error_type"] == "invalid_group_name"
        assert directory.router(Channel.NOTIFICATIONS).get_groups("m1") == frozenset({"tenant:T1", "user:M1"})

    @pytest.mark.asyncio
    async def test_leave_group(self, notification_channel, directory, dashboards):
        await notification_channel.join_group("m1", "managers")

        assert await notification_channel.leave_group("m1", "managers") is True
        assert await notification_channel.leave_group("m1", "managers") is False
        assert len(dashboards["m1"].of_type("LeftGroup")) == 2
        assert not directory.router(Channel.NOTIFICATIONS).is_member("m1", "tenant:T1:managers")

    @pytest.mark.asyncio
    async def test_join_from_unregistered_connection(self, notification_channel):
        assert await notification_channel.join_group("ghost", "managers") is False
