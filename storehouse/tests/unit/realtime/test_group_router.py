"""Tests for GroupRouter membership tracking."""

import pytest

from storehouse.realtime.connection_registry import ConnectionRegistry
from storehouse.realtime.group_router import GroupRouter


@pytest.fixture
def registry():
    registry = ConnectionRegistry()
    registry.add_connection("u1", "T1", "c1")
    registry.add_connection("u2", "T1", "c2")
    return registry


@pytest.fixture
def router(registry):
    return GroupRouter(registry, name="chat")


class TestJoinGroup:
    """Tests for join_group."""

    def test_join_registered_connection(self, router):
        assert router.join_group("c1", "tenant:T1") is True
        assert router.get_members("tenant:T1") == frozenset({"c1"})
        assert router.get_groups("c1") == frozenset({"tenant:T1"})

    def test_join_is_idempotent(self, router):
        router.join_group("c1", "tenant:T1")
        router.join_group("c1", "tenant:T1")

        assert router.get_members("tenant:T1") == frozenset({"c1"})
        assert router.group_count() == 1

    def test_join_unregistered_connection_refused(self, router):
        """Joining before the registry knows the connection violates the ordering contract."""
        assert router.join_group("ghost", "tenant:T1") is False
        assert router.get_members("tenant:T1") == frozenset()
        assert router.group_count() == 0

    def test_join_unnamed_group_refused(self, router):
        assert router.join_group("c1", "") is False


class TestLeaveGroup:
    """Tests for leave_group and leave_all."""

    def test_leave_removes_membership_and_empty_group(self, router):
        router.join_group("c1", "tenant:T1")

        assert router.leave_group("c1", "tenant:T1") is True
        assert router.get_members("tenant:T1") == frozenset()
        assert router.snapshot() == {}
        assert router.get_groups("c1") == frozenset()

    def test_leave_absent_membership_is_noop(self, router):
        router.join_group("c2", "tenant:T1")

        assert router.leave_group("c1", "tenant:T1") is False
        assert router.get_members("tenant:T1") == frozenset({"c2"})

    def test_leave_all(self, router):
        router.join_group("c1", "tenant:T1")
        router.join_group("c1", "user:u1")
        router.join_group("c2", "tenant:T1")

        left = router.leave_all("c1")

        assert left == {"tenant:T1", "user:u1"}
        assert router.get_members("tenant:T1") == frozenset({"c2"})
        assert router.is_member("c1", "user:u1") is False
        assert router.group_count() == 1

    def test_leave_all_for_unknown_connection(self, router):
        assert router.leave_all("ghost") == set()

    def test_members_are_snapshots(self, router):
        router.join_group("c1", "tenant:T1")
        members = router.get_members("tenant:T1")

        router.join_group("c2", "tenant:T1")

        assert members == frozenset({"c1"})
