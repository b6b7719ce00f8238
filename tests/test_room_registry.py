"""Tests for RoomRegistry membership and host bookkeeping."""

import threading

import pytest

from rtc_mesh.server.room_registry import RoomRegistry


@pytest.fixture
def registry():
    return RoomRegistry()


class TestJoin:
    """Tests for RoomRegistry.join."""

    def test_first_join_creates_room_with_host(self, registry):
        existing = registry.join("r1", "A")
        assert existing == []
        assert "r1" in registry
        assert registry.members("r1") == ["A"]
        assert registry.host("r1") == "A"

    def test_snapshot_excludes_joiner(self, registry):
        registry.join("r1", "A")
        registry.join("r1", "B")
        assert registry.join("r1", "C") == ["A", "B"]

    def test_n_joins_keep_first_joiner_as_host(self, registry):
        ids = [f"member-{i}" for i in range(10)]
        for member_id in ids:
            registry.join("r1", member_id)
        assert registry.members("r1") == ids
        assert registry.host("r1") == "member-0"

    def test_rejoin_is_idempotent(self, registry):
        registry.join("r1", "A")
        registry.join("r1", "B")
        existing = registry.join("r1", "A")
        assert existing == ["B"]
        assert registry.members("r1") == ["A", "B"]

    def test_rooms_are_independent(self, registry):
        registry.join("r1", "A")
        registry.join("r2", "B")
        assert registry.members("r1") == ["A"]
        assert registry.host("r2") == "B"

    def test_unknown_room_reads_empty(self, registry):
        assert registry.members("nope") == []
        assert registry.host("nope") is None
        assert "nope" not in registry


class TestLeave:
    """Tests for RoomRegistry.leave and host reassignment."""

    def test_host_departure_promotes_earliest_remaining(self, registry):
        for member_id in ("A", "B", "C"):
            registry.join("r1", member_id)
        assert registry.leave("A") == ["r1"]
        assert registry.members("r1") == ["B", "C"]
        assert registry.host("r1") == "B"

    def test_non_host_departure_keeps_host(self, registry):
        for member_id in ("A", "B", "C"):
            registry.join("r1", member_id)
        registry.leave("B")
        assert registry.host("r1") == "A"
        assert registry.members("r1") == ["A", "C"]

    def test_last_member_leaves_empty_room_behind(self, registry):
        registry.join("r1", "A")
        registry.leave("A")
        assert "r1" in registry
        assert registry.members("r1") == []
        assert registry.host("r1") is None

    def test_empty_room_gets_host_on_next_join(self, registry):
        registry.join("r1", "A")
        registry.leave("A")
        registry.join("r1", "B")
        assert registry.host("r1") == "B"

    def test_leave_removes_from_every_room(self, registry):
        registry.join("r1", "A")
        registry.join("r2", "A")
        registry.join("r2", "B")
        assert sorted(registry.leave("A")) == ["r1", "r2"]
        assert registry.host("r2") == "B"

    def test_leave_unknown_member_is_noop(self, registry):
        registry.join("r1", "A")
        assert registry.leave("ghost") == []
        assert registry.members("r1") == ["A"]


class TestSnapshots:
    def test_rooms_returns_copies(self, registry):
        registry.join("r1", "A")
        rooms = registry.rooms()
        rooms["r1"].members.append("intruder")
        rooms["r1"].host = "intruder"
        assert registry.members("r1") == ["A"]
        assert registry.host("r1") == "A"

    def test_members_returns_copy(self, registry):
        registry.join("r1", "A")
        registry.members("r1").append("intruder")
        assert registry.members("r1") == ["A"]


class TestConcurrency:
    def test_concurrent_join_leave_keeps_host_in_membership(self, registry):
        """Threads hammering one room never leave it in an invalid state."""
        errors = []

        def churn(member_id):
            for _ in range(200):
                registry.join("r1", member_id)
                registry.leave(member_id)

        def check():
            for _ in range(500):
                room = registry.rooms().get("r1")
                if room is None:
                    continue
                if room.host is not None and room.host not in room.members:
                    errors.append(f"host {room.host} not in {room.members}")
                if len(set(room.members)) != len(room.members):
                    errors.append(f"duplicates in {room.members}")
                if room.members and room.host is None:
                    errors.append(f"no host for {room.members}")

        threads = [threading.Thread(target=churn, args=(f"m{i}",)) for i in range(4)]
        threads.append(threading.Thread(target=check))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert registry.members("r1") == []
        assert registry.host("r1") is None
