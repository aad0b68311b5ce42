"""
Tests for room membership and roles.
"""

import pytest

from domain.errors import ValidationError
from session.registry import Role, SessionRegistry, validate_room_name


class TestJoin:
    def test_join_creates_room_with_role(self, registry):
        room = registry.join("s1", "demo", "sender")

        assert room.senders == {"s1"}
        assert room.receivers == set()
        assert "demo" in registry
        assert registry.role_of("s1", "demo") is Role.SENDER

    def test_duplicate_join_is_idempotent(self, registry):
        registry.join("r1", "demo", "receiver")
        registry.join("r1", "demo", "receiver")

        assert registry.members("demo") == {"r1"}
        assert registry.stats()["demo"] == {"senders": 0, "receivers": 1, "total": 1}

    def test_rejoin_with_other_role_moves_peer(self, registry):
        registry.join("p1", "demo", "receiver")
        room = registry.join("p1", "demo", "sender")

        assert room.senders == {"p1"}
        assert room.receivers == set()

    def test_peer_can_be_in_several_rooms(self, registry):
        registry.join("p1", "a", "sender")
        registry.join("p1", "b", "receiver")

        assert registry.rooms_of("p1") == ["a", "b"]
        assert registry.last_room("p1") == "b"

    def test_rejoining_makes_room_the_default_again(self, registry):
        registry.join("p1", "a", "sender")
        registry.join("p1", "b", "sender")
        registry.join("p1", "a", "sender")

        assert registry.last_room("p1") == "a"

    @pytest.mark.parametrize("room", ["", "has space", "x" * 51, None, 42, "semi;colon"])
    def test_invalid_room_name_rejected(self, registry, room):
        with pytest.raises(ValidationError):
            registry.join("p1", room, "sender")
        assert len(registry) == 0

    def test_invalid_role_rejected(self, registry):
        with pytest.raises(ValidationError):
            registry.join("p1", "demo", "viewer")
        assert "demo" not in registry

    def test_valid_room_names(self):
        assert validate_room_name("demo_room-1") == "demo_room-1"
        assert validate_room_name("x" * 50) == "x" * 50


class TestLeave:
    def test_leave_removes_peer_everywhere(self, registry):
        registry.join("p1", "a", "sender")
        registry.join("p1", "b", "receiver")
        registry.join("p2", "a", "receiver")

        affected = registry.leave("p1")

        assert affected == {"a", "b"}
        assert registry.members("a") == {"p2"}
        assert registry.last_room("p1") is None

    def test_empty_room_is_deleted(self, registry):
        registry.join("p1", "solo", "sender")

        affected = registry.leave("p1")

        assert affected == {"solo"}
        assert "solo" not in registry
        assert registry.stats() == {}

    def test_leave_unknown_peer_is_noop(self, registry):
        registry.join("p1", "demo", "sender")

        assert registry.leave("ghost") == set()
        assert registry.members("demo") == {"p1"}

    def test_every_present_peer_is_in_exactly_one_role_set(self, registry):
        registry.join("p1", "demo", "sender")
        registry.join("p2", "demo", "receiver")
        registry.join("p1", "demo", "receiver")
        registry.leave("p2")

        room = registry.get("demo")
        assert room.senders & room.receivers == set()
        assert room.members == {"p1"}


def test_stats_counts_per_role():
    registry = SessionRegistry()
    registry.join("s1", "demo", "sender")
    registry.join("r1", "demo", "receiver")
    registry.join("r2", "demo", "receiver")

    assert registry.stats() == {"demo": {"senders": 1, "receivers": 2, "total": 3}}
