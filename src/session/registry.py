"""
Session registry: rooms and the peers that joined them.

One instance is owned by the runtime context and injected into every relay;
there is no module-level room map.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from domain.errors import ValidationError

ROOM_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")


class Role(str, Enum):
    SENDER = "sender"
    RECEIVER = "receiver"

    @classmethod
    def parse(cls, value: object) -> "Role":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Invalid role: {value!r} (expected 'sender' or 'receiver')")


@dataclass
class Room:
    """A named group of peers, split by role."""
    room_id: str
    senders: Set[str] = field(default_factory=set)
    receivers: Set[str] = field(default_factory=set)

    @property
    def members(self) -> Set[str]:
        return self.senders | self.receivers

    @property
    def is_empty(self) -> bool:
        return not self.senders and not self.receivers

    def role_of(self, peer_id: str) -> Optional[Role]:
        if peer_id in self.senders:
            return Role.SENDER
        if peer_id in self.receivers:
            return Role.RECEIVER
        return None

    def discard(self, peer_id: str) -> bool:
        """Remove the peer from both sets; True if it was present."""
        present = peer_id in self.senders or peer_id in self.receivers
        self.senders.discard(peer_id)
        self.receivers.discard(peer_id)
        return present


def validate_room_name(room: object) -> str:
    if not isinstance(room, str) or not ROOM_NAME_PATTERN.match(room):
        raise ValidationError(f"Invalid room name: {room!r}")
    return room


class SessionRegistry:
    """
    Tracks room membership and per-room roles.

    Joining is idempotent: a repeated join with the same role is a no-op, and
    a join with the other role moves the peer to that role's set. A peer may
    be a member of several rooms at once.

    Mutations assume a single writer (the event loop). A multi-threaded host
    must serialize calls.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        # peer -> rooms in join order; the last entry is the peer's default room
        self._peer_rooms: Dict[str, List[str]] = {}

    def join(self, peer_id: str, room: str, role) -> Room:
        room = validate_room_name(room)
        role = Role.parse(role)

        entry = self._rooms.get(room)
        if entry is None:
            entry = Room(room_id=room)
            self._rooms[room] = entry
            logging.debug(f"Room created: {room}")

        if role is Role.SENDER:
            entry.receivers.discard(peer_id)
            entry.senders.add(peer_id)
        else:
            entry.senders.discard(peer_id)
            entry.receivers.add(peer_id)

        joined = self._peer_rooms.setdefault(peer_id, [])
        if room in joined:
            joined.remove(room)
        joined.append(room)

        logging.info(f"{peer_id} joined {room} as {role.value}")
        return entry

    def leave(self, peer_id: str) -> Set[str]:
        """
        Remove the peer from every room.

        Returns:
            Ids of the rooms the peer was removed from, including rooms that
            were deleted because they became empty.
        """
        affected: Set[str] = set()
        for room_id in list(self._rooms):
            entry = self._rooms[room_id]
            if entry.discard(peer_id):
                affected.add(room_id)
            if entry.is_empty:
                del self._rooms[room_id]
                logging.debug(f"Room removed: {room_id}")
        self._peer_rooms.pop(peer_id, None)
        return affected

    def stats(self) -> Dict[str, Dict[str, int]]:
        return {
            room_id: {
                "senders": len(entry.senders),
                "receivers": len(entry.receivers),
                "total": len(entry.senders) + len(entry.receivers),
            }
            for room_id, entry in self._rooms.items()
        }

    def get(self, room: str) -> Optional[Room]:
        return self._rooms.get(room)

    def members(self, room: str) -> Set[str]:
        entry = self._rooms.get(room)
        return set(entry.members) if entry else set()

    def role_of(self, peer_id: str, room: str) -> Optional[Role]:
        entry = self._rooms.get(room)
        return entry.role_of(peer_id) if entry else None

    def rooms_of(self, peer_id: str) -> List[str]:
        return list(self._peer_rooms.get(peer_id, []))

    def last_room(self, peer_id: str) -> Optional[str]:
        joined = self._peer_rooms.get(peer_id)
        return joined[-1] if joined else None

    def __contains__(self, room: object) -> bool:
        return room in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
