"""
Detection relay: fans detection results out to a room.
"""

from __future__ import annotations

import logging
from typing import Any

from relay.transport import PeerTransport, send_to_many
from session.registry import SessionRegistry


class DetectionRelay:
    """
    Broadcasts detection payloads to every member of a room, the originator
    included.

    Payloads are forwarded verbatim. Results supplied by external workers are
    not schema-checked, so a malformed payload reaches every member unchanged.
    """

    def __init__(self, registry: SessionRegistry, transport: PeerTransport):
        self.registry = registry
        self.transport = transport

    def broadcast_detection(self, room: str, payload: Any) -> int:
        members = self.registry.members(room)
        if not members:
            logging.debug(f"No members in {room}, detection not delivered")
            return 0
        return send_to_many(self.transport, members, "detection", payload)
