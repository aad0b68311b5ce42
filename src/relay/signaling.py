"""
Signaling relay: routes WebRTC negotiation messages between peers.

Offers, answers and ICE candidates are opaque; they are never inspected,
only addressed. A message with an explicit target goes to that peer alone;
otherwise it is broadcast to every other member of the room.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Set

from relay.transport import PeerTransport, send_to_many
from session.registry import Role, SessionRegistry


class SignalingRelay:
    """
    Membership notifications plus offer/answer/ICE routing.

    Every forward_* method returns the number of peers the message was queued
    for. Delivery is fire-and-forget: there is no acknowledgement or retry.
    """

    def __init__(self, registry: SessionRegistry, transport: PeerTransport):
        self.registry = registry
        self.transport = transport

    def join(self, peer_id: str, room: str, role: Any) -> int:
        previous = self.registry.role_of(peer_id, room)
        entry = self.registry.join(peer_id, room, role)
        joined_role = entry.role_of(peer_id) or Role.parse(role)
        if previous is joined_role:
            # Repeat join with the same role: membership did not change.
            return 0
        others = entry.members - {peer_id}
        return send_to_many(
            self.transport,
            others,
            "user-joined",
            {"peerId": peer_id, "role": joined_role.value},
        )

    def leave(self, peer_id: str) -> Set[str]:
        """Drop the peer from the registry and tell each affected room."""
        affected = self.registry.leave(peer_id)
        for room in sorted(affected):
            send_to_many(self.transport, self.registry.members(room), "user-left", {"peerId": peer_id})
        if affected:
            logging.info(f"{peer_id} left rooms: {', '.join(sorted(affected))}")
        return affected

    def forward_ready(self, peer_id: str, room: str) -> int:
        logging.info(f"Sender {peer_id} ready in {room}")
        return self._route(peer_id, room, None, "sender-ready", {"senderId": peer_id})

    def forward_offer(self, from_peer: str, room: str, to_peer: Optional[str], sdp: Any) -> int:
        logging.info(f"Forwarding offer from {from_peer} to {to_peer or 'room ' + room}")
        return self._route(from_peer, room, to_peer, "offer", {"offer": sdp, "from": from_peer})

    def forward_answer(self, from_peer: str, room: str, to_peer: Optional[str], sdp: Any) -> int:
        logging.info(f"Forwarding answer from {from_peer} to {to_peer or 'room ' + room}")
        return self._route(from_peer, room, to_peer, "answer", {"answer": sdp, "from": from_peer})

    def forward_ice_candidate(self, from_peer: str, room: str, to_peer: Optional[str], candidate: Any) -> int:
        logging.debug(f"ICE candidate from {from_peer} to {to_peer or 'room ' + room}")
        return self._route(
            from_peer, room, to_peer, "ice-candidate", {"candidate": candidate, "from": from_peer}
        )

    def _route(self, from_peer: str, room: Optional[str], to_peer: Optional[str], event: str, data: dict) -> int:
        if to_peer:
            return 1 if self.transport.send(to_peer, event, data) else 0
        others = self.registry.members(room) - {from_peer} if room else set()
        return send_to_many(self.transport, others, event, data)
