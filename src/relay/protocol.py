"""
Channel protocol (v1): decodes inbound peer messages and dispatches them to
the relays.

Every message is a JSON object ``{"v": 1, "event": <name>, "data": {...}}``.
``v`` may be omitted. Failures are answered with an ``error`` event to the
offending peer only; nothing is broadcast on error.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Optional

from domain.errors import RelayError, ValidationError
from relay.detections import DetectionRelay
from relay.frames import FrameRelay
from relay.signaling import SignalingRelay
from relay.transport import PROTOCOL_VERSION, PeerTransport
from session.registry import SessionRegistry, validate_room_name

UNKNOWN_EVENT = "UNKNOWN_EVENT"
UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"

Handler = Callable[[str, Dict[str, Any]], None]


class ChannelProtocol:
    def __init__(
        self,
        registry: SessionRegistry,
        transport: PeerTransport,
        signaling: SignalingRelay,
        frames: FrameRelay,
        detections: DetectionRelay,
    ):
        self.registry = registry
        self.transport = transport
        self.signaling = signaling
        self.frames = frames
        self.detections = detections
        self._handlers: Dict[str, Handler] = {
            "join-room": self._on_join,
            "sender-ready": self._on_sender_ready,
            "offer": self._on_offer,
            "answer": self._on_answer,
            "ice-candidate": self._on_ice_candidate,
            "frame-data": self._on_frame_data,
            "frame_meta": self._on_frame_meta,
            "detection": self._on_detection,
        }

    def welcome(self, peer_id: str) -> None:
        self.transport.send(peer_id, "welcome", {"peerId": peer_id, "version": PROTOCOL_VERSION})

    def handle_text(self, peer_id: str, text: str) -> None:
        try:
            message = json.loads(text)
        except ValueError:
            self._error(peer_id, ValidationError.code, "Message is not valid JSON")
            return
        self.handle(peer_id, message)

    def handle(self, peer_id: str, message: Any) -> None:
        if not isinstance(message, dict):
            self._error(peer_id, ValidationError.code, "Message must be a JSON object")
            return

        version = message.get("v", PROTOCOL_VERSION)
        if version != PROTOCOL_VERSION:
            self._error(peer_id, UNSUPPORTED_VERSION, f"Unsupported protocol version: {version!r}")
            return

        event = message.get("event")
        handler = self._handlers.get(event) if isinstance(event, str) else None
        if handler is None:
            self._error(peer_id, UNKNOWN_EVENT, f"Unknown event: {event!r}")
            return

        data = message.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            self._error(peer_id, ValidationError.code, f"'{event}' data must be an object")
            return

        try:
            handler(peer_id, data)
        except RelayError as e:
            logging.info(f"Rejected {event} from {peer_id}: {e.message}")
            self.transport.send(peer_id, "error", e.to_dict())

    def _error(self, peer_id: str, code: str, message: str) -> None:
        self.transport.send(peer_id, "error", {"code": code, "message": message})

    def _room(self, peer_id: str, data: Dict[str, Any], required: bool = True) -> Optional[str]:
        """The explicit ``room`` field, else the peer's last joined room."""
        if data.get("room") is not None:
            room = validate_room_name(data["room"])
            if peer_id not in self.registry.members(room):
                raise ValidationError(f"Not a member of room {room}")
            return room
        room = self.registry.last_room(peer_id)
        if room is None and required:
            raise ValidationError("Join a room first")
        return room

    @staticmethod
    def _target(data: Dict[str, Any]) -> Optional[str]:
        to = data.get("to")
        if to is not None and not isinstance(to, str):
            raise ValidationError("'to' must be a peer id")
        return to or None

    @staticmethod
    def _field(data: Dict[str, Any], name: str) -> Any:
        if data.get(name) is None:
            raise ValidationError(f"Missing '{name}'")
        return data[name]

    def _on_join(self, peer_id: str, data: Dict[str, Any]) -> None:
        room = validate_room_name(data.get("room"))
        self.signaling.join(peer_id, room, data.get("role"))
        # Acknowledge to the joiner with the current membership.
        entry = self.registry.get(room)
        self.transport.send(
            peer_id,
            "room-joined",
            {
                "room": room,
                "role": entry.role_of(peer_id).value,
                "peers": sorted(entry.members - {peer_id}),
            },
        )

    def _on_sender_ready(self, peer_id: str, data: Dict[str, Any]) -> None:
        self.signaling.forward_ready(peer_id, self._room(peer_id, data))

    def _on_offer(self, peer_id: str, data: Dict[str, Any]) -> None:
        offer = self._field(data, "offer")
        to = self._target(data)
        self.signaling.forward_offer(peer_id, self._room(peer_id, data, required=to is None), to, offer)

    def _on_answer(self, peer_id: str, data: Dict[str, Any]) -> None:
        answer = self._field(data, "answer")
        to = self._target(data)
        self.signaling.forward_answer(peer_id, self._room(peer_id, data, required=to is None), to, answer)

    def _on_ice_candidate(self, peer_id: str, data: Dict[str, Any]) -> None:
        candidate = self._field(data, "candidate")
        to = self._target(data)
        self.signaling.forward_ice_candidate(peer_id, self._room(peer_id, data, required=to is None), to, candidate)

    def _on_frame_data(self, peer_id: str, data: Dict[str, Any]) -> None:
        payload = self._field(data, "frameData")
        if not isinstance(payload, str):
            raise ValidationError("'frameData' must be a string")
        self.frames.forward_frame(self._room(peer_id, data), peer_id, payload)

    def _on_frame_meta(self, peer_id: str, data: Dict[str, Any]) -> None:
        self.frames.forward_frame_meta(self._room(peer_id, data), peer_id, data)

    def _on_detection(self, peer_id: str, data: Dict[str, Any]) -> None:
        self.detections.broadcast_detection(self._room(peer_id, data), data)
