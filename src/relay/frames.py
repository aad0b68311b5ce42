"""
Frame relay: forwards frame metadata and frame payloads within a room.

Two operating modes:
- pass-through (default): frames are broadcast to the other members.
- analysis: frames are broadcast and also handed to the detection engine in
  the background; results go out through the detection relay.

Either way each forwarded frame carries a synthetic ``frameId``; in analysis
mode the matching ``detection`` event repeats it.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any, Optional, Set, Union

from domain.errors import InferenceFailure, RelayError
from models.config import MAX_FRAME_SIZE
from models.detection import detections_to_dicts
from models.frame import Frame, FrameIdGenerator
from relay.detections import DetectionRelay
from relay.transport import PeerTransport, send_to_many
from session.registry import SessionRegistry

Payload = Union[str, bytes]


class FrameRelay:
    def __init__(
        self,
        registry: SessionRegistry,
        transport: PeerTransport,
        max_frame_size: int = MAX_FRAME_SIZE,
        passthrough: bool = True,
        engine: Any = None,
        detections: Optional[DetectionRelay] = None,
        analysis_model: Optional[str] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.max_frame_size = max_frame_size
        self.passthrough = passthrough
        self.engine = engine
        self.detections = detections
        self.analysis_model = analysis_model
        self._ids = FrameIdGenerator()
        self._pending: Set[asyncio.Task] = set()

    @property
    def analysis_enabled(self) -> bool:
        return not self.passthrough and self.engine is not None and self.detections is not None

    def forward_frame_meta(self, room: str, from_peer: str, meta: Any) -> int:
        return send_to_many(self.transport, self._others(room, from_peer), "frame_meta", meta)

    def forward_frame(self, room: str, from_peer: str, payload: Optional[Payload]) -> Optional[Frame]:
        """
        Forward one frame to the other room members.

        Returns:
            The accepted Frame, or None if the payload was dropped for size.
        """
        size = len(payload) if payload else 0
        if size > self.max_frame_size:
            logging.warning(
                f"Frame from {from_peer} in {room} too large ({size} > {self.max_frame_size} bytes), dropping"
            )
            return None

        frame_id = self._ids.next()
        data = {"frameData": payload, "from": from_peer, "frameId": frame_id}
        send_to_many(self.transport, self._others(room, from_peer), "frame-data", data)

        frame = Frame(room=room, from_peer=from_peer, size=size, frame_id=frame_id, timestamp=time.time())
        if self.analysis_enabled and payload:
            self._schedule_analysis(frame, payload)
        return frame

    async def drain(self) -> None:
        """Wait for every in-flight analysis task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _others(self, room: str, from_peer: str) -> Set[str]:
        return self.registry.members(room) - {from_peer}

    def _schedule_analysis(self, frame: Frame, payload: Payload) -> None:
        if isinstance(payload, (bytes, bytearray)):
            payload = base64.b64encode(payload).decode("ascii")
        task = asyncio.get_running_loop().create_task(self._analyze(frame, payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _analyze(self, frame: Frame, image_b64: str) -> None:
        model_id = self.analysis_model or self.engine.default_model
        try:
            detections = await self.engine.detect(image_b64, model_id)
        except RelayError as e:
            logging.warning(f"Analysis of frame {frame.frame_id} failed: {e.code}: {e.message}")
            self._report(frame, e)
            return
        except Exception as e:
            logging.error(f"Analysis of frame {frame.frame_id} crashed: {e}", exc_info=e)
            self._report(frame, InferenceFailure(f"Detection failed: {e}"))
            return
        self.detections.broadcast_detection(
            frame.room,
            {
                "frameId": frame.frame_id,
                "from": frame.from_peer,
                "modelType": model_id,
                "detections": detections_to_dicts(detections),
                "timestamp": time.time(),
            },
        )

    def _report(self, frame: Frame, error: RelayError) -> None:
        self.transport.send(frame.from_peer, "error", {**error.to_dict(), "frameId": frame.frame_id})
