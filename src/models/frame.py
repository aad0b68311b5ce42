"""
Frame model for payloads submitted through the relay.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Frame:
    """
    Metadata for one frame payload that passed the relay size check.

    The payload itself is not kept; the relay treats it as opaque.

    Attributes:
        room: Room the frame was submitted to.
        from_peer: Peer id of the submitting connection.
        size: Raw payload length.
        frame_id: Synthetic id, set in pass-through mode or when the frame is
            routed to the detection engine.
        timestamp: Unix timestamp when the relay accepted the frame.
    """
    room: str
    from_peer: str
    size: int
    frame_id: Optional[str] = None
    timestamp: float = 0.0


class FrameIdGenerator:
    """
    Produces ``auto_<milliseconds>`` ids that never repeat or go backwards,
    even when several frames arrive within the same millisecond.
    """

    def __init__(self, prefix: str = "auto_"):
        self._prefix = prefix
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            now_ms = int(time.time() * 1000)
            self._last = now_ms if now_ms > self._last else self._last + 1
            return f"{self._prefix}{self._last}"
