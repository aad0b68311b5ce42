"""
Typed models for the stream relay.

These are plain dataclasses shared by the relay, the detection engine and the
web layer. Use the adapter methods to convert from raw dicts.
"""

from .frame import Frame, FrameIdGenerator
from .detection import Detection, BoundingBox, detections_to_dicts
from .config import (
    Config,
    ServerConfig,
    RelayConfig,
    DetectionConfig,
    MAX_FRAME_SIZE,
)

__all__ = [
    # Frame
    "Frame",
    "FrameIdGenerator",
    # Detection
    "Detection",
    "BoundingBox",
    "detections_to_dicts",
    # Config
    "Config",
    "ServerConfig",
    "RelayConfig",
    "DetectionConfig",
    "MAX_FRAME_SIZE",
]
