from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from inference.backend import InferenceBackend
from inference.engine import DetectionEngine
from inference.registry import BackendKind
from models.config import Config
from relay.detections import DetectionRelay
from relay.frames import FrameRelay
from relay.protocol import ChannelProtocol
from relay.signaling import SignalingRelay
from relay.transport import PeerConnections
from session.registry import SessionRegistry

APP_VERSION = "0.1.0"


@dataclass
class RuntimeContext:
    """Holds runtime state and service references; avoids global singletons."""

    config: Config
    registry: SessionRegistry
    connections: PeerConnections
    engine: DetectionEngine
    signaling: SignalingRelay
    frames: FrameRelay
    detections: DetectionRelay
    protocol: ChannelProtocol
    config_path: Optional[str] = None

    # Observability
    system_stats: Dict[str, Any] = field(default_factory=dict)

    def get_system_stats_copy(self) -> Dict[str, Any]:
        stats = dict(self.system_stats)
        stats["connected_peers"] = len(self.connections)
        stats["rooms"] = len(self.registry)
        return stats


def build_context(
    config: Config,
    config_path: Optional[str] = None,
    backends: Optional[Mapping[BackendKind, InferenceBackend]] = None,
) -> RuntimeContext:
    """Wire the registry, transport, engine and relays for one server process."""
    registry = SessionRegistry()
    connections = PeerConnections(outbox_size=config.relay.outbox_size)
    engine = DetectionEngine.from_config(config.detection, backends=backends)
    signaling = SignalingRelay(registry, connections)
    detections = DetectionRelay(registry, connections)
    frames = FrameRelay(
        registry,
        connections,
        max_frame_size=config.relay.max_frame_size,
        passthrough=config.relay.passthrough,
        engine=engine,
        detections=detections,
        analysis_model=config.relay.analysis_model,
    )
    protocol = ChannelProtocol(registry, connections, signaling, frames, detections)
    return RuntimeContext(
        config=config,
        registry=registry,
        connections=connections,
        engine=engine,
        signaling=signaling,
        frames=frames,
        detections=detections,
        protocol=protocol,
        config_path=config_path,
        system_stats={"start_time": time.time()},
    )
