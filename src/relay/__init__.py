from .detections import DetectionRelay
from .frames import FrameRelay
from .protocol import ChannelProtocol
from .signaling import SignalingRelay
from .transport import PROTOCOL_VERSION, PeerConnections, PeerTransport, envelope, send_to_many

__all__ = [
    "ChannelProtocol",
    "DetectionRelay",
    "FrameRelay",
    "PROTOCOL_VERSION",
    "PeerConnections",
    "PeerTransport",
    "SignalingRelay",
    "envelope",
    "send_to_many",
]
