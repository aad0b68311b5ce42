"""
Pytest configuration and shared fixtures.
"""

import base64
import os
import sys
import threading
import time
from typing import Any, List, Optional, Set, Tuple

import cv2
import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from inference.backend import RawOutput  # noqa: E402
from session.registry import SessionRegistry  # noqa: E402


class RecordingTransport:
    """PeerTransport that records every queued event instead of sending it."""

    def __init__(self, connected: Optional[Set[str]] = None):
        self.connected = connected
        self.sent: List[Tuple[str, str, Any]] = []

    def send(self, peer_id: str, event: str, data: Any) -> bool:
        if self.connected is not None and peer_id not in self.connected:
            return False
        self.sent.append((peer_id, event, data))
        return True

    def events_for(self, peer_id: str, event: Optional[str] = None) -> List[Any]:
        return [d for p, e, d in self.sent if p == peer_id and (event is None or e == event)]

    def recipients(self, event: str) -> Set[str]:
        return {p for p, e, _ in self.sent if e == event}


class CountingBackend:
    """Fake native backend: counts loads and returns fixed SSD rows."""

    output_format = None

    def __init__(self, rows=None, load_delay: float = 0.05, fail_loads: int = 0):
        self.rows = rows if rows is not None else [[0, 1, 0.9, 0.1, 0.2, 0.5, 0.6]]
        self.load_delay = load_delay
        self.fail_loads = fail_loads
        self.loads = 0
        self.runs = 0
        self._lock = threading.Lock()

    def load(self, path: str):
        with self._lock:
            self.loads += 1
            attempt = self.loads
        time.sleep(self.load_delay)
        if attempt <= self.fail_loads:
            raise RuntimeError("corrupt model file")
        return {"path": path}

    def run(self, handle, tensor):
        self.runs += 1
        rows = np.asarray(self.rows, dtype=np.float32).reshape(1, 1, -1, 7)
        return RawOutput(outputs={"detection_out": rows})


def encode_image(width: int = 10, height: int = 10, ext: str = ".jpg") -> bytes:
    rng = np.random.default_rng(7)
    image = rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)
    ok, buf = cv2.imencode(ext, image)
    assert ok
    return buf.tobytes()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def jpeg_bytes():
    return encode_image()


@pytest.fixture
def jpeg_b64(jpeg_bytes):
    """Base64 10x10 JPEG test image."""
    return base64.b64encode(jpeg_bytes).decode("ascii")


@pytest.fixture
def models_dir(tmp_path):
    """An empty models directory: every registry model falls back to simulated."""
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
server:
  host: "127.0.0.1"
  port: 3000
  environment: "development"

relay:
  max_frame_size: 10485760
  passthrough: true
  outbox_size: 256

detection:
  default_model: "mobilenet-ssd"
  confidence_threshold: 0.3
  max_detections: 20
  models_dir: "models"

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "server": {
            "host": "0.0.0.0",
            "port": 3000,
            "environment": "development",
            "cors_origins": ["*"],
        },
        "relay": {
            "max_frame_size": 10 * 1024 * 1024,
            "passthrough": True,
            "outbox_size": 256,
        },
        "detection": {
            "default_model": "mobilenet-ssd",
            "confidence_threshold": 0.3,
            "max_detections": 20,
            "models_dir": "models",
            "preload": [],
        },
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
