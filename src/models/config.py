"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MAX_FRAME_SIZE = 10 * 1024 * 1024


@dataclass
class ServerConfig:
    """HTTP/WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    ssl_certfile: Optional[str] = None
    ssl_keyfile: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ServerConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            host=d.get("host", "0.0.0.0"),
            port=d.get("port", 3000),
            environment=d.get("environment", "development"),
            ssl_certfile=d.get("ssl_certfile"),
            ssl_keyfile=d.get("ssl_keyfile"),
            cors_origins=d.get("cors_origins", ["*"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "environment": self.environment,
            "ssl_certfile": self.ssl_certfile,
            "ssl_keyfile": self.ssl_keyfile,
            "cors_origins": self.cors_origins,
        }


@dataclass
class RelayConfig:
    """
    Relay channel configuration.

    passthrough: when True, frames are only forwarded (with a synthetic id);
        when False, frames are also sent to the detection engine.
    outbox_size: per-peer queue bound; messages beyond it are dropped.
    """
    max_frame_size: int = MAX_FRAME_SIZE
    passthrough: bool = True
    outbox_size: int = 256
    analysis_model: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RelayConfig":
        return cls(
            max_frame_size=d.get("max_frame_size", MAX_FRAME_SIZE),
            passthrough=d.get("passthrough", True),
            outbox_size=d.get("outbox_size", 256),
            analysis_model=d.get("analysis_model"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "max_frame_size": self.max_frame_size,
            "passthrough": self.passthrough,
            "outbox_size": self.outbox_size,
        }
        if self.analysis_model is not None:
            d["analysis_model"] = self.analysis_model
        return d


@dataclass
class DetectionConfig:
    """Detection engine configuration."""
    default_model: str = "mobilenet-ssd"
    confidence_threshold: float = 0.3
    max_detections: int = 20
    models_dir: str = "models"
    preload: List[str] = field(default_factory=list)
    models: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            default_model=d.get("default_model", "mobilenet-ssd"),
            confidence_threshold=d.get("confidence_threshold", 0.3),
            max_detections=d.get("max_detections", 20),
            models_dir=d.get("models_dir", "models"),
            preload=d.get("preload") or [],
            models=d.get("models"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "default_model": self.default_model,
            "confidence_threshold": self.confidence_threshold,
            "max_detections": self.max_detections,
            "models_dir": self.models_dir,
            "preload": self.preload,
        }
        if self.models is not None:
            d["models"] = self.models
        return d


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    relay: RelayConfig = field(default_factory=RelayConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    log_path: str = "logs/stream_relay.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from ConfigService)."""
        return cls(
            server=ServerConfig.from_dict(d.get("server", {}) or {}),
            relay=RelayConfig.from_dict(d.get("relay", {}) or {}),
            detection=DetectionConfig.from_dict(d.get("detection", {}) or {}),
            log_path=d.get("log_path", "logs/stream_relay.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or logging)."""
        return {
            "server": self.server.to_dict(),
            "relay": self.relay.to_dict(),
            "detection": self.detection.to_dict(),
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
