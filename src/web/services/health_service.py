from __future__ import annotations

import platform
import time
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass
class HealthService:
    version: str
    stats: Dict[str, Any] = field(default_factory=dict)

    def get_health_summary(self) -> Dict[str, Any]:
        now = time.time()
        start_time = self.stats.get("start_time")
        return {
            "status": "ok",
            "timestamp": now,
            "version": self.version,
            "platform": platform.platform(),
            "python": platform.python_version(),
            "uptime_seconds": int(now - start_time) if start_time else None,
            "connected_peers": self.stats.get("connected_peers", 0),
            "rooms": self.stats.get("rooms", 0),
        }
