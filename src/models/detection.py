"""
Detection models for object detection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    """
    A bounding box in normalized image coordinates.

    All coordinates are fractions of the input image size in [0, 1],
    regardless of which backend produced them. Use ``to_pixels`` to convert
    for consumers that draw in pixel space.

    Attributes:
        x1: Left edge.
        y1: Top edge.
        x2: Right edge.
        y2: Bottom edge.
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def center(self) -> Tuple[float, float]:
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_list(self) -> List[float]:
        """Return as [x1, y1, x2, y2]."""
        return [self.x1, self.y1, self.x2, self.y2]

    def clipped(self) -> "BoundingBox":
        """Return a copy with every coordinate clamped to [0, 1]."""
        return BoundingBox(
            x1=min(max(self.x1, 0.0), 1.0),
            y1=min(max(self.y1, 0.0), 1.0),
            x2=min(max(self.x2, 0.0), 1.0),
            y2=min(max(self.y2, 0.0), 1.0),
        )

    def to_pixels(self, width: int, height: int) -> Tuple[int, int, int, int]:
        """Convert to integer pixel coordinates for an image of the given size."""
        return (
            int(round(self.x1 * width)),
            int(round(self.y1 * height)),
            int(round(self.x2 * width)),
            int(round(self.y2 * height)),
        )

    @classmethod
    def from_pixels(cls, x1: float, y1: float, x2: float, y2: float, width: int, height: int) -> "BoundingBox":
        """Create from pixel coordinates measured on an image of the given size."""
        return cls(x1=x1 / width, y1=y1 / height, x2=x2 / width, y2=y2 / height)

    @classmethod
    def from_cxcywh(cls, cx: float, cy: float, w: float, h: float) -> "BoundingBox":
        """Create from (center x, center y, width, height) format."""
        return cls(x1=cx - w / 2, y1=cy - h / 2, x2=cx + w / 2, y2=cy + h / 2)


@dataclass(frozen=True)
class Detection:
    """
    A single detection from the engine.

    Attributes:
        bbox: Normalized bounding box.
        label: Human-readable class label.
        score: Confidence score (0-1).
        class_id: Raw label index reported by the backend.
    """
    bbox: BoundingBox
    label: str
    score: float
    class_id: Optional[int] = None

    @classmethod
    def from_xyxy(
        cls,
        x1: float,
        y1: float,
        x2: float,
        y2: float,
        label: str,
        score: float,
        class_id: Optional[int] = None,
    ) -> "Detection":
        """Create Detection from x1, y1, x2, y2 coordinates."""
        return cls(
            bbox=BoundingBox(x1=float(x1), y1=float(y1), x2=float(x2), y2=float(y2)),
            label=label,
            score=float(score),
            class_id=class_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire format used by both the HTTP API and the relay channel."""
        return {
            "bbox": self.bbox.as_list(),
            "label": self.label,
            "score": self.score,
        }


def detections_to_dicts(detections: List[Detection]) -> List[Dict[str, Any]]:
    return [d.to_dict() for d in detections]
