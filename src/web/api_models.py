from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DetectRequest(BaseModel):
    # Any: non-string payloads are reported as INVALID_IMAGE_FORMAT, not a schema error.
    image: Optional[Any] = Field(None, description="Base64 image, optionally a data: URL")
    modelType: Optional[str] = Field(None, description="Registry id; defaults to the engine's default model")
    confidenceThreshold: Optional[float] = None
    maxDetections: Optional[int] = None
    room: Optional[str] = Field(None, description="Also broadcast the result to this room")


class DetectionOut(BaseModel):
    bbox: List[float] = Field(..., description="[x1, y1, x2, y2], normalized to [0, 1]")
    label: str
    score: float


class DetectMetadata(BaseModel):
    modelType: str
    timestamp: str
    count: int


class DetectResponse(BaseModel):
    success: bool = True
    detections: List[DetectionOut]
    metadata: DetectMetadata


class ModelInfo(BaseModel):
    id: str
    type: str
    path: str
    inputSize: List[int]
    classes: List[str]
    outputFormat: str
    description: str = ""
    state: str
    loaded: bool
    simulated: bool


class ModelListResponse(BaseModel):
    models: List[ModelInfo]
    defaultModel: str
    count: int


class ErrorResponse(BaseModel):
    error: str
    code: str
    timestamp: str
    stack: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: float
    version: str
    platform: str
    python: str
    uptime_seconds: Optional[int] = None
    connected_peers: int = 0
    rooms: int = 0


class RoomsResponse(BaseModel):
    rooms: Dict[str, Dict[str, int]]
    count: int
    connected_peers: int


class DetectionHealthResponse(BaseModel):
    status: str
    loadedModels: List[str]
    availableModels: List[str]
    simulatedModels: List[str]
    defaultModel: str
    models: Dict[str, Dict[str, Any]]
    timestamp: str
