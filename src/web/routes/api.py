from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from domain.errors import MissingImage
from models.detection import detections_to_dicts
from runtime.context import APP_VERSION, RuntimeContext
from session.registry import validate_room_name

from ..api_models import (
    DetectionHealthResponse,
    DetectRequest,
    DetectResponse,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    ModelListResponse,
    RoomsResponse,
)
from ..services.health_service import HealthService

router = APIRouter(responses={500: {"model": ErrorResponse}})
router_root = APIRouter()


def get_context(request: Request) -> RuntimeContext:
    return request.app.state.ctx


@router.post(
    "/detect",
    response_model=DetectResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def detect(body: DetectRequest, ctx: RuntimeContext = Depends(get_context)):
    """
    Run object detection on one base64 image.

    When ``room`` is given, the result is also broadcast to that room as a
    ``detection`` event.
    """
    if body.image is None or body.image == "":
        raise MissingImage("No image provided")
    room = validate_room_name(body.room) if body.room is not None else None

    model_id = body.modelType or ctx.engine.default_model
    detections = await ctx.engine.detect(
        body.image,
        model_id,
        confidence_threshold=body.confidenceThreshold,
        max_detections=body.maxDetections,
    )
    timestamp = datetime.now(timezone.utc).isoformat()
    items = detections_to_dicts(detections)
    logging.debug(f"Detected {len(items)} objects with {model_id}")

    if room is not None:
        ctx.detections.broadcast_detection(
            room,
            {
                "frameId": None,
                "from": "api",
                "modelType": model_id,
                "detections": items,
                "timestamp": timestamp,
            },
        )

    return {
        "success": True,
        "detections": items,
        "metadata": {"modelType": model_id, "timestamp": timestamp, "count": len(items)},
    }


@router.get("/models", response_model=ModelListResponse)
def list_models(ctx: RuntimeContext = Depends(get_context)):
    models = ctx.engine.list_models()
    return {"models": models, "defaultModel": ctx.engine.default_model, "count": len(models)}


@router.get("/models/{model_type}", response_model=ModelInfo, responses={404: {"model": ErrorResponse}})
def model_info(model_type: str, ctx: RuntimeContext = Depends(get_context)):
    return ctx.engine.get_model(model_type)


@router.get("/detection/health", response_model=DetectionHealthResponse)
def detection_health(ctx: RuntimeContext = Depends(get_context)):
    return ctx.engine.health()


@router.get("/rooms", response_model=RoomsResponse)
def rooms(ctx: RuntimeContext = Depends(get_context)):
    stats = ctx.registry.stats()
    return {"rooms": stats, "count": len(stats), "connected_peers": len(ctx.connections)}


@router_root.get("/health", response_model=HealthResponse)
def health(ctx: RuntimeContext = Depends(get_context)):
    return HealthService(version=APP_VERSION, stats=ctx.get_system_stats_copy()).get_health_summary()
