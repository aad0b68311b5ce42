"""
Detection engine: model lifecycle and the detect() pipeline.

State per model id:
    unloaded -> loading -> loaded        (terminal)
    unloaded -> loading -> failed        (a later call retries)

Concurrent first loads of one model share a single asyncio.Task, so the
artifact is loaded at most once. Blocking work (artifact load, image decode,
inference) runs in worker threads via asyncio.to_thread; the cache and the
in-flight map are only touched from the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from domain.errors import InferenceFailure, RelayError, ValidationError
from models.config import DetectionConfig
from models.detection import Detection

from .backend import InferenceBackend
from .graph_backend import TensorFlowGraphBackend
from .onnx_backend import OnnxRuntimeBackend
from .postprocess import postprocess
from .preprocess import decode_base64_image, image_to_tensor
from .registry import BackendKind, ModelDescriptor, ModelRegistry
from .simulated_backend import SimulatedBackend


class ModelState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadedModel:
    descriptor: ModelDescriptor
    backend: InferenceBackend
    handle: Any
    simulated: bool = False
    loaded_at: float = 0.0

    @property
    def output_format(self) -> str:
        return self.backend.output_format or self.descriptor.output_format


def default_backends() -> Dict[BackendKind, InferenceBackend]:
    return {
        BackendKind.NATIVE: OnnxRuntimeBackend(),
        BackendKind.GRAPH: TensorFlowGraphBackend(),
    }


class DetectionEngine:
    def __init__(
        self,
        registry: Optional[ModelRegistry] = None,
        models_dir: str = "models",
        default_model: str = "mobilenet-ssd",
        confidence_threshold: float = 0.3,
        max_detections: int = 20,
        backends: Optional[Mapping[BackendKind, InferenceBackend]] = None,
    ):
        self.registry = registry or ModelRegistry()
        self.models_dir = models_dir
        self.default_model = default_model
        self.confidence_threshold = confidence_threshold
        self.max_detections = max_detections
        self.backends: Dict[BackendKind, InferenceBackend] = dict(backends) if backends is not None else default_backends()

        self._models: Dict[str, LoadedModel] = {}
        self._states: Dict[str, ModelState] = {}
        self._errors: Dict[str, str] = {}
        self._inflight: Dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(
        cls,
        cfg: DetectionConfig,
        backends: Optional[Mapping[BackendKind, InferenceBackend]] = None,
    ) -> "DetectionEngine":
        return cls(
            registry=ModelRegistry.from_config(cfg.models),
            models_dir=cfg.models_dir,
            default_model=cfg.default_model,
            confidence_threshold=cfg.confidence_threshold,
            max_detections=cfg.max_detections,
            backends=backends,
        )

    # ------------------------------------------------------------------
    # Model lifecycle
    # ------------------------------------------------------------------

    def state_of(self, model_id: str) -> ModelState:
        return self._states.get(model_id, ModelState.UNLOADED)

    def is_loaded(self, model_id: str) -> bool:
        return model_id in self._models

    async def load_model(self, model_id: str) -> LoadedModel:
        """
        Return the loaded model, loading it on first use.

        Raises:
            UnknownModel: id not in the registry.
            InferenceFailure: the backend failed to load the artifact. Every
                caller waiting on the same load gets the same failure.
        """
        loaded = self._models.get(model_id)
        if loaded is not None:
            return loaded

        descriptor = self.registry.require(model_id)

        task = self._inflight.get(model_id)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(descriptor))
            self._inflight[model_id] = task
            self._states[model_id] = ModelState.LOADING
            task.add_done_callback(lambda _t, mid=model_id: self._inflight.pop(mid, None))
        return await asyncio.shield(task)

    async def _load(self, descriptor: ModelDescriptor) -> LoadedModel:
        model_id = descriptor.model_id
        path = ModelRegistry.resolve_path(descriptor, self.models_dir)

        simulated = descriptor.backend == BackendKind.SIMULATED or not path.exists()
        if simulated:
            if descriptor.backend != BackendKind.SIMULATED:
                logging.warning(f"Model artifact not found at {path}; using simulated backend for {model_id}")
            backend: Optional[InferenceBackend] = SimulatedBackend(label_index=descriptor.label_index("person"))
        else:
            backend = self.backends.get(descriptor.backend)
            if backend is None:
                self._mark_failed(model_id, f"No backend registered for '{descriptor.backend.value}'")
                raise InferenceFailure(f"No backend available for model {model_id}")

        logging.info(f"Loading model {model_id} from {path}")
        try:
            handle = await asyncio.to_thread(backend.load, str(path))
        except Exception as e:
            self._mark_failed(model_id, str(e))
            logging.error(f"Failed to load model {model_id}: {e}")
            raise InferenceFailure(f"Failed to load model {model_id}: {e}") from e

        loaded = LoadedModel(
            descriptor=descriptor,
            backend=backend,
            handle=handle,
            simulated=simulated,
            loaded_at=time.time(),
        )
        self._models[model_id] = loaded
        self._states[model_id] = ModelState.LOADED
        self._errors.pop(model_id, None)
        logging.info(f"Model {model_id} loaded ({'simulated' if simulated else descriptor.backend.value})")
        return loaded

    def _mark_failed(self, model_id: str, error: str) -> None:
        self._states[model_id] = ModelState.FAILED
        self._errors[model_id] = error

    async def preload(self, model_ids: Sequence[str]) -> List[str]:
        """Load models at startup. Failures are logged and skipped."""
        loaded: List[str] = []
        for model_id in model_ids:
            try:
                await self.load_model(model_id)
            except RelayError as e:
                logging.error(f"Preload of {model_id} failed: {e.message}")
                continue
            loaded.append(model_id)
        return loaded

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def detect(
        self,
        image_b64: str,
        model_id: Optional[str] = None,
        confidence_threshold: Optional[float] = None,
        max_detections: Optional[int] = None,
    ) -> List[Detection]:
        """
        Run object detection on a base64-encoded image.

        Threshold and max count default to the engine-wide values; per-call
        values never change those defaults.

        Raises:
            ValidationError: threshold outside [0, 1] or negative max count.
            InvalidImage: payload is not a valid base64 image.
            UnknownModel: model id not in the registry.
            InferenceFailure: decode, load or inference failed.
        """
        model_id = model_id or self.default_model
        threshold = self._check_threshold(confidence_threshold)
        limit = self._check_limit(max_detections)

        raw = decode_base64_image(image_b64)
        model = await self.load_model(model_id)
        detections = await asyncio.to_thread(self._infer, model, raw, threshold)
        return detections[:limit]

    def _check_threshold(self, value: Optional[float]) -> float:
        if value is None:
            return self.confidence_threshold
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
            raise ValidationError("confidenceThreshold must be a number between 0 and 1")
        return float(value)

    def _check_limit(self, value: Optional[int]) -> int:
        if value is None:
            return self.max_detections
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError("maxDetections must be a non-negative integer")
        return value

    @staticmethod
    def _infer(model: LoadedModel, raw: bytes, threshold: float) -> List[Detection]:
        descriptor = model.descriptor
        tensor = image_to_tensor(raw, descriptor.input_size, descriptor.layout)
        try:
            output = model.backend.run(model.handle, tensor)
            return postprocess(model.output_format, output, descriptor, threshold)
        except RelayError:
            raise
        except Exception as e:
            logging.error(f"Inference failed for {descriptor.model_id}: {e}")
            raise InferenceFailure(f"Inference failed: {e}") from e

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def _model_info(self, descriptor: ModelDescriptor) -> Dict[str, Any]:
        info = descriptor.to_dict()
        loaded = self._models.get(descriptor.model_id)
        info["state"] = self.state_of(descriptor.model_id).value
        info["loaded"] = loaded is not None
        info["simulated"] = bool(loaded and loaded.simulated)
        return info

    def list_models(self) -> List[Dict[str, Any]]:
        return [self._model_info(d) for d in self.registry]

    def get_model(self, model_id: str) -> Dict[str, Any]:
        return self._model_info(self.registry.require(model_id))

    def health(self) -> Dict[str, Any]:
        models: Dict[str, Any] = {}
        for model_id in self.registry.ids():
            entry: Dict[str, Any] = {"state": self.state_of(model_id).value}
            if model_id in self._errors:
                entry["error"] = self._errors[model_id]
            models[model_id] = entry

        failed = any(self.state_of(m) == ModelState.FAILED for m in self.registry.ids())
        return {
            "status": "degraded" if failed else "healthy",
            "loadedModels": list(self._models),
            "availableModels": self.registry.ids(),
            "simulatedModels": [m for m, lm in self._models.items() if lm.simulated],
            "defaultModel": self.default_model,
            "models": models,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
