from .backend import InferenceBackend, RawOutput
from .engine import DetectionEngine, LoadedModel, ModelState
from .registry import BackendKind, ModelDescriptor, ModelRegistry

__all__ = [
    "BackendKind",
    "DetectionEngine",
    "InferenceBackend",
    "LoadedModel",
    "ModelDescriptor",
    "ModelRegistry",
    "ModelState",
    "RawOutput",
]
