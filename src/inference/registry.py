"""
Model registry: the set of detection models the engine can serve.

The built-in entries can be extended or overridden from the ``detection.models``
list in the YAML config; entries are matched by id.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from domain.errors import UnknownModel, ValidationError

from .labels import COCO_LABELS, COCO_SSD_LABELS, LABEL_TABLES

OUTPUT_FORMATS = ("ssd", "yolo", "tf-od")
LAYOUTS = ("nhwc", "nchw")


class BackendKind(str, Enum):
    NATIVE = "native"  # ONNX Runtime
    GRAPH = "graph"  # TensorFlow SavedModel
    SIMULATED = "simulated"


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Static description of one servable model.

    Attributes:
        model_id: Registry key, e.g. "mobilenet-ssd".
        backend: Runtime used to load and run the artifact.
        input_size: Model input as (width, height).
        labels: Ordered label table indexed by the backend's class index.
        path: Artifact path, relative to the models directory unless absolute.
        output_format: Postprocessor family ("ssd", "yolo", "tf-od").
        layout: Input tensor layout ("nhwc" or "nchw").
        score_threshold: The model's own minimum score; applied before the
            caller's confidence threshold.
    """
    model_id: str
    backend: BackendKind
    input_size: Tuple[int, int]
    labels: Tuple[str, ...]
    path: str
    output_format: str = "ssd"
    layout: str = "nhwc"
    score_threshold: float = 0.25
    description: str = ""

    def label_for(self, index: int) -> str:
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return f"class_{index}"

    def label_index(self, label: str, default: int = 0) -> int:
        try:
            return self.labels.index(label)
        except ValueError:
            return default

    @classmethod
    def from_dict(cls, d: Dict[str, Any], base: Optional["ModelDescriptor"] = None) -> "ModelDescriptor":
        """Adapter: build from a config entry, filling gaps from ``base``."""
        model_id = d.get("id") or (base.model_id if base else None)
        if not model_id:
            raise ValidationError("Model entry is missing 'id'")

        labels = d.get("labels")
        if isinstance(labels, str):
            if labels not in LABEL_TABLES:
                raise ValidationError(f"Unknown label table '{labels}' for model {model_id}")
            labels = LABEL_TABLES[labels]

        fields: Dict[str, Any] = {}
        if "backend" in d:
            fields["backend"] = BackendKind(d["backend"])
        if "input_size" in d:
            fields["input_size"] = (int(d["input_size"][0]), int(d["input_size"][1]))
        if labels is not None:
            fields["labels"] = tuple(labels)
        for key in ("path", "output_format", "layout", "description"):
            if key in d:
                fields[key] = d[key]
        if "score_threshold" in d:
            fields["score_threshold"] = float(d["score_threshold"])

        if base is not None:
            descriptor = replace(base, **fields)
        else:
            missing = {"backend", "input_size", "path"} - set(fields)
            if missing:
                raise ValidationError(f"Model {model_id} is missing: {', '.join(sorted(missing))}")
            fields.setdefault("labels", COCO_LABELS)
            descriptor = cls(model_id=model_id, **fields)

        if descriptor.output_format not in OUTPUT_FORMATS:
            raise ValidationError(f"Model {model_id}: output_format must be one of {', '.join(OUTPUT_FORMATS)}")
        if descriptor.layout not in LAYOUTS:
            raise ValidationError(f"Model {model_id}: layout must be one of {', '.join(LAYOUTS)}")
        return descriptor

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.model_id,
            "type": self.backend.value,
            "path": self.path,
            "inputSize": list(self.input_size),
            "classes": list(self.labels),
            "outputFormat": self.output_format,
            "description": self.description,
        }


DEFAULT_MODELS: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        model_id="mobilenet-ssd",
        backend=BackendKind.NATIVE,
        input_size=(300, 300),
        labels=COCO_SSD_LABELS,
        path="mobilenet-ssd.onnx",
        output_format="ssd",
        layout="nhwc",
        description="MobileNet-SSD COCO object detector",
    ),
    ModelDescriptor(
        model_id="yolov5s",
        backend=BackendKind.NATIVE,
        input_size=(640, 640),
        labels=COCO_LABELS,
        path="yolov5s.onnx",
        output_format="yolo",
        layout="nchw",
        description="YOLOv5s object detector",
    ),
    ModelDescriptor(
        model_id="coco-ssd",
        backend=BackendKind.GRAPH,
        input_size=(300, 300),
        labels=COCO_SSD_LABELS,
        path="coco_ssd",
        output_format="tf-od",
        layout="nhwc",
        description="TensorFlow COCO-SSD SavedModel",
    ),
)


class ModelRegistry:
    def __init__(self, descriptors: Iterable[ModelDescriptor] = DEFAULT_MODELS):
        self._models: Dict[str, ModelDescriptor] = {}
        for descriptor in descriptors:
            self._models[descriptor.model_id] = descriptor

    @classmethod
    def from_config(cls, entries: Optional[Sequence[Dict[str, Any]]]) -> "ModelRegistry":
        registry = cls()
        for entry in entries or []:
            base = registry.get(entry.get("id", ""))
            registry.register(ModelDescriptor.from_dict(entry, base=base))
        return registry

    def register(self, descriptor: ModelDescriptor) -> None:
        self._models[descriptor.model_id] = descriptor

    def get(self, model_id: str) -> Optional[ModelDescriptor]:
        return self._models.get(model_id)

    def require(self, model_id: str) -> ModelDescriptor:
        descriptor = self._models.get(model_id)
        if descriptor is None:
            raise UnknownModel(model_id)
        return descriptor

    def ids(self) -> List[str]:
        return list(self._models)

    @staticmethod
    def resolve_path(descriptor: ModelDescriptor, models_dir: str) -> Path:
        if os.path.isabs(descriptor.path):
            return Path(descriptor.path)
        return Path(models_dir) / descriptor.path

    def __contains__(self, model_id: object) -> bool:
        return model_id in self._models

    def __iter__(self) -> Iterator[ModelDescriptor]:
        return iter(self._models.values())

    def __len__(self) -> int:
        return len(self._models)
