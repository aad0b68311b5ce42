"""
Graph inference backend for TensorFlow SavedModel detectors (TF Object
Detection API export format).

TensorFlow is an optional dependency (``pip install .[graph]``); it is only
imported when a graph model is actually loaded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from .backend import InferenceBackend, RawOutput


@dataclass
class GraphHandle:
    fn: Any
    input_name: str
    input_dtype: str


class TensorFlowGraphBackend(InferenceBackend):
    output_format: Optional[str] = None

    def __init__(self, signature: str = "serving_default"):
        self.signature = signature

    @staticmethod
    def _tf():
        try:
            import tensorflow as tf  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "TensorFlow is not installed. Install with `pip install .[graph]` "
                "or point the model at an ONNX artifact."
            ) from e
        return tf

    def load(self, path: str) -> Any:
        tf = self._tf()
        model = tf.saved_model.load(str(path))
        fn = model.signatures[self.signature]
        _, kwargs = fn.structured_input_signature
        input_name, spec = next(iter(kwargs.items()))
        logging.info(f"SavedModel loaded from {path} (input={input_name}, dtype={spec.dtype.name})")
        return GraphHandle(fn=fn, input_name=input_name, input_dtype=spec.dtype.name)

    def run(self, handle: Any, tensor: np.ndarray) -> RawOutput:
        tf = self._tf()
        # TF-OD exports usually take uint8 pixels rather than [0, 1] floats.
        if handle.input_dtype == "uint8":
            tensor = np.clip(tensor * 255.0, 0, 255).astype(np.uint8)
        result = handle.fn(**{handle.input_name: tf.convert_to_tensor(tensor)})
        return RawOutput(outputs={name: value.numpy() for name, value in result.items()})
