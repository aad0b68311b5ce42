"""
Native inference backend backed by ONNX Runtime (CPU execution provider).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import numpy as np

from .backend import InferenceBackend, RawOutput


class OnnxRuntimeBackend(InferenceBackend):
    output_format: Optional[str] = None

    def __init__(self, providers: Sequence[str] = ("CPUExecutionProvider",)):
        self.providers = list(providers)

    def load(self, path: str) -> Any:
        try:
            import onnxruntime  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is not installed. Install with `pip install onnxruntime`."
            ) from e

        session = onnxruntime.InferenceSession(str(path), providers=self.providers)
        inputs = [i.name for i in session.get_inputs()]
        outputs = [o.name for o in session.get_outputs()]
        logging.info(f"ONNX model loaded from {path} (inputs={inputs}, outputs={outputs})")
        return session

    def run(self, handle: Any, tensor: np.ndarray) -> RawOutput:
        input_name = handle.get_inputs()[0].name
        output_names = [o.name for o in handle.get_outputs()]
        results = handle.run(output_names, {input_name: tensor})
        return RawOutput(outputs={name: np.asarray(arr) for name, arr in zip(output_names, results)})
