"""
Inference backend interface.

A backend knows how to load a model artifact into an opaque handle and how to
run that handle on a preprocessed input tensor. Postprocessing is not the
backend's job: it returns the runtime's raw outputs and the engine decodes
them according to the model's output format.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import numpy as np


@dataclass(frozen=True)
class RawOutput:
    """Named output arrays exactly as the runtime produced them."""
    outputs: Dict[str, np.ndarray] = field(default_factory=dict)

    def first(self) -> np.ndarray:
        if not self.outputs:
            return np.zeros((0,), dtype=np.float32)
        return next(iter(self.outputs.values()))

    def get(self, name: str) -> Optional[np.ndarray]:
        return self.outputs.get(name)


class InferenceBackend(Protocol):
    # Set when the backend always emits one layout regardless of the model
    # (the simulated backend); None means "use the model's output format".
    output_format: Optional[str]

    def load(self, path: str) -> Any:
        ...

    def run(self, handle: Any, tensor: np.ndarray) -> RawOutput:
        ...
