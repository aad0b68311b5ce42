"""
Simulated backend used when a model artifact is missing.

Always reports one fixed detection so the rest of the pipeline can be
exercised without model files.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from .backend import InferenceBackend, RawOutput

SIMULATED_SCORE = 0.95
SIMULATED_BOX = (0.1, 0.1, 0.9, 0.9)


class SimulatedBackend(InferenceBackend):
    output_format: Optional[str] = "ssd"

    def __init__(self, label_index: int = 1):
        self.label_index = label_index

    def load(self, path: str) -> Any:
        return {"simulated": True, "path": str(path)}

    def run(self, handle: Any, tensor: np.ndarray) -> RawOutput:
        row = np.array([[0.0, float(self.label_index), SIMULATED_SCORE, *SIMULATED_BOX]], dtype=np.float32)
        return RawOutput(outputs={"detection_out": row.reshape(1, 1, 1, 7)})
