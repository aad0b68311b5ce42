"""
Exception hierarchy for the relay and detection engine.

Every error carries a machine-readable ``code`` and the HTTP status the web
layer should answer with. Relay handlers send the same code back to the peer
as an ``error`` event.
"""

from __future__ import annotations

from typing import Any, Dict


class RelayError(Exception):
    """Base exception for all relay and detection errors."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Payload of the ``error`` event sent back to a peer."""
        return {"code": self.code, "message": self.message}


class ValidationError(RelayError):
    """Malformed or missing user input (room, role, image, thresholds)."""

    code = "VALIDATION_ERROR"
    status_code = 400


class MissingImage(ValidationError):
    code = "MISSING_IMAGE"


class InvalidImage(ValidationError):
    """Payload is not base64, or decodes to a size outside the allowed range."""

    code = "INVALID_IMAGE_FORMAT"


class UnknownModel(RelayError):
    code = "MODEL_NOT_FOUND"
    status_code = 404

    def __init__(self, model_id: str):
        super().__init__(f"Unknown model type: {model_id}")
        self.model_id = model_id


class InferenceFailure(RelayError):
    """Backend runtime error while loading a model or running inference."""

    code = "DETECTION_FAILED"
    status_code = 500
