"""
Domain-level errors shared by the relay, the detection engine and the web layer.
"""

from .errors import (  # noqa: F401
    RelayError,
    ValidationError,
    MissingImage,
    InvalidImage,
    UnknownModel,
    InferenceFailure,
)
