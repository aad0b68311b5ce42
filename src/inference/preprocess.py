"""
Image preprocessing: base64 payload -> model input tensor.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Tuple

import cv2
import numpy as np

from domain.errors import InferenceFailure, InvalidImage

DATA_URL_PREFIX = re.compile(r"^data:image/[a-z]+;base64,")
BASE64_PATTERN = re.compile(r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$")

MIN_IMAGE_BYTES = 100
MAX_IMAGE_BYTES = 10 * 1024 * 1024


def strip_data_url(value: str) -> str:
    """Remove a leading ``data:image/<type>;base64,`` prefix if present."""
    return DATA_URL_PREFIX.sub("", value, count=1)


def decode_base64_image(value: object) -> bytes:
    """
    Decode a base64 image payload to raw bytes.

    Raises:
        InvalidImage: not a string, not strict base64, or the decoded size is
            outside [MIN_IMAGE_BYTES, MAX_IMAGE_BYTES].
    """
    if not isinstance(value, str) or not value:
        raise InvalidImage("Invalid image format. Expected base64 encoded image.")

    data = strip_data_url(value)
    # Reject oversized payloads before running the regex over them.
    if len(data) // 4 * 3 > MAX_IMAGE_BYTES + 3:
        raise InvalidImage("Image payload too large")
    if not BASE64_PATTERN.match(data):
        raise InvalidImage("Invalid image format. Expected base64 encoded image.")

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidImage("Invalid image format. Expected base64 encoded image.")

    if not MIN_IMAGE_BYTES <= len(raw) <= MAX_IMAGE_BYTES:
        raise InvalidImage(
            f"Image size {len(raw)} bytes outside allowed range "
            f"[{MIN_IMAGE_BYTES}, {MAX_IMAGE_BYTES}]"
        )
    return raw


def is_valid_base64_image(value: object) -> bool:
    try:
        decode_base64_image(value)
    except InvalidImage:
        return False
    return True


def image_to_tensor(raw: bytes, input_size: Tuple[int, int], layout: str = "nhwc") -> np.ndarray:
    """
    Decode image bytes and build a batched float32 tensor in [0, 1].

    Args:
        raw: Encoded image bytes (JPEG, PNG, ...).
        input_size: Target (width, height).
        layout: "nhwc" -> (1, H, W, 3); "nchw" -> (1, 3, H, W).
    """
    image = cv2.imdecode(np.frombuffer(raw, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise InferenceFailure("Failed to process image")

    width, height = input_size
    image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    image = cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)
    tensor = image.astype(np.float32) / 255.0

    if layout == "nchw":
        tensor = np.transpose(tensor, (2, 0, 1))
    return np.expand_dims(tensor, axis=0)
