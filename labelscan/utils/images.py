"""
==============================================================================
Image I/O Utilities Module
==============================================================================

Conversions between encoded images (uploads, WebSocket frames) and the
RGBA buffers the imaging package works on.

==============================================================================
"""

from __future__ import annotations

import base64
import binascii
import logging

import cv2
import numpy as np

from labelscan.core.exceptions import invalid_image
from labelscan.imaging.primitives import rgba_from_bgr, to_uint8


# Module logger
logger = logging.getLogger(__name__)


def decode_image_bytes(data: bytes) -> np.ndarray:
    """
    Decode an encoded image (PNG, JPEG, ...) into an RGBA buffer.

    Raises:
        AppException: INVALID_IMAGE if the bytes are not a readable image
    """
    if not data:
        raise invalid_image("empty payload")

    frame = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_UNCHANGED)
    if frame is None or frame.size == 0:
        raise invalid_image("could not decode image data")

    if frame.dtype != np.uint8:
        # 16-bit PNG and friends
        frame = cv2.convertScaleAbs(frame, alpha=255.0 / max(1.0, float(frame.max())))

    return rgba_from_bgr(frame)


def decode_base64_image(payload: str) -> np.ndarray:
    """
    Decode a base64 image, with or without a ``data:`` URL prefix.

    Raises:
        AppException: INVALID_IMAGE if the payload is not valid base64
    """
    if "," in payload and payload.lstrip().startswith("data:"):
        payload = payload.split(",", 1)[1]

    try:
        data = base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise invalid_image(f"bad base64 payload ({e})")

    return decode_image_bytes(data)


def encode_png_data_url(buffer: np.ndarray) -> str:
    """Encode a grayscale or RGBA buffer as a PNG data URL."""
    image = to_uint8(buffer)
    if image.ndim == 3:
        image = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)

    ok, encoded = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("PNG encoding failed")

    return "data:image/png;base64," + base64.b64encode(encoded.tobytes()).decode("ascii")
