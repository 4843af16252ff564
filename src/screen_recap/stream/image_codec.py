"""
Image Codec
===========

Encoding of captured bitmaps into frame payloads, and the cheap payload
pre-check run before a frame is sent to the vision describer.

Design Rules:
    - This is the ONLY place in the codebase that builds or parses data URLs
    - Encoding uses OpenCV's JPEG encoder on BGR numpy arrays
    - Parsing never decodes pixels; it only validates the envelope and base64
"""

import base64
import binascii
import logging
from typing import Tuple

import cv2
import numpy as np


logger = logging.getLogger(__name__)


DATA_URL_PREFIX = "data:image/"

SUPPORTED_MEDIA_TYPES = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
})


class ImageDecodeError(Exception):
    """Raised when a frame payload is empty or not a usable image."""
    pass


def encode_data_url(bgr: np.ndarray, quality: int = 80) -> str:
    """
    Encode a BGR (or BGRA) image as a JPEG data URL.

    Args:
        bgr: Image as np.ndarray (H, W, 3) or (H, W, 4), dtype=uint8
        quality: JPEG quality in [1, 100]

    Returns:
        ``data:image/jpeg;base64,...`` string

    Raises:
        ImageDecodeError: If the array cannot be encoded
    """
    if bgr is None or bgr.size == 0:
        raise ImageDecodeError("Cannot encode an empty image")

    if bgr.ndim == 3 and bgr.shape[2] == 4:
        bgr = cv2.cvtColor(bgr, cv2.COLOR_BGRA2BGR)

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype for encoding: {bgr.dtype}")

    ok, encoded = cv2.imencode(
        ".jpg",
        bgr,
        [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)],
    )
    if not ok:
        raise ImageDecodeError("cv2.imencode failed to produce a JPEG")

    b64 = base64.b64encode(encoded.tobytes()).decode("ascii")
    return f"data:image/jpeg;base64,{b64}"


def parse_data_url(payload: str) -> Tuple[str, bytes]:
    """
    Validate a frame payload and return its media type and raw bytes.

    Args:
        payload: Data URL produced by a frame source

    Returns:
        Tuple of (media_type, image_bytes)

    Raises:
        ImageDecodeError: On empty payload, missing ``data:image/`` prefix,
            missing base64 section, unsupported media type or bad base64
    """
    if not payload:
        raise ImageDecodeError("empty payload")

    if not payload.startswith(DATA_URL_PREFIX):
        raise ImageDecodeError("invalid format (expected a data:image/ URL)")

    header, sep, data = payload.partition(",")
    if not sep or not data:
        raise ImageDecodeError("failed to extract base64 data")

    media_type = header[len("data:"):].split(";", 1)[0].lower()
    if media_type not in SUPPORTED_MEDIA_TYPES:
        raise ImageDecodeError(f"unsupported media type: {media_type}")

    if ";base64" not in header:
        raise ImageDecodeError("payload is not base64 encoded")

    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"base64 decode failed: {e}")

    if not image_bytes:
        raise ImageDecodeError("empty image data")

    return media_type, image_bytes


def to_data_url(image: str, media_type: str = "image/jpeg") -> str:
    """
    Normalize an incoming image string to a data URL.

    Remote streams may send bare base64 JPEG data; browsers send data URLs.
    Data URLs are returned unchanged.
    """
    if image.startswith("data:"):
        return image
    return f"data:{media_type};base64,{image}"
