"""Page image normalization for vision model input.

Every page image handed to the vision backend goes through the same steps:
1. Decode image bytes
2. Downscale so the longest side fits the model's comfortable input size
3. Encode as PNG

Rendered PDF pages and uploaded photos/scans end up in one format, so the
rest of the pipeline only deals with PNG page blobs.
"""

import logging

import cv2
import numpy as np

from config import settings

logger = logging.getLogger(__name__)


def normalize_page(image_bytes: bytes, max_dimension: int | None = None) -> bytes:
    """Decode, downscale and re-encode one page image as PNG.

    Raises ValueError if the bytes are not a decodable image.
    """
    img = _decode(image_bytes)
    if img is None:
        raise ValueError("could not decode page image")

    img = _resize(img, max_dimension or settings.MAX_PAGE_DIMENSION)
    png = _encode(img)
    if png is None:
        raise ValueError("could not encode page image as PNG")
    return png


def is_image(data: bytes) -> bool:
    """True if OpenCV can decode the bytes as an image."""
    return _decode(data) is not None


def _decode(image_bytes: bytes) -> np.ndarray | None:
    """Decode raw bytes into an OpenCV BGR array."""
    if not image_bytes:
        return None
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    try:
        return cv2.imdecode(arr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        logger.debug("preprocessing: decode failed: %s", e)
        return None


def _resize(img: np.ndarray, max_dimension: int) -> np.ndarray:
    """Downscale so max(h, w) <= max_dimension, keeping the aspect ratio."""
    h, w = img.shape[:2]
    longest = max(h, w)
    if longest <= max_dimension:
        return img

    scale = max_dimension / longest
    target = (max(1, round(w * scale)), max(1, round(h * scale)))
    logger.debug("preprocessing: resizing %dx%d -> %dx%d", w, h, target[0], target[1])
    return cv2.resize(img, target, interpolation=cv2.INTER_AREA)


def _encode(img: np.ndarray) -> bytes | None:
    """Encode image as PNG bytes."""
    try:
        success, buf = cv2.imencode(".png", img)
        if success:
            return buf.tobytes()
    except cv2.error as e:
        logger.warning("preprocessing: PNG encode failed: %s", e)

    return None
