import logging
from typing import Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)

SCALE = 2
CONTRAST = 1.5
MIDPOINT = 128.0
# BGR order, OpenCV frames
LUMA_WEIGHTS = np.array([0.114, 0.587, 0.299], dtype=np.float32)

Frame = Union[np.ndarray, bytes, bytearray, memoryview]


class DecodeError(Exception):
    """Raised when a frame cannot be interpreted as an image."""


def decode_frame(frame: Frame) -> np.ndarray:
    """Return a BGR uint8 array for an in-memory frame or encoded image bytes."""
    if frame is None:
        raise DecodeError("Empty frame")

    if isinstance(frame, (bytes, bytearray, memoryview)):
        buf = np.frombuffer(frame, dtype=np.uint8)
        image = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
        if image is None:
            raise DecodeError("Cannot decode image bytes")
        return image

    if not isinstance(frame, np.ndarray) or frame.size == 0:
        raise DecodeError("Unsupported frame type")

    if frame.ndim == 2:
        return cv2.cvtColor(frame.astype(np.uint8), cv2.COLOR_GRAY2BGR)
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame.astype(np.uint8), cv2.COLOR_BGRA2BGR)
    if frame.ndim == 3 and frame.shape[2] == 3:
        return frame.astype(np.uint8, copy=False)

    raise DecodeError(f"Unexpected frame shape: {frame.shape}")


def enhance(frame: Frame) -> np.ndarray:
    """Upscale 2x, convert to luminance and apply a gentle linear contrast stretch.

    No thresholding: binarisation destroys the stroke shapes Tesseract needs to
    tell digits apart. The result is grey but keeps three channels.
    """
    image = decode_frame(frame)
    h, w = image.shape[:2]

    upscaled = cv2.resize(image, (w * SCALE, h * SCALE), interpolation=cv2.INTER_CUBIC)

    luminance = upscaled.astype(np.float32) @ LUMA_WEIGHTS
    stretched = luminance * CONTRAST + MIDPOINT * (1 - CONTRAST)
    gray = np.clip(np.rint(stretched), 0, 255).astype(np.uint8)

    enhanced = cv2.merge((gray, gray, gray))
    enhanced.flags.writeable = False
    logger.debug("Enhanced frame %sx%s -> %sx%s", w, h, w * SCALE, h * SCALE)
    return enhanced


__all__ = ["DecodeError", "decode_frame", "enhance"]
