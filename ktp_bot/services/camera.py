import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class CameraConfig:
    index: int = 0
    resolution: Tuple[int, int] = (1280, 720)


class Camera:
    """Thin wrapper around cv2.VideoCapture for BGR frame capture."""

    def __init__(self, cfg: CameraConfig):
        self._cfg = cfg
        self._cap = cv2.VideoCapture(cfg.index)
        if not self._cap.isOpened():
            raise IOError(f"Cannot open camera {cfg.index}")
        width, height = cfg.resolution
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        logger.info("Camera %s opened at %sx%s", cfg.index, width, height)

    def capture_frame(self) -> Optional[np.ndarray]:
        # camera may still be warming up
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def close(self) -> None:
        self._cap.release()

    def __enter__(self) -> "Camera":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
