"""
Camera capture via OpenCV VideoCapture.

frames() is a lazy, infinite sequence that can be consumed once.
"""

import logging
import threading
import time
from typing import Iterator, Optional

import cv2
import numpy as np

from ..exceptions import StartupFailure


logger = logging.getLogger(__name__)


class Camera:
    """Blocking frame source for the recognition loop."""

    def __init__(
        self,
        camera_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 15,
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self.fps = fps

        self._capture: Optional[cv2.VideoCapture] = None
        self._consumed = False

        # Stats
        self.frames_captured = 0
        self.read_failures = 0

    def open(self):
        """Open the device. Failure is fatal at startup."""
        self._capture = cv2.VideoCapture(self.camera_index)
        if not self._capture.isOpened():
            self._capture.release()
            self._capture = None
            raise StartupFailure(f"Failed to open camera {self.camera_index}")

        self._capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture.set(cv2.CAP_PROP_FPS, self.fps)
        # Reduce buffer to minimize latency
        self._capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        actual_w = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_h = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info(f"Camera opened: {actual_w}x{actual_h} @ {self._capture.get(cv2.CAP_PROP_FPS)}fps")

    def frames(self, stop_event: threading.Event) -> Iterator[np.ndarray]:
        """Yield frames until stop_event is set."""
        if self._consumed:
            raise RuntimeError("Camera frame sequence already consumed")
        if self._capture is None:
            raise RuntimeError("Camera is not open")
        self._consumed = True

        while not stop_event.is_set():
            ok, frame = self._capture.read()
            if not ok or frame is None:
                self.read_failures += 1
                if self.read_failures % 100 == 1:
                    logger.warning(f"Frame capture failed ({self.read_failures} total)")
                time.sleep(0.01)
                continue

            self.frames_captured += 1
            yield frame

    def close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Camera released")


def create_camera_from_config(config) -> Camera:
    return Camera(
        camera_index=config.CAMERA_INDEX,
        width=config.CAMERA_WIDTH,
        height=config.CAMERA_HEIGHT,
        fps=config.CAMERA_FPS,
    )
