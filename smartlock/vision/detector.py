"""
Haar Cascade Face Detector using OpenCV.
Detects frontal faces in BGR frames.
"""

import logging
import os
import threading
from typing import List

import cv2
import numpy as np

from ..exceptions import DetectorError, StartupFailure
from .pipeline import BoundingBox


logger = logging.getLogger(__name__)

DEFAULT_CASCADE = "haarcascade_frontalface_default.xml"


def default_cascade_path() -> str:
    return os.path.join(cv2.data.haarcascades, DEFAULT_CASCADE)


class HaarCascadeDetector:
    """
    Viola-Jones cascade detector.
    Failing to load the cascade is fatal at startup.

    detectMultiScale calls are serialized: the classifier is shared by the
    recognition loop and enrollment retraining.
    """

    def __init__(
        self,
        cascade_path: str = "",
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_face_size: int = 60,
    ):
        self.cascade_path = cascade_path or default_cascade_path()
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_face_size = min_face_size

        self._classifier = cv2.CascadeClassifier()
        self._classifier_lock = threading.Lock()
        self._load_model()

    def _load_model(self):
        """Load cascade XML."""
        if not os.path.exists(self.cascade_path):
            raise StartupFailure(f"Face cascade not found: {self.cascade_path}")

        if not self._classifier.load(self.cascade_path):
            raise StartupFailure(f"Error loading face cascade: {self.cascade_path}")

        logger.info(f"Loaded face cascade from {self.cascade_path}")

    def detect(self, frame: np.ndarray) -> List[BoundingBox]:
        """
        Detect faces in a BGR frame.

        Returns:
            Face boxes, possibly empty
        """
        if frame is None or frame.size == 0:
            raise DetectorError("Empty frame passed to detector")

        try:
            gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
            gray = cv2.equalizeHist(gray)
            with self._classifier_lock:
                faces = self._classifier.detectMultiScale(
                    gray,
                    scaleFactor=self.scale_factor,
                    minNeighbors=self.min_neighbors,
                    minSize=(self.min_face_size, self.min_face_size),
                )
        except cv2.error as e:
            raise DetectorError(f"Cascade detection failed: {e}") from e

        return [BoundingBox(int(x), int(y), int(w), int(h)) for (x, y, w, h) in faces]


def create_detector_from_config(config) -> HaarCascadeDetector:
    return HaarCascadeDetector(
        cascade_path=config.HAAR_CASCADE_PATH,
        min_face_size=config.MIN_FACE_SIZE,
    )
