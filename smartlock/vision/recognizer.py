"""
LBPH Face Recognition using OpenCV contrib (cv2.face).
Scores are distances: lower means a better match.
"""

import logging
import threading
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from ..exceptions import DetectorError, StartupFailure
from ..storage.models import User
from .pipeline import BoundingBox, Detector, select_face


logger = logging.getLogger(__name__)


class LBPHRecognizer:
    """
    Local Binary Pattern Histogram recognizer.

    Trained from the enrolled users' reference images. Retraining builds a
    new model and swaps it in, so recognition keeps working meanwhile.
    """

    def __init__(
        self,
        face_size: Tuple[int, int] = (200, 200),
        radius: int = 1,
        neighbors: int = 8,
        grid_x: int = 8,
        grid_y: int = 8,
    ):
        if not hasattr(cv2, "face"):
            raise StartupFailure("cv2.face is unavailable; install opencv-contrib-python")

        self.face_size = face_size
        self.radius = radius
        self.neighbors = neighbors
        self.grid_x = grid_x
        self.grid_y = grid_y

        self._lock = threading.Lock()
        self._model = None
        self._labels: frozenset = frozenset()

    @property
    def trained_labels(self) -> frozenset:
        with self._lock:
            return self._labels

    def _prepare(self, gray: np.ndarray) -> np.ndarray:
        return cv2.resize(gray, self.face_size, interpolation=cv2.INTER_AREA)

    def _load_reference(self, user: User, detector: Optional[Detector]) -> Optional[np.ndarray]:
        gray = cv2.imread(user.image_path, cv2.IMREAD_GRAYSCALE)
        if gray is None:
            logger.warning(f"Reference image unreadable for label {user.label}: {user.image_path}")
            return None

        if detector is not None:
            boxes = detector.detect(gray)
            if boxes:
                box = select_face(boxes).clamp(gray.shape[1], gray.shape[0])
                if box.area > 0:
                    gray = gray[box.y:box.y + box.height, box.x:box.x + box.width]
            else:
                logger.warning(f"No face found in reference image for label {user.label}, using full image")

        return self._prepare(gray)

    def train(self, users: Sequence[User], detector: Optional[Detector] = None) -> int:
        """
        Rebuild the model from enrolled users.

        Returns:
            Number of reference images used
        """
        images, labels = [], []
        for user in users:
            if not user.image_path:
                continue
            face = self._load_reference(user, detector)
            if face is not None:
                images.append(face)
                labels.append(user.label)

        if not images:
            with self._lock:
                self._model = None
                self._labels = frozenset()
            logger.info("Recognizer has no reference images; all faces will be unknown")
            return 0

        try:
            model = cv2.face.LBPHFaceRecognizer_create(
                radius=self.radius,
                neighbors=self.neighbors,
                grid_x=self.grid_x,
                grid_y=self.grid_y,
            )
            model.train(images, np.array(labels, dtype=np.int32))
        except cv2.error as e:
            raise DetectorError(f"Recognizer training failed: {e}") from e

        with self._lock:
            self._model = model
            self._labels = frozenset(labels)

        logger.info(f"Recognizer trained on {len(images)} images ({len(set(labels))} labels)")
        return len(images)

    def recognize(self, frame: np.ndarray, box: BoundingBox) -> Tuple[Optional[int], float]:
        """Returns (label, distance); (None, 0.0) when nothing is enrolled."""
        with self._lock:
            model = self._model
        if model is None:
            return None, 0.0

        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        region = box.clamp(gray.shape[1], gray.shape[0])
        if region.area == 0:
            raise DetectorError(f"Face box {box} lies outside the frame")

        crop = gray[region.y:region.y + region.height, region.x:region.x + region.width]
        try:
            label, confidence = model.predict(self._prepare(crop))
        except cv2.error as e:
            raise DetectorError(f"LBPH prediction failed: {e}") from e

        if label < 0:
            return None, float(confidence)
        return int(label), float(confidence)
