"""
Recognition pipeline: frame-skip sampling, detection, largest-face
selection and recognition. Holds no persistent state.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np

from ..exceptions import DetectorError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """Face region in pixel coordinates."""
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)

    def clamp(self, frame_width: int, frame_height: int) -> "BoundingBox":
        x1 = min(max(0, self.x), frame_width)
        y1 = min(max(0, self.y), frame_height)
        x2 = min(max(0, self.x + self.width), frame_width)
        y2 = min(max(0, self.y + self.height), frame_height)
        return BoundingBox(x1, y1, x2 - x1, y2 - y1)


@dataclass(frozen=True)
class Verdict:
    """Output of one recognition evaluation."""
    label: Optional[int]
    confidence: float
    face: Optional[BoundingBox] = None

    @property
    def has_face(self) -> bool:
        return self.face is not None

    @classmethod
    def no_face(cls) -> "Verdict":
        return cls(label=None, confidence=0.0, face=None)


class Detector(Protocol):
    def detect(self, frame: np.ndarray) -> Sequence[BoundingBox]:
        ...


class Recognizer(Protocol):
    def recognize(self, frame: np.ndarray, box: BoundingBox) -> Tuple[Optional[int], float]:
        ...


def select_face(boxes: Sequence[BoundingBox]) -> BoundingBox:
    """Largest box wins; ties go to the first detected."""
    best = boxes[0]
    for box in boxes[1:]:
        if box.area > best.area:
            best = box
    return best


class RecognitionPipeline:
    """
    Evaluates every Nth frame.

    evaluate() returns None for skipped frames (no signal), a no-face
    Verdict when detection finds nothing, otherwise the verdict for the
    selected face. Adapter failures surface as DetectorError.
    """

    def __init__(self, detector: Detector, recognizer: Recognizer, frame_skip: int = 5):
        self.detector = detector
        self.recognizer = recognizer
        self.frame_skip = max(1, int(frame_skip))

        self._counter_lock = threading.Lock()
        self._frame_index = 0

        self.stats = {
            "frames_seen": 0,
            "frames_sampled": 0,
            "faces_found": 0,
        }

    def should_sample(self) -> bool:
        with self._counter_lock:
            index = self._frame_index
            self._frame_index += 1
            self.stats["frames_seen"] += 1
        return index % self.frame_skip == 0

    def evaluate(self, frame: np.ndarray) -> Optional[Verdict]:
        if not self.should_sample():
            return None

        self.stats["frames_sampled"] += 1

        try:
            boxes = list(self.detector.detect(frame))
        except DetectorError:
            raise
        except Exception as exc:
            raise DetectorError(f"Face detection failed: {exc}") from exc

        if not boxes:
            return Verdict.no_face()

        self.stats["faces_found"] += 1
        face = select_face(boxes)
        if len(boxes) > 1:
            logger.debug(f"{len(boxes)} faces detected, evaluating largest {face}")

        try:
            label, confidence = self.recognizer.recognize(frame, face)
        except DetectorError:
            raise
        except Exception as exc:
            raise DetectorError(f"Face recognition failed: {exc}") from exc

        return Verdict(label=label, confidence=float(confidence), face=face)
