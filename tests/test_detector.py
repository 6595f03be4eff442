import threading
import time

import numpy as np
import pytest

from smartlock.exceptions import DetectorError, StartupFailure
from smartlock.vision import HaarCascadeDetector


class OverlapCountingClassifier:
    """Stands in for cv2.CascadeClassifier and records concurrent entry."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def detectMultiScale(self, gray, **kwargs):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.01)
        with self._guard:
            self.active -= 1
        return [(10, 10, 40, 40)]


def test_missing_cascade_is_startup_failure(tmp_path):
    with pytest.raises(StartupFailure):
        HaarCascadeDetector(cascade_path=str(tmp_path / "nope.xml"))


def test_blank_frame_has_no_faces():
    detector = HaarCascadeDetector()
    assert detector.detect(np.zeros((120, 160, 3), dtype=np.uint8)) == []


def test_empty_frame_is_detector_error():
    detector = HaarCascadeDetector()
    with pytest.raises(DetectorError):
        detector.detect(np.zeros((0, 0, 3), dtype=np.uint8))


def test_shared_classifier_is_never_entered_concurrently():
    detector = HaarCascadeDetector()
    fake = OverlapCountingClassifier()
    detector._classifier = fake
    frame = np.zeros((120, 160, 3), dtype=np.uint8)
    gray = np.zeros((120, 160), dtype=np.uint8)

    def loop(image):
        for _ in range(10):
            detector.detect(image)

    # Recognition loop on colour frames, retraining on grayscale references
    threads = [threading.Thread(target=loop, args=(img,)) for img in (frame, gray, frame, gray)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert fake.max_active == 1
