import threading

import numpy as np
import pytest

from smartlock.core import AccessControlEngine, ConfidencePolicy, GpioPin, LockActuator
from smartlock.exceptions import ActuatorError
from smartlock.storage import AccessLogger, ImageArchive, PersistentStore
from smartlock.vision import BoundingBox, RecognitionPipeline


class FakePin(GpioPin):
    def __init__(self, fail_high: bool = False, fail_low: bool = False):
        self.pin = 4
        self.fail_high = fail_high
        self.fail_low = fail_low
        self.is_high = False
        self.highs = 0
        self.lows = 0
        self.setups = 0
        self.cleanups = 0
        self._lock = threading.Lock()

    def setup(self):
        self.setups += 1

    def set_high(self):
        if self.fail_high:
            raise ActuatorError("relay stuck")
        with self._lock:
            self.highs += 1
            self.is_high = True

    def set_low(self):
        if self.fail_low:
            raise ActuatorError("relay stuck")
        with self._lock:
            self.lows += 1
            self.is_high = False

    def cleanup(self):
        self.cleanups += 1


class FakeDetector:
    """Returns a scripted list of boxes for every frame."""

    def __init__(self, boxes=None, error=None):
        self.boxes = list(boxes or [])
        self.error = error
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.boxes)


class FakeRecognizer:
    """Returns a fixed (label, confidence) pair."""

    def __init__(self, label=None, confidence=0.0, error=None):
        self.label = label
        self.confidence = confidence
        self.error = error
        self.boxes = []
        self.trained_with = None

    def recognize(self, frame, box):
        if self.error is not None:
            raise self.error
        self.boxes.append(box)
        return self.label, self.confidence

    def train(self, users, detector=None):
        self.trained_with = list(users)
        return len(self.trained_with)


@pytest.fixture
def frame():
    rng = np.random.default_rng(7)
    return rng.integers(0, 255, size=(120, 160, 3), dtype=np.uint8)


@pytest.fixture
def face_box():
    return BoundingBox(20, 20, 60, 60)


@pytest.fixture
def store(tmp_path):
    s = PersistentStore(db_path=str(tmp_path / "db" / "smartlock.db"))
    yield s
    s.close()


@pytest.fixture
def access_archive(tmp_path):
    return ImageArchive(str(tmp_path / "access_images"))


@pytest.fixture
def user_archive(tmp_path):
    return ImageArchive(str(tmp_path / "user_images"))


@pytest.fixture
def access_logger(store, access_archive):
    return AccessLogger(store, access_archive, retry_delay=0.0)


@pytest.fixture
def pin():
    return FakePin()


@pytest.fixture
def actuator(pin):
    a = LockActuator(pin, unlock_duration=0.2)
    a.initialize()
    yield a
    a.cleanup()


@pytest.fixture
def make_engine(store, access_logger, actuator, face_box):
    """Engine with frame_skip=1 and a scripted recognizer."""

    def _make(label=3, confidence=30.0, threshold=40.0, boxes=None, detector=None, notifier=None, act=None):
        det = detector or FakeDetector(boxes=[face_box] if boxes is None else boxes)
        pipeline = RecognitionPipeline(det, FakeRecognizer(label, confidence), frame_skip=1)
        return AccessControlEngine(
            pipeline=pipeline,
            policy=ConfidencePolicy(threshold=threshold, lower_is_better=True),
            actuator=act or actuator,
            access_logger=access_logger,
            store=store,
            notifier=notifier,
        )

    return _make
