import pytest

from smartlock.exceptions import DetectorError
from smartlock.vision import BoundingBox, RecognitionPipeline, select_face

from conftest import FakeDetector, FakeRecognizer


def test_only_every_nth_frame_is_evaluated(frame, face_box):
    detector = FakeDetector([face_box])
    pipeline = RecognitionPipeline(detector, FakeRecognizer(1, 20.0), frame_skip=5)

    results = [pipeline.evaluate(frame) for _ in range(11)]

    sampled = [i for i, r in enumerate(results) if r is not None]
    assert sampled == [0, 5, 10]
    assert detector.calls == 3
    assert pipeline.stats["frames_seen"] == 11


def test_frame_skip_below_one_samples_every_frame(frame, face_box):
    pipeline = RecognitionPipeline(FakeDetector([face_box]), FakeRecognizer(1, 20.0), frame_skip=0)
    assert all(pipeline.evaluate(frame) is not None for _ in range(3))


def test_no_face_verdict(frame):
    recognizer = FakeRecognizer(1, 20.0)
    pipeline = RecognitionPipeline(FakeDetector([]), recognizer, frame_skip=1)

    verdict = pipeline.evaluate(frame)
    assert verdict is not None
    assert not verdict.has_face
    assert recognizer.boxes == []


def test_largest_face_is_recognized(frame):
    small = BoundingBox(0, 0, 10, 10)
    large = BoundingBox(30, 30, 50, 50)
    recognizer = FakeRecognizer(4, 12.5)
    pipeline = RecognitionPipeline(FakeDetector([small, large]), recognizer, frame_skip=1)

    verdict = pipeline.evaluate(frame)
    assert recognizer.boxes == [large]
    assert verdict.label == 4
    assert verdict.confidence == 12.5
    assert verdict.face == large


def test_select_face_tie_keeps_first():
    a = BoundingBox(0, 0, 20, 20)
    b = BoundingBox(50, 50, 20, 20)
    assert select_face([a, b]) is a


def test_detector_failure_surfaces_as_detector_error(frame):
    pipeline = RecognitionPipeline(FakeDetector(error=ValueError("bad frame")), FakeRecognizer(), frame_skip=1)
    with pytest.raises(DetectorError):
        pipeline.evaluate(frame)


def test_recognizer_failure_surfaces_as_detector_error(frame, face_box):
    recognizer = FakeRecognizer(error=RuntimeError("model gone"))
    pipeline = RecognitionPipeline(FakeDetector([face_box]), recognizer, frame_skip=1)
    with pytest.raises(DetectorError):
        pipeline.evaluate(frame)


def test_bounding_box_clamp():
    box = BoundingBox(-10, 90, 50, 50).clamp(100, 100)
    assert box == BoundingBox(0, 90, 40, 10)
