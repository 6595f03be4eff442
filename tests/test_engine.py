import os
import threading

from smartlock.core import LockActuator
from smartlock.exceptions import DetectorError
from smartlock.storage import AccessEventFilter, EventSource, Outcome

from conftest import FakeDetector, FakePin


class RecordingNotifier:
    def __init__(self):
        self.alerts = []

    def notify(self, alert):
        self.alerts.append(alert)
        return True


def test_confident_enrolled_match_is_admitted(make_engine, store, pin, frame):
    store.enroll_or_update_user(3, "carol", None)
    engine = make_engine(label=3, confidence=30.0, threshold=40.0)

    result = engine.process_frame(frame)

    assert result.persisted
    assert result.event.outcome is Outcome.ADMITTED
    assert result.event.matched_label == 3
    assert pin.highs == 1
    assert os.path.isfile(result.event.captured_image_path)


def test_low_confidence_match_is_denied(make_engine, store, pin, frame):
    store.enroll_or_update_user(3, "carol", None)
    notifier = RecordingNotifier()
    engine = make_engine(label=3, confidence=60.0, threshold=40.0, notifier=notifier)

    result = engine.process_frame(frame)

    assert result.event.outcome is Outcome.DENIED
    assert result.event.confidence == 60.0
    assert pin.highs == 0
    assert [a.kind for a in notifier.alerts] == ["unknown_face"]


def test_stranger_matched_to_nearest_enrolled_label_raises_alert(make_engine, store, pin, frame):
    store.enroll_or_update_user(3, "carol", None)
    notifier = RecordingNotifier()
    engine = make_engine(label=3, confidence=140.0, threshold=35.0, notifier=notifier)

    result = engine.process_frame(frame)

    assert result.event.outcome is Outcome.DENIED
    assert pin.highs == 0
    assert len(notifier.alerts) == 1
    assert notifier.alerts[0].kind == "unknown_face"
    assert notifier.alerts[0].label == 3


def test_threshold_is_strict(make_engine, store, pin, frame):
    store.enroll_or_update_user(3, "carol", None)
    engine = make_engine(label=3, confidence=40.0, threshold=40.0)

    assert engine.process_frame(frame).event.outcome is Outcome.DENIED
    assert pin.highs == 0


def test_no_face_logs_nothing(make_engine, store, pin, frame):
    engine = make_engine(boxes=[])

    assert engine.process_frame(frame) is None
    assert store.list_access_events() == []
    assert pin.highs == 0
    assert engine.stats["no_face"] == 1


def test_unenrolled_label_is_denied_with_alert(make_engine, pin, frame):
    notifier = RecordingNotifier()
    engine = make_engine(label=9, confidence=5.0, notifier=notifier)

    result = engine.process_frame(frame)

    assert result.event.outcome is Outcome.DENIED
    assert pin.highs == 0
    assert [a.kind for a in notifier.alerts] == ["unknown_face"]


def test_detector_error_logs_denied_error_without_actuation(make_engine, store, pin, frame):
    engine = make_engine(detector=FakeDetector(error=DetectorError("cascade crashed")))

    result = engine.process_frame(frame)

    assert result.event.outcome is Outcome.DENIED_ERROR
    assert result.event.error.startswith("detector:")
    assert result.event.captured_image_path is None
    assert pin.highs == 0
    assert engine.stats["detector_errors"] == 1


def test_actuator_error_logs_denied_error(make_engine, store, frame):
    store.enroll_or_update_user(3, "carol", None)
    broken = LockActuator(FakePin(fail_high=True), unlock_duration=0.2)
    broken.initialize()
    notifier = RecordingNotifier()
    engine = make_engine(label=3, confidence=10.0, act=broken, notifier=notifier)

    result = engine.process_frame(frame)

    assert result.event.outcome is Outcome.DENIED_ERROR
    assert result.event.error.startswith("actuator:")
    assert broken.is_locked()
    assert [a.kind for a in notifier.alerts] == ["actuator_failure"]


def test_remote_unlock_is_logged_without_label(make_engine, store, pin):
    engine = make_engine()

    result = engine.remote_unlock()

    assert result.event.outcome is Outcome.ADMITTED
    assert result.event.source is EventSource.REMOTE
    assert result.event.matched_label is None
    assert pin.highs == 1
    remote = store.list_access_events(AccessEventFilter(source=EventSource.REMOTE))
    assert len(remote) == 1


def test_remote_lock_relocks_and_is_not_an_access_event(make_engine, store, actuator):
    engine = make_engine()
    engine.remote_unlock()

    engine.remote_lock()

    assert actuator.is_locked()
    assert len(store.list_access_events()) == 1


def test_every_admission_pulses_the_lock_once(make_engine, store, actuator, frame):
    store.enroll_or_update_user(3, "carol", None)
    engine = make_engine(label=3, confidence=10.0)

    for _ in range(4):
        engine.process_frame(frame)
    engine.remote_unlock()

    admitted = store.list_access_events(AccessEventFilter(outcome=Outcome.ADMITTED))
    assert len(admitted) == 5
    assert actuator.get_stats()["pulses"] == 5


def test_run_stops_on_event_and_survives_frame_errors(make_engine, store, frame, monkeypatch):
    store.enroll_or_update_user(3, "carol", None)
    engine = make_engine(label=3, confidence=10.0)
    stop = threading.Event()
    seen = []

    original = engine.pipeline.evaluate
    calls = {"n": 0}

    def flaky_evaluate(f):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("unexpected")
        return original(f)

    monkeypatch.setattr(engine.pipeline, "evaluate", flaky_evaluate)

    def frames():
        yield frame
        yield frame
        yield frame
        stop.set()
        yield frame

    engine.run(frames(), stop, on_frame=lambda: seen.append(1))

    assert len(seen) == 3
    assert len(store.list_access_events()) == 2
