import os

from smartlock.exceptions import StorageError
from smartlock.storage import AccessEvent, AccessLogger, ImageArchive, Outcome


class FlakyStore:
    """Wraps a real store and fails the next `failures` appends."""

    def __init__(self, store, failures=0):
        self.store = store
        self.failures = failures
        self.attempts = 0

    def append_access_event(self, event):
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("database is locked")
        return self.store.append_access_event(event)


class BrokenArchive(ImageArchive):
    def save(self, content, name=None):
        raise StorageError("disk full")


def test_image_is_written_before_row(access_logger, store):
    result = access_logger.record(AccessEvent.create(Outcome.ADMITTED, 1, 20.0), b"\xff\xd8jpegbytes")

    assert result.persisted
    path = result.event.captured_image_path
    assert os.path.isfile(path)
    with open(path, "rb") as f:
        assert f.read() == b"\xff\xd8jpegbytes"
    assert store.list_access_events()[0].captured_image_path == path


def test_image_failure_sets_flag_and_still_logs(store, tmp_path):
    logger = AccessLogger(store, BrokenArchive(str(tmp_path / "broken")), retry_delay=0.0)

    result = logger.record(AccessEvent.create(Outcome.DENIED, 2, 80.0), b"bytes")

    assert result.persisted
    stored = store.list_access_events()[0]
    assert stored.captured_image_path is None
    assert stored.image_persist_failed


def test_single_write_failure_is_retried(store, access_archive):
    flaky = FlakyStore(store, failures=1)
    logger = AccessLogger(flaky, access_archive, retry_delay=0.0)

    result = logger.record(AccessEvent.create(Outcome.DENIED, 2, 80.0))

    assert result.persisted
    assert flaky.attempts == 2
    assert len(store.list_access_events()) == 1


def test_persistent_failure_holds_event_until_flush(store, access_archive):
    flaky = FlakyStore(store, failures=2)
    logger = AccessLogger(flaky, access_archive, retry_delay=0.0)

    result = logger.record(AccessEvent.create(Outcome.ADMITTED, 5, 10.0))

    assert not result.persisted
    assert result.degraded
    assert logger.pending_count == 1
    assert store.list_access_events() == []

    assert logger.flush() == 0
    events = store.list_access_events()
    assert len(events) == 1
    assert events[0].matched_label == 5


def test_held_events_are_written_ahead_of_new_ones(store, access_archive):
    flaky = FlakyStore(store, failures=2)
    logger = AccessLogger(flaky, access_archive, retry_delay=0.0)

    logger.record(AccessEvent.create(Outcome.DENIED, 1, 90.0))
    logger.record(AccessEvent.create(Outcome.ADMITTED, 2, 10.0))

    labels = [e.matched_label for e in reversed(store.list_access_events())]
    assert labels == [1, 2]
    assert logger.pending_count == 0


class ScriptedStore:
    """Fails or succeeds appends following a fixed script, then succeeds."""

    def __init__(self, store, script):
        self.store = store
        self.script = list(script)

    def append_access_event(self, event):
        if self.script and not self.script.pop(0):
            raise StorageError("database is locked")
        return self.store.append_access_event(event)


def test_new_event_waits_behind_unwritten_held_events(store, access_archive):
    # A: write + retry fail -> held. B: flush of A fails, store recovers right after.
    scripted = ScriptedStore(store, [False, False, False, True])
    logger = AccessLogger(scripted, access_archive, retry_delay=0.0)

    first = logger.record(AccessEvent.create(Outcome.DENIED, 1, 90.0))
    second = logger.record(AccessEvent.create(Outcome.ADMITTED, 2, 10.0))

    assert first.degraded and second.degraded
    assert logger.pending_count == 2
    assert logger.flush() == 0

    labels = [e.matched_label for e in reversed(store.list_access_events())]
    assert labels == [1, 2]
