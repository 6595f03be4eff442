"""
Access Control Engine.

State machine: IDLE -> EVALUATING -> {ADMITTING, DENYING} -> IDLE

- ADMITTING: unlock, then log an admitted event
- DENYING: log a denied event (only when a face was seen)
- Remote unlock enters ADMITTING directly with no label
- Detector / actuator failures log denied_error and never actuate

Decisions are serialized so the recognition loop and remote commands
never interleave an unlock with another decision's log write.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Iterable, Optional

import cv2
import numpy as np

from ..exceptions import ActuatorError, DetectorError, StorageError
from ..storage import AccessEvent, AccessLogger, EventSource, Outcome, PersistentStore, RecordResult
from ..threads.alerts import Alert, AlertNotifier
from ..vision.pipeline import RecognitionPipeline, Verdict
from .decision import Admission, ConfidencePolicy
from .lock import LockActuator


logger = logging.getLogger(__name__)

SNAPSHOT_JPEG_QUALITY = 85


class EngineState(Enum):
    IDLE = "IDLE"
    EVALUATING = "EVALUATING"
    ADMITTING = "ADMITTING"
    DENYING = "DENYING"


def encode_snapshot(frame: np.ndarray) -> Optional[bytes]:
    """JPEG-encode a frame; None if encoding fails."""
    try:
        ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, SNAPSHOT_JPEG_QUALITY])
    except cv2.error as e:
        logger.error(f"Failed to encode snapshot: {e}")
        return None
    if not ok:
        logger.error("Failed to encode snapshot")
        return None
    return buffer.tobytes()


class AccessControlEngine:
    """
    Orchestrates pipeline -> decision -> actuator -> access log.
    """

    def __init__(
        self,
        pipeline: RecognitionPipeline,
        policy: ConfidencePolicy,
        actuator: LockActuator,
        access_logger: AccessLogger,
        store: PersistentStore,
        notifier: Optional[AlertNotifier] = None,
    ):
        self.pipeline = pipeline
        self.policy = policy
        self.actuator = actuator
        self.access_logger = access_logger
        self.store = store
        self.notifier = notifier

        self._decision_lock = threading.Lock()
        self._state = EngineState.IDLE

        self.stats = {
            "frames_processed": 0,
            "no_face": 0,
            "admitted": 0,
            "denied": 0,
            "detector_errors": 0,
            "actuator_errors": 0,
            "remote_unlocks": 0,
            "remote_locks": 0,
        }

    @property
    def state(self) -> EngineState:
        return self._state

    # =========================
    # Recognition entry point
    # =========================

    def process_frame(self, frame: np.ndarray) -> Optional[RecordResult]:
        """
        Evaluate one captured frame.

        Returns:
            RecordResult when an event was logged, None for skipped or
            no-face frames
        """
        self.stats["frames_processed"] += 1
        try:
            verdict = self.pipeline.evaluate(frame)
        except DetectorError as e:
            return self._handle_detector_error(e)

        if verdict is None:
            return None
        return self.handle_verdict(verdict, frame)

    def handle_verdict(self, verdict: Verdict, frame: Optional[np.ndarray] = None) -> Optional[RecordResult]:
        with self._decision_lock:
            self._state = EngineState.EVALUATING
            try:
                known = verdict.label is not None and self._is_enrolled(verdict.label)
                admission = self.policy.decide(verdict, known=known)

                if admission is Admission.NO_FACE:
                    self.stats["no_face"] += 1
                    return None

                if admission is Admission.ADMIT:
                    return self._admit(verdict.label, verdict.confidence, EventSource.RECOGNITION, frame)

                return self._deny(verdict, known, frame)
            finally:
                self._state = EngineState.IDLE

    def run(
        self,
        frames: Iterable[np.ndarray],
        stop_event: threading.Event,
        on_frame: Optional[Callable[[], None]] = None,
    ):
        """
        Recognition loop. Per-frame failures are logged and the loop
        moves on to the next frame.
        """
        logger.info("Starting recognition loop...")
        for frame in frames:
            if stop_event.is_set():
                break
            try:
                self.process_frame(frame)
            except Exception:
                logger.exception("Unexpected error while processing frame")
            if on_frame is not None:
                on_frame()
        logger.info("Recognition loop ended")

    # =========================
    # Remote entry points
    # =========================

    def remote_unlock(self) -> RecordResult:
        """Out-of-band unlock; logged as admitted with no label."""
        with self._decision_lock:
            self._state = EngineState.ADMITTING
            try:
                self.stats["remote_unlocks"] += 1
                logger.info("Remote UNLOCK command")
                return self._admit(None, 0.0, EventSource.REMOTE, None)
            finally:
                self._state = EngineState.IDLE

    def remote_lock(self):
        """Out-of-band immediate relock."""
        self.stats["remote_locks"] += 1
        logger.info("Remote LOCK command")
        self.actuator.lock()

    # =========================
    # Internals
    # =========================

    def _is_enrolled(self, label: int) -> bool:
        try:
            return self.store.get_user(label) is not None
        except StorageError as e:
            logger.error(f"Enrollment lookup failed for label {label}, denying: {e}")
            return False

    def _admit(
        self,
        label: Optional[int],
        confidence: float,
        source: EventSource,
        frame: Optional[np.ndarray],
    ) -> RecordResult:
        self._state = EngineState.ADMITTING
        try:
            self.actuator.unlock()
        except ActuatorError as e:
            self.stats["actuator_errors"] += 1
            logger.error(f"Unlock failed, recording denial: {e}")
            event = AccessEvent.create(
                Outcome.DENIED_ERROR, label, confidence, source, error=f"actuator: {e}"
            )
            result = self._record(event, frame)
            self._alert("actuator_failure", f"Lock could not be opened: {e}", result)
            return result

        self.stats["admitted"] += 1
        event = AccessEvent.create(Outcome.ADMITTED, label, confidence, source)
        return self._record(event, frame)

    def _deny(self, verdict: Verdict, known: bool, frame: Optional[np.ndarray]) -> RecordResult:
        self._state = EngineState.DENYING
        self.stats["denied"] += 1
        event = AccessEvent.create(Outcome.DENIED, verdict.label, verdict.confidence)
        result = self._record(event, frame)
        # LBPH always answers with the nearest enrolled label, so a stranger
        # shows up as a known label with a failing score
        if known:
            message = f"Face denied at the door: score {verdict.confidence:.2f} failed the threshold"
        else:
            message = "Unrecognized face denied at the door"
        self._alert("unknown_face", message, result)
        return result

    def _handle_detector_error(self, error: DetectorError) -> RecordResult:
        with self._decision_lock:
            self._state = EngineState.DENYING
            try:
                self.stats["detector_errors"] += 1
                logger.error(f"Detector error, recording denial: {error}")
                event = AccessEvent.create(Outcome.DENIED_ERROR, error=f"detector: {error}")
                return self.access_logger.record(event)
            finally:
                self._state = EngineState.IDLE

    def _record(self, event: AccessEvent, frame: Optional[np.ndarray]) -> RecordResult:
        if frame is None:
            return self.access_logger.record(event)

        snapshot = encode_snapshot(frame)
        if snapshot is None:
            return self.access_logger.record(event.with_image(None, failed=True))
        return self.access_logger.record(event, snapshot)

    def _alert(self, kind: str, message: str, result: RecordResult):
        if self.notifier is None:
            return
        event = result.event
        self.notifier.notify(Alert(
            kind=kind,
            message=message,
            label=event.matched_label,
            confidence=event.confidence,
            image_path=event.captured_image_path,
        ))
