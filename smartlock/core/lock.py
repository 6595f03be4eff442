"""
Lock Actuator.
Drives the lock output with a timed automatic relock.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

from ..exceptions import ActuatorError
from .gpio import GpioPin


logger = logging.getLogger(__name__)

RELOCK_RETRY_SECONDS = 0.5


class LockState(Enum):
    """In-memory lock state. Always LOCKED at startup."""
    LOCKED = "locked"
    UNLOCKING = "unlocking"
    UNLOCKED_TIMED = "unlocked_timed"


class LockActuator:
    """
    Controls the lock relay.

    unlock() opens the lock and schedules a relock after unlock_duration.
    Calling unlock() again while open restarts the timer without driving
    the pin again. lock() relocks immediately and cancels the timer.

    Every timer carries the generation it was created for; a timer that
    fires after being superseded does nothing.
    """

    def __init__(self, pin: GpioPin, unlock_duration: float = 2.0):
        self.pin = pin
        self.unlock_duration = unlock_duration

        self._lock = threading.Lock()
        self._state = LockState.LOCKED
        self._relock_timer: Optional[threading.Timer] = None
        self._generation = 0
        self._deadline: Optional[float] = None

        # Stats
        self._stats = {
            "pulses": 0,
            "extensions": 0,
            "relocks": 0,
            "forced_locks": 0,
            "failures": 0,
        }

    @property
    def state(self) -> LockState:
        with self._lock:
            return self._state

    def is_locked(self) -> bool:
        return self.state is LockState.LOCKED

    def remaining(self) -> Optional[float]:
        """Seconds until scheduled relock, None when locked."""
        with self._lock:
            if self._deadline is None:
                return None
            return max(0.0, self._deadline - time.monotonic())

    def initialize(self):
        """Set up the pin and drive it to the locked level."""
        self.pin.setup()
        with self._lock:
            self._state = LockState.LOCKED
        logger.info(f"Lock actuator ready on pin {self.pin.pin} (unlock window {self.unlock_duration}s)")

    def unlock(self):
        """
        Open the lock for unlock_duration seconds.
        If already open, restarts the relock timer.

        Raises:
            ActuatorError: the output could not be driven; lock stays locked
        """
        with self._lock:
            self._cancel_timer_locked()

            if self._state is LockState.LOCKED:
                self._state = LockState.UNLOCKING
                try:
                    self.pin.set_high()
                except ActuatorError:
                    self._stats["failures"] += 1
                    self._state = LockState.LOCKED
                    self._deadline = None
                    self._force_low_locked()
                    raise
                logger.info(f"Lock OPENED (relock in {self.unlock_duration}s)")
            else:
                self._stats["extensions"] += 1
                logger.info(f"Unlock EXTENDED (relock in {self.unlock_duration}s)")

            self._schedule_relock_locked(self.unlock_duration)
            self._state = LockState.UNLOCKED_TIMED
            self._stats["pulses"] += 1

    def lock(self):
        """Relock immediately, cancelling any pending relock."""
        with self._lock:
            self._cancel_timer_locked()
            if self._state is LockState.LOCKED:
                return
            try:
                self.pin.set_low()
            except ActuatorError:
                self._stats["failures"] += 1
                logger.error(f"Forced relock failed to drive pin low, retrying in {RELOCK_RETRY_SECONDS}s")
                self._schedule_relock_locked(RELOCK_RETRY_SECONDS)
                raise
            self._state = LockState.LOCKED
            self._deadline = None
            self._stats["forced_locks"] += 1
            logger.info("Lock CLOSED")

    def _auto_relock(self, generation: int):
        """Timer callback."""
        with self._lock:
            if generation != self._generation or self._state is LockState.LOCKED:
                return
            try:
                self.pin.set_low()
            except ActuatorError as e:
                self._stats["failures"] += 1
                logger.error(f"Auto-relock failed, retrying in {RELOCK_RETRY_SECONDS}s: {e}")
                self._schedule_relock_locked(RELOCK_RETRY_SECONDS)
                return
            self._state = LockState.LOCKED
            self._deadline = None
            self._relock_timer = None
            self._stats["relocks"] += 1
            logger.info("Lock auto-relocked")

    def _schedule_relock_locked(self, delay: float):
        self._generation += 1
        self._deadline = time.monotonic() + delay
        timer = threading.Timer(delay, self._auto_relock, args=(self._generation,))
        timer.daemon = True
        timer.name = "RelockTimer"
        self._relock_timer = timer
        timer.start()

    def _cancel_timer_locked(self):
        self._generation += 1
        if self._relock_timer:
            self._relock_timer.cancel()
            self._relock_timer = None

    def _force_low_locked(self):
        try:
            self.pin.set_low()
        except ActuatorError as e:
            logger.error(f"Could not drive lock pin low after failed unlock: {e}")

    def get_stats(self) -> dict:
        """Get actuator statistics."""
        with self._lock:
            return self._stats.copy()

    def cleanup(self):
        """Force relock and release GPIO resources."""
        try:
            self.lock()
        finally:
            self.pin.cleanup()
