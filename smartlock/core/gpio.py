"""
GPIO output pins driving the lock relay.
"""

import logging

from ..exceptions import ActuatorError, StartupFailure


logger = logging.getLogger(__name__)


class GpioPin:
    """Binary output. Implementations raise ActuatorError on write failure."""

    pin: int = -1

    def setup(self):
        pass

    def set_high(self):
        raise NotImplementedError

    def set_low(self):
        raise NotImplementedError

    def cleanup(self):
        pass


class SimulatedPin(GpioPin):
    """Used when GPIO is disabled (laptop / development)."""

    def __init__(self, pin: int = 4):
        self.pin = pin
        self.is_high = False

    def setup(self):
        logger.info("GPIO disabled - lock control in simulation mode")

    def set_high(self):
        self.is_high = True
        logger.debug(f"[SIM] pin {self.pin} HIGH")

    def set_low(self):
        self.is_high = False
        logger.debug(f"[SIM] pin {self.pin} LOW")


class RPiGpioPin(GpioPin):
    """Relay output through RPi.GPIO (BCM numbering)."""

    def __init__(self, pin: int = 4, active_low: bool = False):
        self.pin = pin
        self.active_low = active_low
        self._gpio = None

    def setup(self):
        try:
            import RPi.GPIO as GPIO
        except ImportError as e:
            raise StartupFailure(f"GPIO enabled but RPi.GPIO is not available: {e}") from e

        try:
            GPIO.setmode(GPIO.BCM)
            GPIO.setup(self.pin, GPIO.OUT)
            # Start locked
            GPIO.output(self.pin, GPIO.HIGH if self.active_low else GPIO.LOW)
        except Exception as e:
            raise StartupFailure(f"GPIO initialization failed on pin {self.pin}: {e}") from e

        self._gpio = GPIO
        logger.info(f"GPIO initialized on pin {self.pin}")

    def _write(self, energize: bool):
        if self._gpio is None:
            raise ActuatorError(f"GPIO pin {self.pin} not initialized")
        GPIO = self._gpio
        if self.active_low:
            # Active low: LOW = relay on = unlocked
            value = GPIO.LOW if energize else GPIO.HIGH
        else:
            value = GPIO.HIGH if energize else GPIO.LOW
        try:
            GPIO.output(self.pin, value)
        except Exception as e:
            raise ActuatorError(f"GPIO write failed on pin {self.pin}: {e}") from e

    def set_high(self):
        self._write(True)

    def set_low(self):
        self._write(False)

    def cleanup(self):
        if self._gpio is None:
            return
        try:
            self._gpio.cleanup(self.pin)
        except Exception as e:
            logger.error(f"GPIO cleanup error: {e}")
        self._gpio = None


def create_pin_from_config(config) -> GpioPin:
    """Factory: real relay pin when GPIO is enabled, simulated otherwise."""
    if config.GPIO_ENABLED:
        return RPiGpioPin(pin=config.GPIO_LOCK_PIN, active_low=config.GPIO_ACTIVE_LOW)
    return SimulatedPin(pin=config.GPIO_LOCK_PIN)
