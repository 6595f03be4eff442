"""Core module for lock control and access decisions."""

from .gpio import GpioPin, SimulatedPin, RPiGpioPin, create_pin_from_config
from .lock import LockActuator, LockState
from .decision import Admission, ConfidencePolicy, create_policy_from_config
from .engine import AccessControlEngine, EngineState


def create_actuator_from_config(config, pin: GpioPin = None) -> LockActuator:
    """Factory function to create LockActuator from config object."""
    return LockActuator(
        pin=pin or create_pin_from_config(config),
        unlock_duration=config.unlock_duration,
    )


__all__ = [
    "GpioPin",
    "SimulatedPin",
    "RPiGpioPin",
    "create_pin_from_config",
    "LockActuator",
    "LockState",
    "Admission",
    "ConfidencePolicy",
    "create_policy_from_config",
    "AccessControlEngine",
    "EngineState",
    "create_actuator_from_config",
]
