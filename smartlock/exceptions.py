class SmartLockError(Exception):
    """Base exception for the access controller."""


class StartupFailure(SmartLockError):
    """Raised when camera, GPIO, store or detector model cannot be brought up."""


class DetectorError(SmartLockError):
    """Raised when face detection or recognition fails on a frame."""


class StorageError(SmartLockError):
    """Raised when a database or image archive write fails."""


class ActuatorError(SmartLockError):
    """Raised when the lock output cannot be driven."""


class MalformedInput(SmartLockError):
    """Raised for bad enrollment filenames or unrecognized remote commands."""
