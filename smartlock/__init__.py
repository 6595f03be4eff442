"""Face-recognition gated door lock."""

__version__ = "0.1.0"
