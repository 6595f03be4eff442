"""Vision module for camera capture, face detection and recognition."""

from .pipeline import BoundingBox, Verdict, RecognitionPipeline, select_face
from .detector import HaarCascadeDetector, create_detector_from_config
from .recognizer import LBPHRecognizer
from .camera import Camera, create_camera_from_config

__all__ = [
    "BoundingBox",
    "Verdict",
    "RecognitionPipeline",
    "select_face",
    "HaarCascadeDetector",
    "create_detector_from_config",
    "LBPHRecognizer",
    "Camera",
    "create_camera_from_config",
]
