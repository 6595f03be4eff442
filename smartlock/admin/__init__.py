"""Admin interface: enrollment and access log browsing."""

from .service import AdminService, parse_enrollment_filename, validate_image
from .app import create_app

__all__ = ["AdminService", "parse_enrollment_filename", "validate_image", "create_app"]
