import io
import logging
import os
from typing import Callable, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from ..exceptions import MalformedInput
from ..storage import AccessEvent, AccessEventFilter, ImageArchive, PersistentStore, User


logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp"}
FILENAME_FORMAT_HINT = "Use label_name.jpg"


def parse_enrollment_filename(filename: str) -> Tuple[int, str, str]:
    """
    Split '<label>_<name>.<ext>' into (label, name, ext).

    The label is the integer before the first underscore; the name is
    everything after it up to the extension.
    """
    base = os.path.basename((filename or "").strip())
    stem, ext = os.path.splitext(base)
    ext = ext.lower()

    if "_" not in stem:
        raise MalformedInput(f"Invalid filename format '{base}'. {FILENAME_FORMAT_HINT}")

    prefix, name = stem.split("_", 1)
    if not prefix.isdigit():
        raise MalformedInput(f"Invalid label '{prefix}' in '{base}': must be a non-negative integer. {FILENAME_FORMAT_HINT}")
    if not name.strip():
        raise MalformedInput(f"Missing name in '{base}'. {FILENAME_FORMAT_HINT}")
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))
        raise MalformedInput(f"Unsupported image type '{ext or 'none'}' in '{base}'. Allowed: {allowed}")

    return int(prefix), name.strip(), ext


def validate_image(content: bytes) -> Tuple[int, int]:
    """Returns (width, height); raises MalformedInput if content is not an image."""
    if not content:
        raise MalformedInput("Uploaded image is empty.")
    try:
        with Image.open(io.BytesIO(content)) as img:
            img.verify()
            return img.size
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise MalformedInput(f"Uploaded file is not a readable image: {exc}") from exc


class AdminService:
    """Enrollment and log browsing for the admin interface."""

    def __init__(
        self,
        store: PersistentStore,
        user_images: ImageArchive,
        access_images: ImageArchive,
        on_enrolled: Optional[Callable[[User], None]] = None,
    ):
        self.store = store
        self.user_images = user_images
        self.access_images = access_images
        self.on_enrolled = on_enrolled

    def enroll_from_upload(self, filename: str, content: bytes) -> User:
        """
        Validate, store and enroll an uploaded reference image.
        Nothing is written when the filename or content is malformed.
        """
        label, name, ext = parse_enrollment_filename(filename)
        width, height = validate_image(content)

        path = self.user_images.save(content, name=f"{label}_{name}{ext}")
        user = self.store.enroll_or_update_user(label, name, path)
        logger.info(f"Uploaded reference image for {name} (label {label}, {width}x{height})")

        if self.on_enrolled is not None:
            self.on_enrolled(user)
        return user

    def list_users(self) -> List[User]:
        return self.store.list_users()

    def access_events(self, event_filter: Optional[AccessEventFilter] = None) -> List[AccessEvent]:
        return self.store.list_access_events(event_filter)

    def stats(self) -> dict:
        return self.store.stats()
