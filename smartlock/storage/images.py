"""
Image archive for enrolled reference images and captured access frames.
Each namespace is its own directory. Writes are atomic (temp file + rename).
"""

import hashlib
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Optional

from ..exceptions import StorageError


logger = logging.getLogger(__name__)


class ImageArchive:
    """Stores image artifacts under a single directory."""

    def __init__(self, root: str):
        self.root = root
        os.makedirs(root, exist_ok=True)

    @staticmethod
    def timestamped_name(content: bytes, suffix: str = ".jpg") -> str:
        """Capture time plus a short content hash, e.g. 20240101T120000123456Z_ab12cd34ef.jpg"""
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        digest = hashlib.sha1(content).hexdigest()[:10]
        return f"{stamp}_{digest}{suffix}"

    def path_for(self, name: str) -> str:
        return os.path.join(self.root, os.path.basename(name))

    def save(self, content: bytes, name: Optional[str] = None) -> str:
        """
        Persist content and return its path.

        Only returns once the file is fully written and renamed into place,
        so a returned path always resolves to a complete artifact.
        """
        if not content:
            raise StorageError("Refusing to store an empty image")

        target = self.path_for(name or self.timestamped_name(content))
        fd, tmp_path = None, None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".part")
            with os.fdopen(fd, "wb") as f:
                fd = None
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as exc:
            raise StorageError(f"Failed to store image {target}: {exc}") from exc
        finally:
            if fd is not None:
                os.close(fd)
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

        logger.debug(f"Stored image {target}")
        return target
