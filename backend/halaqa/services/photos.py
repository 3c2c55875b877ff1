"""
Photo storage - saves uploaded student photos and removes superseded ones.

Files land in a single upload directory under randomized names
(``<epoch-ms>-<9 random digits><ext>``) and are referenced from records by
their public URL path, ``/uploads/<file>``.
"""

import os
import random
import time
from pathlib import Path
from typing import Optional, Union

from fastapi import UploadFile

from halaqa.errors import UploadRejected
from halaqa.logging_config import get_logger, log_with_context

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
MAX_PHOTO_BYTES = int(os.getenv("MAX_PHOTO_BYTES", str(5 * 1024 * 1024)))  # 5MB
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
URL_PREFIX = "/uploads/"

logger = get_logger("photos")


class PhotoStorage:
    """Stores photos under ``directory``."""

    def __init__(self, directory: Union[str, Path] = UPLOAD_DIR, max_bytes: int = MAX_PHOTO_BYTES):
        self.directory = Path(directory)
        self.max_bytes = max_bytes

    def save(self, upload: UploadFile) -> str:
        """Validate and write ``upload``; return its URL path."""
        ext = os.path.splitext(upload.filename or "")[1].lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise UploadRejected(
                "File type '{}' is not allowed; use one of {}".format(
                    ext or "(none)", ", ".join(sorted(ALLOWED_EXTENSIONS)))
            )

        content = upload.file.read(self.max_bytes + 1)
        if not content:
            raise UploadRejected("Uploaded photo is empty")
        if len(content) > self.max_bytes:
            raise UploadRejected("Photo exceeds {} bytes".format(self.max_bytes))

        file_name = "{}-{}{}".format(int(time.time() * 1000), random.randint(0, 10 ** 9 - 1), ext)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.directory / file_name, "wb") as f:
                f.write(content)
        except OSError as e:
            log_with_context(logger, "ERROR", "Failed to store photo: {}".format(e),
                extra_data={"file_name": file_name})
            raise UploadRejected("Failed to store photo") from e

        log_with_context(logger, "INFO", "Photo stored: {}".format(file_name),
            extra_data={"bytes": len(content), "original_name": upload.filename})
        return URL_PREFIX + file_name

    def resolve(self, url_path: Optional[str]) -> Optional[Path]:
        """Map a stored URL path back to a file inside the upload directory."""
        if not url_path or not url_path.startswith(URL_PREFIX):
            return None
        name = url_path[len(URL_PREFIX):]
        if not name or "/" in name or "\\" in name or name in (".", ".."):
            return None
        return self.directory / name

    def delete(self, url_path: Optional[str]) -> bool:
        """Remove a stored photo if it exists. Returns True when a file was removed."""
        path = self.resolve(url_path)
        if path is None or not path.is_file():
            return False
        try:
            path.unlink()
        except OSError as e:
            log_with_context(logger, "WARNING", "Could not remove photo {}: {}".format(path.name, e))
            return False
        log_with_context(logger, "INFO", "Photo removed: {}".format(path.name))
        return True


# Process-wide photo storage used by the API
photo_storage = PhotoStorage(UPLOAD_DIR)


def get_photo_storage() -> PhotoStorage:
    """FastAPI dependency that provides the photo storage."""
    return photo_storage
