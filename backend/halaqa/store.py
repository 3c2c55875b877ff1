"""
Record store - durable storage of the whole collection as one JSON document.

The document has the shape ``{"students": [...], "routine": "..."}``.
Every mutation rewrites the full file; there is no append log and no index.
A single process-wide ``RecordStore`` is handed to request handlers through
the ``get_store`` dependency, and every read-modify-write runs under its
lock via ``transaction()``.
"""

import json
import os
import tempfile
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Union

from halaqa.errors import StorageError
from halaqa.logging_config import get_logger, log_with_context

# Location of the records document
DATA_FILE = os.getenv("DATA_FILE", "./data/students.json")

logger = get_logger("store")


def default_document() -> Dict[str, Any]:
    """Empty document used when nothing usable is on disk."""
    return {"students": [], "routine": ""}


def serialize(document: Dict[str, Any]) -> str:
    """Stable, human-readable rendering of a document."""
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def validate_document(document: Any) -> None:
    """Raise StorageError unless ``document`` has the expected shape."""
    if not isinstance(document, dict):
        raise StorageError("Invalid data structure: document must be an object")
    if not isinstance(document.get("students"), list):
        raise StorageError("Invalid data structure: 'students' must be a list")
    if "routine" in document and not isinstance(document["routine"], str):
        raise StorageError("Invalid data structure: 'routine' must be a string")


class RecordStore:
    """Loads and saves the records document at ``path``."""

    def __init__(self, path: Union[str, Path] = DATA_FILE):
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self) -> Dict[str, Any]:
        """
        Return the parsed document.

        A missing file is initialised with the default document. A corrupt
        file is moved aside and the default is returned instead, so callers
        never fail on a bad read.
        """
        with self._lock:
            if not self.path.exists():
                document = default_document()
                log_with_context(logger, "INFO",
                    "Records document not found, initialising {}".format(self.path))
                try:
                    self.save(document)
                except StorageError:
                    log_with_context(logger, "WARNING",
                        "Could not initialise records document, serving an empty one",
                        extra_data={"path": str(self.path)})
                return document

            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    document = json.load(f)
                validate_document(document)
            except (OSError, ValueError, StorageError) as e:
                self._quarantine(e)
                return default_document()

            document.setdefault("routine", "")
            return document

    def save(self, document: Dict[str, Any]) -> None:
        """
        Persist ``document``, replacing the file atomically.

        The written file is read back and compared with what was intended;
        any mismatch or I/O failure raises StorageError.
        """
        validate_document(document)
        payload = serialize(document)

        with self._lock:
            replaced = False
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=str(self.path.parent), prefix=".{}.".format(self.path.name), suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(payload)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(tmp_name, self.path)
                    replaced = True
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise

                with open(self.path, "r", encoding="utf-8") as f:
                    written = json.load(f)
            except (OSError, ValueError) as e:
                log_with_context(logger, "ERROR",
                    "Failed to write records document: {}".format(e),
                    extra_data={"path": str(self.path)})
                raise StorageError("Failed to write records document", written=replaced) from e

            if written != document:
                log_with_context(logger, "ERROR", "Data verification failed after write",
                    extra_data={"path": str(self.path)})
                raise StorageError("Data verification failed", written=True)

        log_with_context(logger, "DEBUG", "Records document written",
            extra_data={"path": str(self.path), "students": len(document["students"])})

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """
        Hold the writer lock across load, mutation and save.

        The yielded document is saved when the block exits cleanly and
        discarded when it raises.
        """
        with self._lock:
            document = self.load()
            yield document
            self.save(document)

    def _quarantine(self, error: Exception) -> None:
        """Move an unreadable document aside so it can be inspected later."""
        backup = self.path.with_name("{}.corrupt-{}".format(self.path.name, int(time.time())))
        try:
            os.replace(self.path, backup)
        except OSError:
            backup = None
        log_with_context(logger, "WARNING",
            "Records document unreadable, falling back to an empty document",
            extra_data={"path": str(self.path), "error": str(error),
                        "backup": str(backup) if backup else None})


# Process-wide store used by the API
store = RecordStore(DATA_FILE)


def get_store() -> RecordStore:
    """FastAPI dependency that provides the records store."""
    return store
