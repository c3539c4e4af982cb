"""Small JSON-file key/value regions for persisted engine state."""

import json
import logging
import os
import tempfile
import threading

logger = logging.getLogger(__name__)


class JsonStore:
    """
    One persisted region backed by a single JSON file.

    Reads return a dict (empty when the file is missing or unreadable).
    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a reader never sees a half-written document.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def read(self) -> dict:
        with self._lock:
            if not os.path.isfile(self.path):
                return {}
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable store {self.path}: {e}")
                return {}
            return data if isinstance(data, dict) else {}

    def write(self, data: dict) -> None:
        with self._lock:
            directory = os.path.dirname(self.path) or "."
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise

    def clear(self) -> None:
        with self._lock:
            if os.path.isfile(self.path):
                os.remove(self.path)
