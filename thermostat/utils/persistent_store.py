"""Small persistent JSON store helpers.

Provides `load_json` / `save_json` helpers guarded by an advisory lockfile
and written atomically (temp file + rename), so a power cut on the Pi never
leaves a half-written settings file behind.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict

logger = logging.getLogger(__name__)


class FileLock:
    """Simple file-lock using a lockfile (cross-platform, advisory).

    Note: This is a lightweight lock suitable for single-writer or low-contention
    scenarios on a Raspberry Pi. It uses atomic creation of a .lock file and
    retries until timeout.
    """

    def __init__(self, lock_path: str, timeout: float = 5.0, retry: float = 0.05) -> None:
        self.lock_path = lock_path
        self.timeout = float(timeout)
        self.retry = float(retry)
        self._acquired = False

    def acquire(self) -> bool:
        start = time.time()
        while True:
            try:
                # O_EXCL ensures atomic creation; failing if exists
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.close(fd)
                self._acquired = True
                return True
            except FileExistsError:
                if (time.time() - start) >= self.timeout:
                    return False
                time.sleep(self.retry)

    def release(self) -> None:
        try:
            if self._acquired and os.path.exists(self.lock_path):
                os.unlink(self.lock_path)
        finally:
            self._acquired = False

    def __enter__(self):
        ok = self.acquire()
        if not ok:
            raise TimeoutError(f"Failed to acquire file lock: {self.lock_path}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


def load_json(path: str) -> Dict[str, Any]:
    """Return the JSON object stored at ``path`` or ``{}`` when missing/unreadable."""
    lock = path + ".lock"
    try:
        if not os.path.exists(path):
            return {}
        with FileLock(lock):
            with open(path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        return data if isinstance(data, dict) else {}
    except Exception as e:
        logger.warning("Failed to load JSON store %s: %s", path, e)
        return {}


def save_json(path: str, data: Dict[str, Any]) -> None:
    """Atomically replace the JSON object stored at ``path``.

    Raises:
        OSError / TimeoutError when the file cannot be written.
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    lock = path + ".lock"
    with FileLock(lock):
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp, path)
