"""Small persistent JSON store for controller snapshots.

Snapshots are written under a data directory (``var/`` by default) so they
survive restarts. Writes go through a temp file and ``os.replace`` so a power
cut never leaves a half-written snapshot behind.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Optional

from gardenrig.domain.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class FileLock:
    """Simple file-lock using a lockfile (cross-platform, advisory).

    Note: This is a lightweight lock suitable for single-writer or low-contention
    scenarios on a Raspberry Pi. It uses atomic creation of a .lock file and
    retries until timeout.

    The holder's PID is written into the lock file. A lock left behind by a
    process that no longer exists (power cut mid-write, crash) is broken. A lock
    file without a readable PID is broken once it is older than ``stale_after``
    seconds (default: the timeout).
    """

    def __init__(
        self, lock_path: str, timeout: float = 5.0, retry: float = 0.05, stale_after: Optional[float] = None
    ) -> None:
        self.lock_path = lock_path
        self.timeout = float(timeout)
        self.retry = float(retry)
        self.stale_after = float(timeout if stale_after is None else stale_after)
        self._acquired = False

    def acquire(self) -> bool:
        start = time.time()
        while True:
            try:
                # O_EXCL ensures atomic creation; failing if exists
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                try:
                    os.write(fd, str(os.getpid()).encode("ascii"))
                finally:
                    os.close(fd)
                self._acquired = True
                return True
            except FileExistsError:
                if self._break_if_stale():
                    continue
                if (time.time() - start) >= self.timeout:
                    return False
                time.sleep(self.retry)

    def _break_if_stale(self) -> bool:
        try:
            with open(self.lock_path, "r", encoding="ascii") as fh:
                content = fh.read().strip()
            age = time.time() - os.path.getmtime(self.lock_path)
        except (OSError, ValueError):
            # Released between our attempts; just retry
            return False

        pid = int(content) if content.isdigit() else None
        if pid is not None:
            stale = not _pid_alive(pid)
        else:
            stale = age >= self.stale_after
        if not stale:
            return False

        try:
            os.unlink(self.lock_path)
        except FileNotFoundError:
            pass
        logger.warning("Broke stale lock %s (holder %s, %.1fs old)", self.lock_path, pid or "unknown", age)
        return True

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


def _pid_alive(pid: int) -> bool:
    if pid == os.getpid():
        return True
    if os.name == "nt":
        # os.kill(pid, 0) would signal the process on Windows
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except (OSError, OverflowError):
        return False
    return True


class JsonFileStore:
    """Named JSON snapshots stored as ``<data_dir>/<name>.json``."""

    def __init__(self, data_dir: str = "var", lock_timeout: float = 5.0) -> None:
        self.data_dir = data_dir
        self.lock_timeout = lock_timeout

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, f"{name}.json")

    def save(self, name: str, payload: Dict[str, Any]) -> None:
        """Write a snapshot atomically. Raises PersistenceError on failure."""
        path = self._path(name)
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with FileLock(path + ".lock", timeout=self.lock_timeout):
                tmp = path + ".tmp"
                with open(tmp, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh)
                os.replace(tmp, path)
        except (OSError, TimeoutError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save snapshot {name}: {e}", detail={"path": path}) from e
        logger.debug("Saved snapshot %s to %s", name, path)

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        """Read a snapshot; None when it has never been written."""
        path = self._path(name)
        if not os.path.exists(path):
            return None
        try:
            with FileLock(path + ".lock", timeout=self.lock_timeout):
                with open(path, "r", encoding="utf-8") as fh:
                    data = json.load(fh)
        except (OSError, TimeoutError, ValueError) as e:
            raise PersistenceError(f"Failed to load snapshot {name}: {e}", detail={"path": path}) from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Snapshot {name} is not a JSON object", detail={"path": path})
        return data
