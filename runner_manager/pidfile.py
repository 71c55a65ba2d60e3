"""
PID record storage.

One file per runner name in the PID directory. The record is only a hint of
liveness; callers must corroborate it with the process supervisor.
"""

import logging
import os
import threading
from pathlib import Path

from .errors import RunnerIOError
from .models import PidRecord

logger = logging.getLogger(__name__)


class PidStore:
    """Reads and writes <pid_dir>/<name>.pid files."""

    def __init__(self, pid_dir: Path):
        self.pid_dir = Path(pid_dir)
        self._locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def lock(self, name: str) -> threading.Lock:
        """Get the lock guarding the PID record of a runner."""
        with self._lock:
            if name not in self._locks:
                self._locks[name] = threading.Lock()
            return self._locks[name]

    def path(self, name: str) -> Path:
        return self.pid_dir / f"{name}.pid"

    def read(self, name: str) -> PidRecord | None:
        """Read the record for a runner. Returns None if there is none."""
        pid_file = self.path(name)
        try:
            content = pid_file.read_text()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise RunnerIOError(f"Failed to read PID file {pid_file}: {e}")

        try:
            return PidRecord.parse(name, content)
        except ValueError as e:
            raise RunnerIOError(f"Corrupt PID file {pid_file}: {e}")

    def write(self, record: PidRecord):
        """Persist a record, replacing any previous one atomically."""
        pid_file = self.path(record.name)
        tmp_file = pid_file.with_name(f".{pid_file.name}.tmp")
        try:
            self.pid_dir.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(record.serialize())
            os.replace(tmp_file, pid_file)
        except OSError as e:
            try:
                tmp_file.unlink()
            except OSError:
                pass
            raise RunnerIOError(f"Failed to write PID file {pid_file}: {e}")

    def remove(self, name: str) -> bool:
        """Delete the record. Returns False if it did not exist."""
        pid_file = self.path(name)
        try:
            pid_file.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise RunnerIOError(f"Failed to remove PID file {pid_file}: {e}")
