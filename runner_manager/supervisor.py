"""
Process supervisor abstraction.

The lifecycle manager only talks to the OS through this interface so tests
can swap in a fake that never touches the real process table.
"""

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Protocol

import psutil

logger = logging.getLogger(__name__)

# Allowed drift between the recorded and the actual process creation time
CREATE_TIME_TOLERANCE = 1.0


@dataclass
class SpawnedProcess:
    """A freshly launched process."""

    pid: int
    started_at: float | None = None


class ProcessSupervisor(Protocol):
    def spawn(self, argv: list[str], cwd: Path, output: IO[bytes]) -> SpawnedProcess:
        """Launch argv detached, with stdout and stderr going to output."""
        ...

    def is_alive(self, pid: int, started_at: float | None = None) -> bool:
        """Check whether pid is a live process (and the one started at started_at)."""
        ...

    def terminate(self, pid: int, force: bool = False) -> None:
        """Send SIGTERM (SIGKILL if force). Raises OSError on failure."""
        ...


class OSProcessSupervisor:
    """Supervisor backed by subprocess, os signals and psutil."""

    def __init__(self):
        self._children: dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def spawn(self, argv: list[str], cwd: Path, output: IO[bytes]) -> SpawnedProcess:
        self.reap()
        process = subprocess.Popen(
            argv,
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=output,
            stderr=subprocess.STDOUT,
            start_new_session=True,  # Survive the request and the control plane
            close_fds=True,
        )

        with self._lock:
            self._children[process.pid] = process

        started_at = None
        try:
            started_at = psutil.Process(process.pid).create_time()
        except psutil.Error as e:
            logger.warning(f"Could not read creation time of PID {process.pid}: {e}")

        return SpawnedProcess(pid=process.pid, started_at=started_at)

    def is_alive(self, pid: int, started_at: float | None = None) -> bool:
        # Reap our own children so they do not linger as zombies
        with self._lock:
            child = self._children.get(pid)
            if child is not None and child.poll() is not None:
                del self._children[pid]
                return False

        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return False
            if started_at is not None and abs(proc.create_time() - started_at) > CREATE_TIME_TOLERANCE:
                logger.debug(f"PID {pid} was reused by another process")
                return False
            return True
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists, but belongs to someone we cannot inspect
            return True

    def reap(self) -> list[int]:
        """Collect exited children. Returns their pids."""
        with self._lock:
            exited = [pid for pid, child in self._children.items() if child.poll() is not None]
            for pid in exited:
                del self._children[pid]
        return exited

    def terminate(self, pid: int, force: bool = False) -> None:
        sig = signal.SIGKILL if force else signal.SIGTERM
        if os.getpgid(pid) == pid:
            os.killpg(pid, sig)
        else:
            os.kill(pid, sig)
